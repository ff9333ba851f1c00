"""Export, sync cycle, worker and conflict detection."""
