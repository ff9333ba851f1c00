"""Sync-specific exceptions for error handling."""


class EntityProcessingError(Exception):
    """Raised when an individual record cannot be processed.

    This is a recoverable error - the export continues with other records.
    The record is logged and counted as skipped.

    Examples:
    - Record does not match the source's response schema
    - Missing required field (id, timestamps)

    Usage:
        raise EntityProcessingError(f"Malformed ticket {ticket_id}: {reason}")
    """

    pass


class SyncFailureError(Exception):
    """Raised when a critical error occurs that should fail the entire run.

    This is a non-recoverable error - the export is terminated immediately.

    Examples:
    - Credentials rejected (401/403)
    - A required category (tickets, customers) failed
    - Output directory not writable

    Usage:
        raise SyncFailureError("Ticket export failed: Zendesk API error: 500")
    """

    pass
