"""Export pipeline: runs every category of a source into canonical JSONL files."""

from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Optional, Tuple, Type, Union

from deskbridge.core.exceptions import AuthError, ConnectorError
from deskbridge.core.logging import logger
from deskbridge.platform.entities import (
    AuditEvent,
    Brand,
    CanonicalRecord,
    CSATRating,
    Customer,
    CustomField,
    ExportCounts,
    ExportManifest,
    Group,
    KBArticle,
    Message,
    Organization,
    Rule,
    Ticket,
    TicketForm,
    TimeEntry,
    View,
)
from deskbridge.platform.sources._base import BaseSource
from deskbridge.platform.storage import JsonlWriter, write_manifest
from deskbridge.platform.sync.exceptions import EntityProcessingError, SyncFailureError

# Record type -> canonical file; agents are Customers and share customers.jsonl
RECORD_CATEGORIES: Dict[Type[CanonicalRecord], str] = {
    Ticket: "tickets",
    Message: "messages",
    Customer: "customers",
    Organization: "organizations",
    KBArticle: "kb_articles",
    Rule: "rules",
    Group: "groups",
    CustomField: "custom_fields",
    View: "views",
    TicketForm: "ticket_forms",
    Brand: "brands",
    AuditEvent: "audit_events",
    CSATRating: "csat_ratings",
    TimeEntry: "time_entries",
}

# (label, generator accessor, required)
EXPORT_STEPS: Tuple[Tuple[str, Callable[[BaseSource], AsyncIterator], bool], ...] = (
    ("tickets", lambda s: s.generate_tickets(), True),
    ("customers", lambda s: s.generate_customers(), True),
    ("agents", lambda s: s.generate_agents(), False),
    ("organizations", lambda s: s.generate_organizations(), False),
    ("kb_articles", lambda s: s.generate_kb_articles(), False),
    ("rules", lambda s: s.generate_rules(), False),
    ("extras", lambda s: s.generate_extras(), False),
)


async def export_source(
    source: BaseSource,
    out_dir: Union[str, Path],
    cursor_state: Optional[Dict[str, str]] = None,
) -> ExportManifest:
    """Export every category of a source into ``out_dir``.

    Files are truncated first unless resuming from ``cursor_state``; the
    source's extra files are always rewritten since they are snapshots.
    Tickets and customers are required: an AuthError propagates unchanged and
    any other connector or malformed-record failure aborts the run as a
    SyncFailureError. Optional categories downgrade failures (other than
    AuthError) to a warning and keep whatever was written before the failure.

    Args:
        source: A created source instance
        out_dir: Export directory
        cursor_state: Cursor state of the previous run, if resuming

    Returns:
        The manifest that was written to ``manifest.json``

    Raises:
        AuthError: If the credentials were rejected
        SyncFailureError: If a required category failed
    """
    export_logger = logger.with_context(connector=source.short_name, out_dir=str(out_dir))
    writer = JsonlWriter(out_dir, snapshots=source.EXTRA_CATEGORIES)
    await writer.setup(truncate=not cursor_state)

    counts = ExportCounts()
    extra_counts: Dict[str, int] = {}
    for label, generate, required in EXPORT_STEPS:
        before = {**counts.model_dump(), **extra_counts}
        try:
            async for record in generate(source):
                category = RECORD_CATEGORIES[type(record)]
                await writer.append(category, record.to_record())
                if category in source.EXTRA_CATEGORIES:
                    extra_counts[category] = extra_counts.get(category, 0) + 1
                else:
                    counts.increment(category)
        except AuthError:
            export_logger.error(f"Credentials rejected during {label} export")
            raise
        except (ConnectorError, EntityProcessingError) as e:
            if required:
                export_logger.error(f"Required category {label} failed: {e}")
                raise SyncFailureError(f"{source.name} {label} export failed: {e}") from e
            export_logger.warning(f"Skipping {label}: {e}")

        after = {**counts.model_dump(), **extra_counts}
        added = {k: v - before.get(k, 0) for k, v in after.items() if v != before.get(k, 0)}
        if added:
            export_logger.info(f"Exported {label}: {added}")

    manifest = ExportManifest(
        source=source.short_name,
        counts=counts,
        extra_counts=extra_counts or None,
        cursor_state=source.cursor_state,
        hydration_failures=len(source.hydration_failures) or None,
        skipped_records=source.skipped_records or None,
    )
    await write_manifest(out_dir, manifest)
    export_logger.info(
        f"Export complete: {counts.tickets} tickets, {counts.messages} messages, "
        f"{counts.customers} customers"
    )
    return manifest
