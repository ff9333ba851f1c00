"""Push queued local changes to the hosted system.

Pending outbox entries are checked against current hosted state first.
Conflicted entries stay in the outbox for manual resolution; safe entries
are applied through the adapter's write operations and retired once applied.

Usage:
    outbox = JsonlOutbox(StoragePaths.outbox_file(export_dir))
    result = await sync_push(source, outbox)
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from deskbridge.core.config import settings
from deskbridge.core.exceptions import (
    CategoryNotSupportedError,
    ConnectorError,
    MissingCredentialsError,
)
from deskbridge.core.logging import logger
from deskbridge.platform.entities import Ticket
from deskbridge.platform.sources._base import BaseSource
from deskbridge.platform.storage import StoragePaths
from deskbridge.platform.sync.conflict import (
    ChangeOperation,
    Conflict,
    HostedEntity,
    LocalChange,
    partition_changes,
)
from deskbridge.platform.sync.outbox import JsonlOutbox


class PushResult(BaseModel):
    """Outcome of one push of the outbox."""

    pushed: int = 0
    conflicts: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    conflicted: List[Conflict] = Field(default_factory=list)


_PUSHABLE = {
    ("ticket", ChangeOperation.CREATE),
    ("ticket", ChangeOperation.UPDATE),
    ("ticket", ChangeOperation.DELETE),
    ("message", ChangeOperation.CREATE),
}


def is_pushable(change: LocalChange) -> bool:
    """Whether a change maps onto an adapter write operation."""
    return (change.entity_type, change.operation) in _PUSHABLE


async def fetch_hosted_tickets(source: BaseSource) -> Dict[str, HostedEntity]:
    """Build the hosted map queued ticket updates and deletes are checked against.

    Raises:
        ConnectorError: If hosted state cannot be read
    """
    hosted: Dict[str, HostedEntity] = {}
    async for record in source.generate_tickets():
        if isinstance(record, Ticket):
            hosted[record.id] = HostedEntity(
                entity_id=record.id, updated_at=record.updated_at, data=record.to_record()
            )
    return hosted


def _required(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value in (None, ""):
        raise ValueError(f"Change payload has no {key!r}")
    return value


async def apply_change(source: BaseSource, change: LocalChange) -> None:
    """Apply one change through the adapter's write operations.

    Ticket creates take ``subject`` and ``body`` from the payload and pass the
    rest as options. Message creates take ``ticketId`` and ``body``; a
    ``type`` of ``note`` adds a private note instead of a reply.

    Raises:
        ConnectorError: If the hosted system rejects the change or the
            source has no such write operation
        ValueError: If the payload or entity id is unusable
    """
    payload = dict(change.payload)
    kind = (change.entity_type, change.operation)

    if kind == ("ticket", ChangeOperation.CREATE):
        subject = _required(payload, "subject")
        body = _required(payload, "body")
        options = {k: v for k, v in payload.items() if k not in ("subject", "body")}
        await source.create_ticket(subject, body, **options)
    elif kind == ("ticket", ChangeOperation.UPDATE):
        await source.update_ticket(source.external_id(change.entity_id), **payload)
    elif kind == ("ticket", ChangeOperation.DELETE):
        await source.delete_ticket(source.external_id(change.entity_id))
    elif kind == ("message", ChangeOperation.CREATE):
        ticket_id = source.external_id(_required(payload, "ticketId"))
        body = _required(payload, "body")
        if payload.get("type") == "note":
            await source.add_note(ticket_id, body)
        else:
            await source.reply(ticket_id, body)
    else:
        raise CategoryNotSupportedError(
            source.name, f"pushing {change.operation.value} of {change.entity_type}"
        )


async def sync_push(source: BaseSource, outbox: JsonlOutbox) -> PushResult:
    """Push every pending outbox entry that does not conflict with hosted state.

    Entries with no matching write operation (KB articles, rules, message
    edits) fail without touching the hosted system. A hosted state read
    failure aborts the push with nothing applied. A failure applying one
    entry is recorded and leaves that entry queued, except a rejected token
    which aborts the push.

    Args:
        source: Connected source adapter
        outbox: Outbox holding the queued changes

    Returns:
        Counts of pushed, conflicted and failed entries
    """
    push_logger = logger.with_context(connector=source.short_name, outbox=str(outbox.path))
    result = PushResult()

    pending = await outbox.pending()
    if not pending:
        return result

    pushable = []
    for change in pending:
        if is_pushable(change):
            pushable.append(change)
        else:
            result.failed += 1
            result.errors.append(
                f"{change.id}: cannot push {change.operation.value} of {change.entity_type}"
            )

    hosted: Dict[str, HostedEntity] = {}
    if any(c.entity_type == "ticket" and c.operation != ChangeOperation.CREATE for c in pushable):
        try:
            hosted = await fetch_hosted_tickets(source)
        except ConnectorError as e:
            push_logger.error(f"Failed to read hosted state: {e}")
            result.errors.append(f"Failed to fetch hosted state: {e}")
            return result

    # Message creates are checked by the create rule and never conflict
    partition = partition_changes(pushable, hosted)
    for conflict in partition.conflicted:
        push_logger.warning(f"Conflict on {conflict.entity_id}: {conflict.reason}")
    result.conflicts = len(partition.conflicted)
    result.conflicted = partition.conflicted

    pushed_ids = []
    for change in partition.safe:
        try:
            await apply_change(source, change)
        except ConnectorError as e:
            if source.is_fatal(e):
                # Changes already applied must not be pushed again
                await outbox.retire(pushed_ids)
                raise
            result.failed += 1
            result.errors.append(f"{change.id}: {e}")
            push_logger.warning(f"Failed to push {change.id}: {e}")
            continue
        except ValueError as e:
            result.failed += 1
            result.errors.append(f"{change.id}: {e}")
            push_logger.warning(f"Invalid change {change.id}: {e}")
            continue
        pushed_ids.append(change.id)

    if pushed_ids:
        result.pushed = await outbox.retire(pushed_ids)
    push_logger.info(
        f"Push finished: {result.pushed} pushed, {result.conflicts} conflicts, "
        f"{result.failed} failed"
    )
    return result


async def push_connector(
    connector: str,
    out_dir: Optional[Union[str, Path]] = None,
    credentials: Optional[Dict[str, Any]] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> PushResult:
    """Push the outbox stored in a connector's export directory.

    Raises:
        UnknownConnectorError: If no adapter is registered under ``connector``
        MissingCredentialsError: If no credentials are available
    """
    from deskbridge.platform.sources import get_source_class

    source_class = get_source_class(connector)
    credentials = credentials or settings.connector_credentials(connector)
    if not credentials:
        raise MissingCredentialsError(connector)

    target = Path(out_dir) if out_dir is not None else (
        StoragePaths.export_dir(settings.data_dir, connector)
    )
    source = await source_class.create(credentials, http_client=http_client)
    try:
        return await sync_push(source, JsonlOutbox(StoragePaths.outbox_file(target)))
    finally:
        await source.close()
