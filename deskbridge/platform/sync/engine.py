"""Sync engine: one export cycle per call, plus status lookups."""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from deskbridge.core.config import settings
from deskbridge.core.exceptions import MissingCredentialsError
from deskbridge.core.logging import logger
from deskbridge.platform.entities import ExportCounts
from deskbridge.platform.storage import StoragePaths, load_manifest
from deskbridge.platform.sync.export_pipeline import export_source


class SyncStats(BaseModel):
    """Outcome of one sync cycle."""

    connector: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    counts: ExportCounts = Field(default_factory=ExportCounts)
    cursor_state: Optional[Dict[str, str]] = None
    full_sync: bool = False
    error: Optional[str] = None


class SyncStatus(BaseModel):
    """Last known export state of a connector."""

    connector: str
    configured: bool
    last_export_at: Optional[str] = None
    counts: Optional[ExportCounts] = None
    cursor_state: Optional[Dict[str, str]] = None


class ConnectorInfo(BaseModel):
    """A registered connector and whether credentials are available for it."""

    short_name: str
    name: str
    configured: bool


def _export_dir(connector: str, out_dir: Optional[Union[str, Path]]) -> Path:
    if out_dir is not None:
        return Path(out_dir)
    return StoragePaths.export_dir(settings.data_dir, connector)


async def run_sync_cycle(
    connector: str,
    full_sync: bool = False,
    out_dir: Optional[Union[str, Path]] = None,
    credentials: Optional[Dict[str, Any]] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SyncStats:
    """Run one export of a connector.

    Incremental runs resume from the ``cursorState`` of the previous manifest.
    Failures never escape: they are captured in ``SyncStats.error``.

    Args:
        connector: Connector short name
        full_sync: Ignore any stored cursor and rewrite all files
        out_dir: Export directory (defaults to ``<data dir>/exports/<connector>``)
        credentials: Credentials (defaults to the environment)
        http_client: Optional pre-built httpx client

    Returns:
        Statistics of the cycle
    """
    # Importing the package registers every adapter
    from deskbridge.platform.sources import get_source_class

    cycle_logger = logger.with_context(connector=connector)
    stats = SyncStats(
        connector=connector, started_at=datetime.now(timezone.utc), full_sync=full_sync
    )
    start = time.monotonic()
    target = _export_dir(connector, out_dir)

    source = None
    try:
        source_class = get_source_class(connector)
        credentials = credentials or settings.connector_credentials(connector)
        if not credentials:
            raise MissingCredentialsError(connector)

        cursor_state = None
        if not full_sync:
            previous = await load_manifest(target)
            if previous is not None:
                cursor_state = previous.cursor_state

        cycle_logger.info(
            f"Starting {'full' if full_sync or not cursor_state else 'incremental'} sync"
        )
        source = await source_class.create(
            credentials, http_client=http_client, cursor_state=cursor_state
        )
        manifest = await export_source(source, target, cursor_state=cursor_state)
        stats.counts = manifest.counts
        stats.cursor_state = manifest.cursor_state
    except Exception as e:
        cycle_logger.error(f"Sync cycle failed: {e}", exc_info=True)
        stats.error = str(e)
    finally:
        if source is not None:
            await source.close()
        stats.finished_at = datetime.now(timezone.utc)
        stats.duration_ms = int((time.monotonic() - start) * 1000)

    return stats


async def get_sync_status(
    connector: str, out_dir: Optional[Union[str, Path]] = None
) -> SyncStatus:
    """Report the last export of a connector from its manifest."""
    manifest = await load_manifest(_export_dir(connector, out_dir))
    status = SyncStatus(
        connector=connector,
        configured=settings.connector_credentials(connector) is not None,
    )
    if manifest is not None:
        status.last_export_at = manifest.exported_at
        status.counts = manifest.counts
        status.cursor_state = manifest.cursor_state
    return status


def list_connectors() -> List[ConnectorInfo]:
    """List registered connectors with their configuration state."""
    from deskbridge.platform.sources import get_source_class, list_sources

    return [
        ConnectorInfo(
            short_name=short_name,
            name=get_source_class(short_name)._name,
            configured=settings.connector_credentials(short_name) is not None,
        )
        for short_name in list_sources()
    ]
