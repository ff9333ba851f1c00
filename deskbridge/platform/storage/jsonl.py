"""Line-delimited JSON files and export manifests.

Canonical files are append-only: every record is written as soon as it is
built, so an interrupted run still leaves valid (if truncated) files behind.
"""

import json
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional, Union

import aiofiles
from pydantic import ValidationError

from deskbridge.core.logging import logger
from deskbridge.platform.entities import CATEGORIES, ExportManifest
from deskbridge.platform.storage.backend import FilesystemBackend
from deskbridge.platform.storage.exceptions import StorageException, StorageNotFoundError
from deskbridge.platform.storage.paths import StoragePaths


class JsonlWriter:
    """Appends canonical records to the per-category files of one export directory."""

    def __init__(
        self,
        out_dir: Union[str, Path],
        categories: Iterable[str] = CATEGORIES,
        snapshots: Iterable[str] = (),
    ):
        """Initialize the writer.

        Args:
            out_dir: Export directory
            categories: Categories whose files this writer owns
            snapshots: Categories re-exported in full on every run, so their
                files are emptied even when resuming
        """
        self.out_dir = Path(out_dir)
        self.categories = tuple(categories)
        self.snapshots = tuple(snapshots)

    def path(self, category: str) -> Path:
        """File of a category."""
        return StoragePaths.category_file(self.out_dir, category)

    async def setup(self, truncate: bool = True) -> None:
        """Create the output directory and the category files.

        Args:
            truncate: Empty existing files; when False (resuming from a cursor)
                existing lines are kept and new records are appended
        """
        self.out_dir.mkdir(parents=True, exist_ok=True)
        mode = "w" if truncate else "a"
        for category in self.categories:
            async with aiofiles.open(self.path(category), mode, encoding="utf-8"):
                pass
        for category in self.snapshots:
            async with aiofiles.open(self.path(category), "w", encoding="utf-8"):
                pass

    async def append(self, category: str, record: Dict[str, Any]) -> None:
        """Append one record as a single JSON line."""
        await append_jsonl(self.path(category), record)


async def append_jsonl(path: Union[str, Path], record: Dict[str, Any]) -> None:
    """Append one record to a JSONL file.

    Raises:
        StorageException: If the file cannot be written
    """
    line = json.dumps(record, ensure_ascii=False, default=str)
    try:
        async with aiofiles.open(path, "a", encoding="utf-8") as f:
            await f.write(line + "\n")
    except OSError as e:
        raise StorageException(f"Failed to append to {path}: {e}")


async def iter_jsonl(path: Union[str, Path]) -> AsyncGenerator[Dict[str, Any], None]:
    """Iterate over the JSON objects of a JSONL file.

    Blank and malformed lines are skipped. A missing file yields nothing.
    """
    path = Path(path)
    if not path.exists():
        return

    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        line_no = 0
        async for line in f:
            line_no += 1
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed line {line_no} in {path}")
                continue
            if isinstance(record, dict):
                yield record


async def read_jsonl(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read every well-formed record of a JSONL file."""
    return [record async for record in iter_jsonl(path)]


async def write_jsonl(path: Union[str, Path], records: Iterable[Dict[str, Any]]) -> None:
    """Replace a JSONL file with the given records."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        for record in records:
            await f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


async def write_manifest(out_dir: Union[str, Path], manifest: ExportManifest) -> None:
    """Write ``manifest.json`` into an export directory."""
    backend = FilesystemBackend(out_dir)
    await backend.write_json(StoragePaths.MANIFEST_FILE, manifest.to_record())


async def load_manifest(out_dir: Union[str, Path]) -> Optional[ExportManifest]:
    """Load the manifest of a previous export.

    Returns:
        The manifest, or None when it is missing or malformed
    """
    if not StoragePaths.manifest_file(out_dir).exists():
        return None
    backend = FilesystemBackend(out_dir)
    try:
        data = await backend.read_json(StoragePaths.MANIFEST_FILE)
        return ExportManifest.model_validate(data)
    except StorageNotFoundError:
        return None
    except (StorageException, ValidationError) as e:
        logger.warning(f"Ignoring unreadable manifest in {out_dir}: {e}")
        return None
