"""Filesystem storage backend for deskbridge.

Holds the JSON documents next to the JSONL files (export manifests, sandbox
clone manifests) and removes whole sandbox trees. Paths are relative to the
backend root.

Usage:
    backend = FilesystemBackend(export_dir)
    await backend.write_json("manifest.json", manifest.to_record())
    data = await backend.read_json("manifest.json")
"""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Union

import aiofiles

from deskbridge.core.logging import logger
from deskbridge.platform.storage.exceptions import (
    StorageException,
    StorageNotFoundError,
)


class FilesystemBackend:
    """JSON documents and directory removal under one root directory."""

    def __init__(self, base_path: Union[str, Path]):
        """Initialize the backend, creating ``base_path`` if needed.

        Args:
            base_path: Root directory, usually an export or sandbox directory
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, name: str) -> Path:
        return self.base_path / name.replace("/", os.sep)

    async def write_json(self, name: str, data: Dict[str, Any]) -> None:
        """Write a JSON document.

        The document is written to a ``.tmp`` sibling first and moved into
        place, so readers never see a half-written manifest.

        Raises:
            StorageException: If the file cannot be written
        """
        target = self._resolve(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = target.with_name(target.name + ".tmp")

        try:
            async with aiofiles.open(staging, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False, default=str))
            os.replace(staging, target)
        except OSError as e:
            raise StorageException(f"Failed to write {target}: {e}")

    async def read_json(self, name: str) -> Dict[str, Any]:
        """Read a JSON document.

        Raises:
            StorageNotFoundError: If the file does not exist
            StorageException: If the file is unreadable or not valid JSON
        """
        target = self._resolve(name)
        if not target.exists():
            raise StorageNotFoundError(f"No such document: {target}")

        try:
            async with aiofiles.open(target, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except json.JSONDecodeError as e:
            raise StorageException(f"Invalid JSON in {target}: {e}")
        except OSError as e:
            raise StorageException(f"Failed to read {target}: {e}")

    async def delete(self, name: str) -> bool:
        """Remove a file or a whole directory tree.

        Returns:
            False if nothing was there or removal failed
        """
        target = self._resolve(name)
        if not target.exists():
            return False

        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as e:
            logger.error(f"Failed to remove {target}: {e}")
            return False
        logger.debug(f"Removed {target}")
        return True
