"""Centralized path constants for deskbridge storage.

All export, sandbox and outbox file names should be defined here for consistency.
"""

import re
from pathlib import Path
from typing import Union

from deskbridge.core.exceptions import InvalidSandboxIdError
from deskbridge.platform.entities import CATEGORIES, EXTRA_CATEGORIES


class StoragePaths:
    """Centralized storage path constants and builders."""

    # =========================================================================
    # Directory and file names
    # =========================================================================

    EXPORTS_DIR = "exports"
    SANDBOXES_DIR = "sandboxes"

    MANIFEST_FILE = "manifest.json"
    CLONE_MANIFEST_FILE = "_manifest.json"
    OUTBOX_FILE = "outbox.jsonl"

    CATEGORY_FILES = {
        category: f"{category}.jsonl" for category in CATEGORIES + EXTRA_CATEGORIES
    }

    _SANDBOX_ID = re.compile(r"[A-Za-z0-9_-]+")

    # =========================================================================
    # Path builders
    # =========================================================================

    @classmethod
    def category_file(cls, out_dir: Union[str, Path], category: str) -> Path:
        """Canonical file of a category: {out_dir}/{category}.jsonl."""
        return Path(out_dir) / cls.CATEGORY_FILES[category]

    @classmethod
    def manifest_file(cls, out_dir: Union[str, Path]) -> Path:
        """Export manifest: {out_dir}/manifest.json."""
        return Path(out_dir) / cls.MANIFEST_FILE

    @classmethod
    def outbox_file(cls, out_dir: Union[str, Path]) -> Path:
        """Outbox of queued local changes: {out_dir}/outbox.jsonl."""
        return Path(out_dir) / cls.OUTBOX_FILE

    @classmethod
    def export_dir(cls, data_dir: Union[str, Path], connector: str) -> Path:
        """Export directory of a connector: {data_dir}/exports/{connector}."""
        return Path(data_dir) / cls.EXPORTS_DIR / connector

    @classmethod
    def sandbox_root(cls, data_dir: Union[str, Path]) -> Path:
        """Root of all sandboxes: {data_dir}/sandboxes."""
        return Path(data_dir) / cls.SANDBOXES_DIR

    @classmethod
    def sandbox_dir(cls, data_dir: Union[str, Path], sandbox_id: str) -> Path:
        """Directory of one sandbox: {data_dir}/sandboxes/{sandbox_id}.

        Raises:
            InvalidSandboxIdError: If the id is empty, contains path separators
                or ``..``, or would resolve outside the sandbox root
        """
        cls.validate_sandbox_id(sandbox_id)
        root = cls.sandbox_root(data_dir).resolve()
        path = (root / sandbox_id).resolve()
        if path.parent != root:
            raise InvalidSandboxIdError(sandbox_id)
        return path

    @classmethod
    def validate_sandbox_id(cls, sandbox_id: str) -> None:
        """Reject ids that could escape the sandbox root."""
        if not isinstance(sandbox_id, str) or not sandbox_id:
            raise InvalidSandboxIdError(str(sandbox_id))
        if ".." in sandbox_id or "/" in sandbox_id or "\\" in sandbox_id:
            raise InvalidSandboxIdError(sandbox_id)
        if not cls._SANDBOX_ID.fullmatch(sandbox_id):
            raise InvalidSandboxIdError(sandbox_id)
