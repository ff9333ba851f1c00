"""Storage module for deskbridge.

Flat-file persistence for canonical records: JSONL category files, export
manifests and a small async filesystem backend.
"""

from deskbridge.platform.storage.backend import FilesystemBackend
from deskbridge.platform.storage.exceptions import StorageException, StorageNotFoundError
from deskbridge.platform.storage.jsonl import (
    JsonlWriter,
    append_jsonl,
    iter_jsonl,
    load_manifest,
    read_jsonl,
    write_jsonl,
    write_manifest,
)
from deskbridge.platform.storage.paths import StoragePaths

__all__ = [
    "FilesystemBackend",
    "JsonlWriter",
    "StorageException",
    "StorageNotFoundError",
    "StoragePaths",
    "append_jsonl",
    "iter_jsonl",
    "load_manifest",
    "read_jsonl",
    "write_jsonl",
    "write_manifest",
]
