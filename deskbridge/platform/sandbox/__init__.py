"""Sandbox clones of exported data with remapped identifiers."""

from deskbridge.platform.sandbox.clone import (
    CloneManifest,
    CloneOptions,
    clone_to_sandbox,
    get_clone_manifest,
    get_sandbox_dir,
    list_sandbox_files,
    teardown_sandbox,
)

__all__ = [
    "CloneManifest",
    "CloneOptions",
    "clone_to_sandbox",
    "get_clone_manifest",
    "get_sandbox_dir",
    "list_sandbox_files",
    "teardown_sandbox",
]
