"""Clone canonical files into an isolated sandbox directory.

Every record id in the cloned files gets a fresh sandbox id, and foreign keys
(``Message.ticketId``, ``Customer.orgId``) are rewritten through the same
mapping so references stay consistent inside the sandbox.
"""

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from deskbridge.core.config import settings
from deskbridge.core.logging import logger
from deskbridge.platform.storage import (
    FilesystemBackend,
    StorageException,
    StoragePaths,
    read_jsonl,
    write_jsonl,
)

# Foreign key fields per category
FOREIGN_KEYS: Dict[str, Tuple[str, ...]] = {
    "tickets": (),
    "messages": ("ticketId",),
    "customers": ("orgId",),
    "organizations": (),
    "kb_articles": (),
    "rules": (),
}


class CloneOptions(BaseModel):
    """Which groups of canonical files to clone."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    include_tickets: bool = Field(True, description="tickets.jsonl and messages.jsonl")
    include_customers: bool = Field(True, description="customers.jsonl and organizations.jsonl")
    include_kb: bool = Field(True, description="kb_articles.jsonl")
    include_rules: bool = Field(True, description="rules.jsonl")

    def categories(self) -> List[str]:
        """Selected categories, in clone order."""
        selected = []
        if self.include_tickets:
            selected += ["tickets", "messages"]
        if self.include_customers:
            selected += ["customers", "organizations"]
        if self.include_kb:
            selected.append("kb_articles")
        if self.include_rules:
            selected.append("rules")
        return selected


class CloneManifest(BaseModel):
    """Record of one clone, stored as ``_manifest.json`` in the sandbox."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sandbox_id: str
    source_dir: str
    sandbox_dir: str
    cloned_files: List[str] = Field(default_factory=list)
    id_mappings: Dict[str, str] = Field(default_factory=dict, description="Original id -> new id")
    cloned_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    options: CloneOptions = Field(default_factory=CloneOptions)


def get_sandbox_dir(sandbox_id: str, data_dir: Optional[Union[str, Path]] = None) -> Path:
    """Directory of a sandbox.

    Raises:
        InvalidSandboxIdError: If the id is empty or could escape the sandbox root
    """
    return StoragePaths.sandbox_dir(data_dir or settings.data_dir, sandbox_id)


def _new_id() -> str:
    return f"sbx-{uuid.uuid4().hex[:16]}"


def _assign(id_mappings: Dict[str, str], old_id: Any) -> None:
    if isinstance(old_id, str) and old_id and old_id not in id_mappings:
        id_mappings[old_id] = _new_id()


async def clone_to_sandbox(
    sandbox_id: str,
    source_dir: Union[str, Path],
    options: Optional[CloneOptions] = None,
    data_dir: Optional[Union[str, Path]] = None,
) -> CloneManifest:
    """Clone the selected canonical files of ``source_dir`` into a sandbox.

    Ids are collected from every selected file first, so a foreign key is
    remapped even when its target lives in a file cloned later. A foreign
    key whose target is not part of the clone still gets a fresh id of its
    own.

    Args:
        sandbox_id: Sandbox identifier (letters, digits, ``_`` and ``-``)
        source_dir: Export directory to clone from
        options: File selection (defaults to everything)
        data_dir: Data root (defaults to the configured one)

    Returns:
        The persisted clone manifest

    Raises:
        InvalidSandboxIdError: If the sandbox id is invalid
    """
    options = options or CloneOptions()
    sandbox_dir = get_sandbox_dir(sandbox_id, data_dir)
    sandbox_dir.mkdir(parents=True, exist_ok=True)
    clone_logger = logger.with_context(sandbox=sandbox_id)

    loaded: Dict[str, List[Dict[str, Any]]] = {}
    for category in options.categories():
        path = StoragePaths.category_file(source_dir, category)
        if path.exists():
            loaded[category] = await read_jsonl(path)

    id_mappings: Dict[str, str] = {}
    for records in loaded.values():
        for record in records:
            _assign(id_mappings, record.get("id"))

    cloned_files = []
    for category, records in loaded.items():
        foreign_keys = FOREIGN_KEYS.get(category, ())
        remapped = []
        for record in records:
            record = dict(record)
            if record.get("id") in id_mappings:
                record["id"] = id_mappings[record["id"]]
            for fk in foreign_keys:
                _assign(id_mappings, record.get(fk))
                if record.get(fk) in id_mappings:
                    record[fk] = id_mappings[record[fk]]
            remapped.append(record)

        file_name = StoragePaths.CATEGORY_FILES[category]
        await write_jsonl(sandbox_dir / file_name, remapped)
        cloned_files.append(file_name)
        clone_logger.debug(f"Cloned {len(remapped)} records into {file_name}")

    manifest = CloneManifest(
        sandbox_id=sandbox_id,
        source_dir=str(source_dir),
        sandbox_dir=str(sandbox_dir),
        cloned_files=cloned_files,
        id_mappings=id_mappings,
        options=options,
    )
    backend = FilesystemBackend(sandbox_dir)
    await backend.write_json(
        StoragePaths.CLONE_MANIFEST_FILE, manifest.model_dump(by_alias=True, mode="json")
    )
    clone_logger.info(f"Cloned {len(cloned_files)} files with {len(id_mappings)} remapped ids")
    return manifest


async def get_clone_manifest(
    sandbox_id: str, data_dir: Optional[Union[str, Path]] = None
) -> Optional[CloneManifest]:
    """Load the manifest of a sandbox; None when missing or unreadable."""
    sandbox_dir = get_sandbox_dir(sandbox_id, data_dir)
    if not (sandbox_dir / StoragePaths.CLONE_MANIFEST_FILE).exists():
        return None
    try:
        data = await FilesystemBackend(sandbox_dir).read_json(StoragePaths.CLONE_MANIFEST_FILE)
        return CloneManifest.model_validate(data)
    except (StorageException, ValidationError) as e:
        logger.warning(f"Ignoring unreadable clone manifest of sandbox {sandbox_id}: {e}")
        return None


def list_sandbox_files(
    sandbox_id: str, data_dir: Optional[Union[str, Path]] = None
) -> List[str]:
    """Names of the JSONL files in a sandbox."""
    sandbox_dir = get_sandbox_dir(sandbox_id, data_dir)
    if not sandbox_dir.exists():
        return []
    return sorted(p.name for p in sandbox_dir.iterdir() if p.suffix == ".jsonl")


async def teardown_sandbox(sandbox_id: str, data_dir: Optional[Union[str, Path]] = None) -> bool:
    """Delete a sandbox directory.

    Returns:
        False if the sandbox did not exist
    """
    sandbox_dir = get_sandbox_dir(sandbox_id, data_dir)
    if not sandbox_dir.exists():
        return False
    removed = await FilesystemBackend(sandbox_dir.parent).delete(sandbox_dir.name)
    if removed:
        logger.info(f"Removed sandbox {sandbox_id}")
    return removed
