"""JSONL outbox of local changes waiting to be applied to the hosted system."""

from pathlib import Path
from typing import Iterable, List, Union

from pydantic import ValidationError

from deskbridge.core.logging import logger
from deskbridge.platform.storage import append_jsonl, read_jsonl, write_jsonl
from deskbridge.platform.sync.conflict import LocalChange


class JsonlOutbox:
    """Append-only queue of ``LocalChange`` entries stored as JSON lines."""

    def __init__(self, path: Union[str, Path]):
        """Initialize the outbox at ``path``."""
        self.path = Path(path)

    async def enqueue(self, change: LocalChange) -> None:
        """Append a change."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        record = change.model_dump(by_alias=True, mode="json")
        await append_jsonl(self.path, record)

    async def pending(self) -> List[LocalChange]:
        """All queued changes in enqueue order; invalid entries are skipped."""
        changes = []
        for record in await read_jsonl(self.path):
            try:
                changes.append(LocalChange.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid outbox entry in {self.path}: {e}")
        return changes

    async def retire(self, change_ids: Iterable[str]) -> int:
        """Remove applied changes.

        Returns:
            Number of entries removed
        """
        retired = set(change_ids)
        records = await read_jsonl(self.path)
        kept = [r for r in records if r.get("id") not in retired]
        removed = len(records) - len(kept)
        if removed:
            await write_jsonl(self.path, kept)
        return removed
