"""Base cursor class for resumable exports."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseCursor(BaseModel):
    """Base cursor for sources with resumable (incremental) endpoints.

    A cursor is persisted as the manifest's ``cursorState`` map and read back at
    the start of the next incremental run. Keys are camelCase on disk.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        # Keep cursors written by other versions
        extra="allow",
    )

    def to_state(self) -> Dict[str, str]:
        """Serialize to the manifest ``cursorState`` map, dropping empty cursors."""
        return {
            key: str(value)
            for key, value in self.model_dump(by_alias=True).items()
            if value not in (None, "")
        }

    @classmethod
    def from_state(cls, state: Optional[Dict[str, str]]):
        """Build a cursor from a manifest ``cursorState`` map (None gives an empty cursor)."""
        return cls.model_validate(state or {})

    def is_empty(self) -> bool:
        """Whether no position has been recorded yet."""
        return not self.to_state()
