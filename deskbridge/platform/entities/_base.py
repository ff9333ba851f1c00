"""Base classes and enums for canonical records."""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TicketStatus(str, Enum):
    """Canonical ticket status."""

    OPEN = "open"
    PENDING = "pending"
    ON_HOLD = "on_hold"
    SOLVED = "solved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    """Canonical ticket priority."""

    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class MessageType(str, Enum):
    """Canonical message type."""

    MESSAGE = "message"
    REPLY = "reply"
    NOTE = "note"


class CanonicalRecord(BaseModel):
    """Base class for all canonical records.

    Field names are snake_case in Python and camelCase on disk
    (``external_id`` <-> ``externalId``). Unknown keys are kept so records
    written by a newer version survive a read/write round trip.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        use_enum_values=True,
    )

    id: str

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the on-disk JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
