"""Source-specific records exported next to the core categories.

Only some sources expose these (Zendesk exposes all of them). Each type has
its own file; the clone and sync flows work on the core categories only.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field

from deskbridge.platform.entities._base import CanonicalRecord

EXTRA_CATEGORIES = (
    "groups",
    "custom_fields",
    "views",
    "ticket_forms",
    "brands",
    "audit_events",
    "csat_ratings",
    "time_entries",
)


class Group(CanonicalRecord):
    """An agent group."""

    external_id: str
    source: str
    name: str


class CustomField(CanonicalRecord):
    """A custom field definition."""

    external_id: str
    source: str
    object_type: str = Field(..., description="Record type the field belongs to")
    name: str
    field_type: str
    required: bool = False
    options: Optional[List[Dict[str, Any]]] = Field(
        None, description="Allowed values as {value, label} pairs"
    )


class View(CanonicalRecord):
    """A saved ticket view."""

    external_id: str
    source: str
    name: str
    query: Any = Field(None, description="Source-native view conditions")
    active: bool = True


class TicketForm(CanonicalRecord):
    """A ticket form and the fields it shows."""

    external_id: str
    source: str
    name: str
    active: bool = True
    position: Optional[int] = None
    field_ids: List[int] = Field(default_factory=list)
    raw: Optional[Dict[str, Any]] = None


class Brand(CanonicalRecord):
    """A brand of a multi-brand account."""

    external_id: str
    source: str
    name: str
    raw: Optional[Dict[str, Any]] = None


class AuditEvent(CanonicalRecord):
    """One ticket audit with its events."""

    external_id: str
    source: str
    ticket_id: str
    author_id: Optional[str] = None
    event_type: str = "audit"
    created_at: str
    raw: Optional[Dict[str, Any]] = None


class CSATRating(CanonicalRecord):
    """A satisfaction rating: 1 good, -1 bad, 0 offered or unknown."""

    external_id: str
    source: str
    ticket_id: Optional[str] = None
    rating: int = 0
    comment: Optional[str] = None
    created_at: str


class TimeEntry(CanonicalRecord):
    """Time tracked on a ticket."""

    external_id: str
    source: str
    ticket_id: str
    agent_id: Optional[str] = None
    minutes: int = 0
    created_at: str
