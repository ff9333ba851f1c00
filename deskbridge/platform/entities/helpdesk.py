"""Canonical helpdesk records produced by every source adapter."""

from typing import Any, Dict, List, Optional

from pydantic import Field

from deskbridge.platform.entities._base import (
    CanonicalRecord,
    MessageType,
    TicketPriority,
    TicketStatus,
)


class Ticket(CanonicalRecord):
    """A support ticket (or conversation/chat) normalized across sources.

    ``id`` is ``<prefix>-<external_id>`` and therefore deterministic from the
    source and its external id.
    """

    external_id: str = Field(..., description="Identifier in the source system")
    source: str = Field(..., description="Source short name")
    subject: str = Field(..., description="Ticket subject or a derived title")
    status: TicketStatus = Field(TicketStatus.OPEN, description="Canonical status")
    priority: TicketPriority = Field(TicketPriority.NORMAL, description="Canonical priority")
    assignee: Optional[str] = Field(None, description="Assignee identifier in the source")
    requester: str = Field(..., description="Requester identifier in the source")
    tags: List[str] = Field(default_factory=list, description="Ticket tags")
    created_at: str = Field(..., description="ISO 8601 creation timestamp")
    updated_at: str = Field(..., description="ISO 8601 last update timestamp")
    custom_fields: Optional[Dict[str, Any]] = Field(None, description="Custom field values")


class Message(CanonicalRecord):
    """A reply, note or chat message on a ticket."""

    ticket_id: str = Field(..., description="Canonical id of the parent ticket")
    author: str = Field(..., description="Author identifier in the source")
    body: str = Field("", description="Plain text (or source-native) body")
    body_html: Optional[str] = Field(None, description="HTML body when the source provides one")
    type: MessageType = Field(MessageType.REPLY, description="Message type")
    created_at: str = Field(..., description="ISO 8601 creation timestamp")


class Customer(CanonicalRecord):
    """An end user or agent."""

    external_id: str = Field(..., description="Identifier in the source system")
    source: str = Field(..., description="Source short name")
    name: str = Field(..., description="Display name")
    email: str = Field("", description="Primary email")
    phone: Optional[str] = Field(None, description="Primary phone")
    org_id: Optional[str] = Field(None, description="Canonical id of the organization")


class Organization(CanonicalRecord):
    """A company or account customers belong to."""

    external_id: str = Field(..., description="Identifier in the source system")
    source: str = Field(..., description="Source short name")
    name: str = Field(..., description="Organization name")
    domains: List[str] = Field(default_factory=list, description="Known domains or websites")


class KBArticle(CanonicalRecord):
    """A knowledge base article."""

    external_id: str = Field(..., description="Identifier in the source system")
    source: str = Field(..., description="Source short name")
    title: str = Field(..., description="Article title")
    body: str = Field("", description="Article body")
    category_path: List[str] = Field(default_factory=list, description="Category breadcrumb")


class Rule(CanonicalRecord):
    """A business rule: macro, trigger, automation or SLA policy."""

    external_id: str = Field(..., description="Identifier in the source system")
    source: str = Field(..., description="Source short name")
    type: str = Field(..., description="Rule kind (macro, trigger, automation, sla)")
    title: str = Field(..., description="Rule title")
    conditions: Any = Field(None, description="Source-native conditions")
    actions: Any = Field(None, description="Source-native actions")
    active: bool = Field(True, description="Whether the rule is enabled")
