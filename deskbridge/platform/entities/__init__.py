"""Canonical record schemas.

Every source adapter normalizes its API responses into these records.
"""

from ._base import CanonicalRecord, MessageType, TicketPriority, TicketStatus
from .extras import (
    EXTRA_CATEGORIES,
    AuditEvent,
    Brand,
    CSATRating,
    CustomField,
    Group,
    TicketForm,
    TimeEntry,
    View,
)
from .helpdesk import Customer, KBArticle, Message, Organization, Rule, Ticket
from .manifest import CATEGORIES, ExportCounts, ExportManifest

__all__ = [
    "CATEGORIES",
    "EXTRA_CATEGORIES",
    "AuditEvent",
    "Brand",
    "CSATRating",
    "CanonicalRecord",
    "CustomField",
    "Customer",
    "ExportCounts",
    "ExportManifest",
    "Group",
    "KBArticle",
    "Message",
    "MessageType",
    "Organization",
    "Rule",
    "Ticket",
    "TicketForm",
    "TicketPriority",
    "TicketStatus",
    "TimeEntry",
    "View",
]
