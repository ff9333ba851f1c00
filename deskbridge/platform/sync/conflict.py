"""Conflict detection between queued local changes and hosted state.

A local change conflicts when the hosted entity was deleted, or was updated
after the change was made. Creates never conflict. Everything here is pure;
callers fetch hosted state and decide what to do with conflicts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChangeOperation(str, Enum):
    """Kind of local mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class _ConflictModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocalChange(_ConflictModel):
    """A mutation made locally and not yet applied to the hosted system."""

    id: str = Field(..., description="Outbox entry id")
    entity_type: str = Field(..., description="Canonical record type, e.g. ticket")
    entity_id: str = Field(..., description="Canonical id of the changed entity")
    operation: ChangeOperation
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(..., description="When the change was made locally")

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        return _as_utc(value)


class HostedEntity(_ConflictModel):
    """Current hosted version of an entity."""

    entity_id: str
    updated_at: datetime
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("updated_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        return _as_utc(value)


class Conflict(_ConflictModel):
    """A local change that can no longer be applied blindly."""

    outbox_id: str = Field(..., description="Id of the conflicting outbox entry")
    entity_id: str
    entity_type: str
    local_change: LocalChange
    hosted_version: Optional[HostedEntity] = None
    reason: str


class PartitionResult(_ConflictModel):
    """Changes split into those safe to apply and those in conflict."""

    safe: List[LocalChange] = Field(default_factory=list)
    conflicted: List[Conflict] = Field(default_factory=list)


def _conflict(change: LocalChange, hosted: Optional[HostedEntity], reason: str) -> Conflict:
    return Conflict(
        outbox_id=change.id,
        entity_id=change.entity_id,
        entity_type=change.entity_type,
        local_change=change,
        hosted_version=hosted,
        reason=reason,
    )


def find_conflict(
    change: LocalChange, hosted: Mapping[str, HostedEntity]
) -> Optional[Conflict]:
    """Classify a single change against hosted state.

    Returns:
        The conflict, or None when the change is safe to apply
    """
    if change.operation == ChangeOperation.CREATE:
        return None

    current = hosted.get(change.entity_id)
    if current is None:
        return _conflict(change, None, "Entity was deleted on hosted side")

    if current.updated_at > change.created_at:
        return _conflict(
            change,
            current,
            f"Hosted was updated at {current.updated_at.isoformat()}, "
            f"after local change at {change.created_at.isoformat()}",
        )
    return None


def detect_conflicts(
    changes: Sequence[LocalChange], hosted: Mapping[str, HostedEntity]
) -> List[Conflict]:
    """Return the conflicts among ``changes``, in input order."""
    conflicts = []
    for change in changes:
        conflict = find_conflict(change, hosted)
        if conflict is not None:
            conflicts.append(conflict)
    return conflicts


def partition_changes(
    changes: Sequence[LocalChange], hosted: Mapping[str, HostedEntity]
) -> PartitionResult:
    """Split changes into safe and conflicted, keeping relative order in each."""
    result = PartitionResult()
    for change in changes:
        conflict = find_conflict(change, hosted)
        if conflict is None:
            result.safe.append(change)
        else:
            result.conflicted.append(conflict)
    return result
