"""Property-based tests for conflict detection using Hypothesis."""

from datetime import datetime, timezone

from hypothesis import given
from hypothesis import strategies as st

from deskbridge.platform.sync.conflict import (
    ChangeOperation,
    HostedEntity,
    LocalChange,
    detect_conflicts,
    partition_changes,
)

# A small id pool so changes and hosted entities overlap often
ENTITY_IDS = st.sampled_from(["zd-1", "zd-2", "zd-3", "zd-4"])
TIMESTAMPS = st.datetimes(
    min_value=datetime(2024, 1, 1),
    max_value=datetime(2024, 1, 2),
    timezones=st.just(timezone.utc),
)


@st.composite
def local_changes(draw):
    count = draw(st.integers(min_value=0, max_value=12))
    return [
        LocalChange(
            id=f"chg-{i}",
            entity_type="ticket",
            entity_id=draw(ENTITY_IDS),
            operation=draw(st.sampled_from(list(ChangeOperation))),
            created_at=draw(TIMESTAMPS),
        )
        for i in range(count)
    ]


@st.composite
def hosted_maps(draw):
    ids = draw(st.sets(ENTITY_IDS))
    return {
        entity_id: HostedEntity(entity_id=entity_id, updated_at=draw(TIMESTAMPS))
        for entity_id in ids
    }


@given(local_changes(), hosted_maps())
def test_creates_never_conflict(changes, hosted):
    """No create operation ever appears among the conflicts."""
    conflicts = detect_conflicts(changes, hosted)

    assert all(c.local_change.operation != ChangeOperation.CREATE for c in conflicts)


@given(local_changes(), hosted_maps())
def test_conflict_iff_missing_or_hosted_newer(changes, hosted):
    """A non-create change conflicts exactly when hosted is gone or strictly newer."""
    conflicted = {c.outbox_id: c for c in detect_conflicts(changes, hosted)}

    for change in changes:
        current = hosted.get(change.entity_id)
        if change.operation == ChangeOperation.CREATE:
            expected = False
        elif current is None:
            expected = True
        else:
            expected = current.updated_at > change.created_at
        assert (change.id in conflicted) == expected
        if expected and current is None:
            assert conflicted[change.id].hosted_version is None


@given(local_changes(), hosted_maps())
def test_partition_is_complete_and_order_preserving(changes, hosted):
    """Every change lands in exactly one partition, in input order."""
    result = partition_changes(changes, hosted)
    safe_ids = [c.id for c in result.safe]
    conflicted_ids = [c.outbox_id for c in result.conflicted]
    input_ids = [c.id for c in changes]

    assert len(safe_ids) + len(conflicted_ids) == len(changes)
    assert set(safe_ids).isdisjoint(conflicted_ids)
    assert safe_ids == [i for i in input_ids if i in set(safe_ids)]
    assert conflicted_ids == [i for i in input_ids if i in set(conflicted_ids)]
    assert conflicted_ids == [c.outbox_id for c in detect_conflicts(changes, hosted)]
