"""Property-based tests for sandbox cloning using Hypothesis."""

import asyncio
import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from deskbridge.platform.sandbox import clone_to_sandbox, get_sandbox_dir
from deskbridge.platform.storage import StoragePaths, read_jsonl, write_jsonl

RAW_IDS = st.text(alphabet="abcdef0123456789-", min_size=1, max_size=6)


@st.composite
def exports(draw):
    ticket_ids = draw(st.lists(RAW_IDS.map("t-{}".format), unique=True, max_size=6))
    org_ids = draw(st.lists(RAW_IDS.map("o-{}".format), unique=True, max_size=4))
    # Foreign keys point at existing records or dangle
    ticket_refs = st.one_of(st.sampled_from(ticket_ids), RAW_IDS) if ticket_ids else RAW_IDS
    org_refs = st.one_of(st.sampled_from(org_ids), st.none()) if org_ids else st.none()

    messages = [
        {"id": f"m-{i}", "ticketId": draw(ticket_refs)}
        for i in range(draw(st.integers(min_value=0, max_value=8)))
    ]
    customers = []
    for i in range(draw(st.integers(min_value=0, max_value=5))):
        customer = {"id": f"u-{i}"}
        org_id = draw(org_refs)
        if org_id is not None:
            customer["orgId"] = org_id
        customers.append(customer)

    return {
        "tickets": [{"id": t, "subject": "s"} for t in ticket_ids],
        "messages": messages,
        "customers": customers,
        "organizations": [{"id": o, "name": o} for o in org_ids],
    }


async def _clone(files, root: Path):
    source_dir = root / "export"
    for category, records in files.items():
        await write_jsonl(StoragePaths.category_file(source_dir, category), records)
    manifest = await clone_to_sandbox("prop", source_dir, data_dir=root)
    sandbox_dir = get_sandbox_dir("prop", root)
    cloned = {
        category: await read_jsonl(sandbox_dir / StoragePaths.CATEGORY_FILES[category])
        for category in files
    }
    return manifest, cloned


@settings(max_examples=40, deadline=None)
@given(exports())
def test_clone_mapping_is_injective_and_foreign_keys_resolve(files):
    """Every id gets a distinct new id and every foreign key follows the mapping."""
    with tempfile.TemporaryDirectory() as tmp:
        manifest, cloned = asyncio.run(_clone(files, Path(tmp)))

    mappings = manifest.id_mappings
    new_ids = set(mappings.values())
    assert len(new_ids) == len(mappings)
    assert new_ids.isdisjoint(mappings)

    for category, records in files.items():
        assert len(cloned[category]) == len(records)
        for original, copy in zip(records, cloned[category]):
            assert copy["id"] == mappings[original["id"]]
            for fk in ("ticketId", "orgId"):
                if fk in original:
                    assert copy[fk] in new_ids
                    assert copy[fk] == mappings[original[fk]]
