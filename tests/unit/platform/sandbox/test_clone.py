"""Tests for sandbox cloning."""

import pytest
import pytest_asyncio

from deskbridge.core.exceptions import InvalidSandboxIdError
from deskbridge.platform.sandbox import (
    CloneOptions,
    clone_to_sandbox,
    get_clone_manifest,
    get_sandbox_dir,
    list_sandbox_files,
    teardown_sandbox,
)
from deskbridge.platform.storage import StoragePaths, read_jsonl, write_jsonl


@pytest_asyncio.fixture
async def export_dir(tmp_path):
    """A small export with tickets, messages, customers, orgs, KB and rules."""
    out = tmp_path / "export"
    files = {
        "tickets": [{"id": "zd-1", "subject": "A"}, {"id": "zd-2", "subject": "B"}],
        "messages": [
            {"id": "zd-msg-1", "ticketId": "zd-1"},
            {"id": "zd-msg-2", "ticketId": "zd-2"},
            {"id": "zd-msg-3", "ticketId": "zd-gone"},
        ],
        "customers": [{"id": "zd-user-1", "orgId": "zd-org-1"}, {"id": "zd-user-2"}],
        "organizations": [{"id": "zd-org-1", "name": "Acme"}],
        "kb_articles": [{"id": "zd-kb-1", "title": "Reset"}],
        "rules": [{"id": "zd-macro-1", "type": "macro"}],
    }
    for category, records in files.items():
        await write_jsonl(StoragePaths.category_file(out, category), records)
    return out


@pytest.mark.asyncio
async def test_clone_remaps_ids_and_foreign_keys(export_dir, tmp_path):
    """Test that every id is replaced and foreign keys follow the mapping."""
    manifest = await clone_to_sandbox("s1", export_dir, data_dir=tmp_path)
    sandbox = get_sandbox_dir("s1", tmp_path)
    mappings = manifest.id_mappings

    assert len(set(mappings.values())) == len(mappings)
    assert all(new.startswith("sbx-") for new in mappings.values())

    tickets = await read_jsonl(sandbox / "tickets.jsonl")
    messages = await read_jsonl(sandbox / "messages.jsonl")
    customers = await read_jsonl(sandbox / "customers.jsonl")
    orgs = await read_jsonl(sandbox / "organizations.jsonl")

    assert [t["id"] for t in tickets] == [mappings["zd-1"], mappings["zd-2"]]
    assert messages[0]["ticketId"] == tickets[0]["id"]
    assert messages[1]["ticketId"] == tickets[1]["id"]
    # Dangling references still get a sandbox id
    assert messages[2]["ticketId"] == mappings["zd-gone"]
    assert customers[0]["orgId"] == orgs[0]["id"]
    assert "orgId" not in customers[1]
    assert tickets[0]["subject"] == "A"


@pytest.mark.asyncio
async def test_source_files_are_untouched(export_dir, tmp_path):
    """Test that cloning leaves the export as it was."""
    await clone_to_sandbox("s2", export_dir, data_dir=tmp_path)

    tickets = await read_jsonl(StoragePaths.category_file(export_dir, "tickets"))
    assert [t["id"] for t in tickets] == ["zd-1", "zd-2"]


@pytest.mark.asyncio
async def test_clone_options_select_files(export_dir, tmp_path):
    """Test that excluded groups are not cloned."""
    options = CloneOptions(include_rules=False, include_kb=False)

    manifest = await clone_to_sandbox("s3", export_dir, options=options, data_dir=tmp_path)

    assert "rules.jsonl" not in manifest.cloned_files
    assert list_sandbox_files("s3", tmp_path) == [
        "customers.jsonl",
        "messages.jsonl",
        "organizations.jsonl",
        "tickets.jsonl",
    ]


@pytest.mark.asyncio
async def test_manifest_round_trip(export_dir, tmp_path):
    """Test that the stored clone manifest loads back."""
    manifest = await clone_to_sandbox(
        "s4", export_dir, options=CloneOptions(includeRules=False), data_dir=tmp_path
    )

    loaded = await get_clone_manifest("s4", tmp_path)

    assert loaded.id_mappings == manifest.id_mappings
    assert loaded.cloned_files == manifest.cloned_files
    assert loaded.options.include_rules is False
    assert await get_clone_manifest("missing", tmp_path) is None


@pytest.mark.asyncio
async def test_teardown(export_dir, tmp_path):
    """Test that teardown removes the sandbox once."""
    await clone_to_sandbox("s5", export_dir, data_dir=tmp_path)

    assert await teardown_sandbox("s5", tmp_path) is True
    assert not get_sandbox_dir("s5", tmp_path).exists()
    assert await teardown_sandbox("s5", tmp_path) is False
    assert list_sandbox_files("s5", tmp_path) == []


@pytest.mark.asyncio
async def test_invalid_sandbox_id(export_dir, tmp_path):
    """Test that path traversal ids are rejected before anything is written."""
    with pytest.raises(InvalidSandboxIdError):
        await clone_to_sandbox("../escape", export_dir, data_dir=tmp_path)

    assert not (tmp_path / "escape").exists()
