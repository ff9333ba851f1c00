"""Tests for JSONL files and export manifests."""

import json

import pytest

from deskbridge.platform.entities import ExportCounts, ExportManifest
from deskbridge.platform.storage import (
    FilesystemBackend,
    JsonlWriter,
    StoragePaths,
    load_manifest,
    read_jsonl,
    write_jsonl,
    write_manifest,
)


@pytest.mark.asyncio
async def test_read_jsonl_skips_blank_and_malformed_lines(tmp_path):
    """Test that only well-formed objects are returned."""
    path = tmp_path / "tickets.jsonl"
    path.write_text('{"id": "a"}\n\nnot json\n[1, 2]\n{"id": "b"}\n', encoding="utf-8")

    records = await read_jsonl(path)

    assert records == [{"id": "a"}, {"id": "b"}]


@pytest.mark.asyncio
async def test_read_jsonl_missing_file(tmp_path):
    """Test that a missing file reads as empty."""
    assert await read_jsonl(tmp_path / "nope.jsonl") == []


@pytest.mark.asyncio
async def test_writer_truncates_or_appends(tmp_path):
    """Test setup() truncation and per-record appends."""
    await write_jsonl(StoragePaths.category_file(tmp_path, "tickets"), [{"id": "old"}])

    resumed = JsonlWriter(tmp_path)
    await resumed.setup(truncate=False)
    await resumed.append("tickets", {"id": "new", "subject": "Ünïcode"})
    assert [r["id"] for r in await read_jsonl(resumed.path("tickets"))] == ["old", "new"]

    fresh = JsonlWriter(tmp_path)
    await fresh.setup(truncate=True)
    assert await read_jsonl(fresh.path("tickets")) == []
    assert fresh.path("rules").exists()


@pytest.mark.asyncio
async def test_writer_always_empties_snapshot_files(tmp_path):
    """Test that snapshot categories are rewritten even when resuming."""
    await write_jsonl(StoragePaths.category_file(tmp_path, "tickets"), [{"id": "old"}])
    await write_jsonl(StoragePaths.category_file(tmp_path, "groups"), [{"id": "zd-group-1"}])

    writer = JsonlWriter(tmp_path, snapshots=("groups",))
    await writer.setup(truncate=False)

    assert [r["id"] for r in await read_jsonl(writer.path("tickets"))] == ["old"]
    assert await read_jsonl(writer.path("groups")) == []
    assert writer.path("groups").name == "groups.jsonl"


@pytest.mark.asyncio
async def test_manifest_written_with_camel_case_keys(tmp_path):
    """Test the on-disk manifest shape and that it loads back."""
    manifest = ExportManifest(
        source="freshdesk",
        counts=ExportCounts(tickets=2, kb_articles=1),
        cursor_state={"updatedSince": "2024-01-01T00:00:00Z"},
    )
    await write_manifest(tmp_path, manifest)

    raw = json.loads(StoragePaths.manifest_file(tmp_path).read_text(encoding="utf-8"))
    assert raw["counts"]["kbArticles"] == 1
    assert raw["cursorState"] == {"updatedSince": "2024-01-01T00:00:00Z"}
    assert "hydrationFailures" not in raw

    loaded = await load_manifest(tmp_path)
    assert loaded.counts.tickets == 2
    assert loaded.cursor_state == manifest.cursor_state


@pytest.mark.asyncio
async def test_load_manifest_missing_or_malformed(tmp_path):
    """Test that unusable manifests load as None."""
    assert await load_manifest(tmp_path) is None

    StoragePaths.manifest_file(tmp_path).write_text("{broken", encoding="utf-8")
    assert await load_manifest(tmp_path) is None

    await FilesystemBackend(tmp_path).write_json(StoragePaths.MANIFEST_FILE, {"counts": {}})
    assert await load_manifest(tmp_path) is None
