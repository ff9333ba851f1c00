"""Tests for storage path builders."""

import pytest

from deskbridge.core.exceptions import InvalidSandboxIdError
from deskbridge.platform.storage import StoragePaths


def test_export_and_category_paths(tmp_path):
    """Test the export directory layout."""
    export_dir = StoragePaths.export_dir(tmp_path, "zendesk")

    assert export_dir == tmp_path / "exports" / "zendesk"
    assert StoragePaths.category_file(export_dir, "kb_articles").name == "kb_articles.jsonl"
    assert StoragePaths.manifest_file(export_dir).name == "manifest.json"


def test_sandbox_dir_accepts_plain_ids(tmp_path):
    """Test that letters, digits, underscores and dashes are accepted."""
    path = StoragePaths.sandbox_dir(tmp_path, "team_1-x")

    assert path == (tmp_path / "sandboxes" / "team_1-x").resolve()


@pytest.mark.parametrize(
    "sandbox_id",
    ["", "../../etc", "a..b", "a/b", "a\\b", "sp ace", "..", "abc\n", "\nabc"],
)
def test_sandbox_dir_rejects_escaping_ids(tmp_path, sandbox_id):
    """Test that ids which could leave the sandbox root are rejected."""
    with pytest.raises(InvalidSandboxIdError):
        StoragePaths.sandbox_dir(tmp_path, sandbox_id)
