#!/usr/bin/env python3
"""
Tests for BackupDiffService.

Tests verify:
1. Keys are reported as added, deleted, modified or comment-only changes
2. Snapshots compare with each other and with the current file
3. Restore previews show the change in the restoring direction
4. Snapshot info reads key counts and checks the recorded hash
"""

import asyncio
import json

import pytest

from lrm.backup import BackupVersionManager
from lrm.backup_diff import BackupDiffService, ChangeType, compare_entries
from lrm.exceptions import BackupNotFoundError, ResourceNotFoundError
from lrm.format_handlers import AndroidXmlHandler, JsonHandler
from lrm.models import ResourceEntry


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def history(tmp_path):
    """strings.json with two snapshots and a third, current state."""
    path = tmp_path / "strings.json"
    backups = BackupVersionManager()

    _write_json(path, {"Hello": "Hello", "Bye": "Bye", "Title": {"_value": "App", "_comment": "Header"}})
    asyncio.run(backups.create_backup(path, "add-key", tmp_path))

    _write_json(path, {"Hello": "Hi", "Title": {"_value": "App", "_comment": "Window title"}, "New": "Fresh"})
    asyncio.run(backups.create_backup(path, "update-key", tmp_path))

    _write_json(path, {"Hello": "Hi", "Title": "App", "New": "Fresh", "Extra": "More"})
    return path, BackupDiffService(JsonHandler(), backups)


def _by_key(result):
    return {c.key: c for c in result.changes}


def test_compare_entries_change_types():
    """Test each kind of change and the key ordering."""
    old = [
        ResourceEntry("b", "same"),
        ResourceEntry("a", "old"),
        ResourceEntry("c", "gone"),
        ResourceEntry("d", "text", comment="note"),
    ]
    new = [
        ResourceEntry("a", "new"),
        ResourceEntry("b", "same"),
        ResourceEntry("d", "text", comment="other note"),
        ResourceEntry("e", "added"),
    ]
    changes, total = compare_entries(old, new)

    assert total == 5
    assert [(c.key, c.change_type) for c in changes] == [
        ("a", ChangeType.MODIFIED),
        ("c", ChangeType.DELETED),
        ("d", ChangeType.COMMENT_CHANGED),
        ("e", ChangeType.ADDED),
    ]
    assert changes[0].old_value == "old"
    assert changes[0].new_value == "new"
    assert changes[1].new_value is None


def test_compare_entries_unchanged_and_empty_comment():
    """Test include_unchanged and that a missing comment equals an empty one."""
    changes, total = compare_entries([ResourceEntry("k", "v", comment="")], [ResourceEntry("k", "v")], True)
    assert total == 1
    assert [c.change_type for c in changes] == [ChangeType.UNCHANGED]


def test_compare_two_snapshots(tmp_path, history):
    """Test diffing version 1 against version 2."""
    path, service = history
    result = service.compare(path, 1, 2, tmp_path)
    changes = _by_key(result)

    assert result.version_a.version == 1
    assert result.version_b.version == 2
    assert changes["Hello"].change_type is ChangeType.MODIFIED
    assert changes["Bye"].change_type is ChangeType.DELETED
    assert changes["New"].change_type is ChangeType.ADDED
    assert changes["Title"].change_type is ChangeType.COMMENT_CHANGED
    assert changes["Title"].new_comment == "Window title"
    assert result.statistics() == {
        "total_keys": 4,
        "added": 1,
        "modified": 1,
        "deleted": 1,
        "comment_changed": 1,
        "unchanged": 0,
    }


def test_compare_with_current(tmp_path, history):
    """Test diffing a snapshot against the live file."""
    path, service = history
    result = service.compare_with_current(path, 2, tmp_path, include_unchanged=True)
    changes = _by_key(result)

    assert result.version_b.operation == "current"
    assert result.version_b.version == 3
    assert changes["Extra"].change_type is ChangeType.ADDED
    assert changes["Title"].change_type is ChangeType.COMMENT_CHANGED
    assert changes["Hello"].change_type is ChangeType.UNCHANGED
    assert result.has_changes is True


def test_no_changes(tmp_path):
    """Test a snapshot that still matches the current file."""
    path = tmp_path / "strings.json"
    _write_json(path, {"k": "v"})
    backups = BackupVersionManager()
    asyncio.run(backups.create_backup(path, "manual", tmp_path))

    result = BackupDiffService(JsonHandler(), backups).compare_with_current(path, 1, tmp_path)
    assert result.changes == []
    assert result.has_changes is False
    assert result.statistics()["unchanged"] == 1


def test_preview_restore_is_reversed(tmp_path, history):
    """Test that a restore preview shows keys the restore would bring back."""
    path, service = history
    result = service.preview_restore(path, 1, tmp_path)
    changes = _by_key(result)

    assert result.version_a.operation == "current"
    assert changes["Bye"].change_type is ChangeType.ADDED
    assert changes["Extra"].change_type is ChangeType.DELETED
    assert changes["Hello"].new_value == "Hello"


def test_unknown_version(tmp_path, history):
    """Test that a missing version raises BackupNotFoundError."""
    path, service = history
    with pytest.raises(BackupNotFoundError):
        service.compare(path, 1, 9, tmp_path)
    with pytest.raises(BackupNotFoundError):
        service.info(path, 9, tmp_path)


def test_current_file_missing(tmp_path, history):
    """Test comparing with a current file that was deleted."""
    path, service = history
    path.unlink()
    with pytest.raises(ResourceNotFoundError):
        service.compare_with_current(path, 1, tmp_path)


def test_info(tmp_path, history):
    """Test snapshot details."""
    path, service = history
    info = service.info(path, 1, tmp_path)

    assert info["backup"]["version"] == 1
    assert info["backup"]["operation"] == "add-key"
    assert info["key_count"] == 3
    assert info["hash_verified"] is True
    assert info["backup_file"].endswith("_add-key.json")


def test_info_detects_altered_snapshot(tmp_path, history):
    """Test that an edited snapshot no longer verifies."""
    path, service = history
    snapshot = service.backups.get_backup_file_path(path, 1, tmp_path)
    snapshot.write_text("{}", encoding="utf-8")

    info = service.info(path, 1, tmp_path)
    assert info["hash_verified"] is False
    assert info["key_count"] == 0


def test_compare_android_snapshots(tmp_path):
    """Test that the diff reads snapshots through the file's own format."""
    path = tmp_path / "res" / "values" / "strings.xml"
    path.parent.mkdir(parents=True)
    path.write_text('<resources>\n    <string name="a">One</string>\n</resources>\n', encoding="utf-8")
    backups = BackupVersionManager()
    asyncio.run(backups.create_backup(path, "manual", tmp_path))
    path.write_text('<resources>\n    <string name="a">Uno</string>\n</resources>\n', encoding="utf-8")

    result = BackupDiffService(AndroidXmlHandler(), backups).compare_with_current(path, 1, tmp_path)
    assert [(c.key, c.change_type, c.new_value) for c in result.changes] == [("a", ChangeType.MODIFIED, "Uno")]
