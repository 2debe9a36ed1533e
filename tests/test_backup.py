#!/usr/bin/env python3
"""
Tests for BackupVersionManager.

Tests verify:
1. Version numbers only grow, even across rotation and a lost manifest
2. Retention keeps the newest max_versions snapshots
3. Restore copies a snapshot back and takes a pre-restore backup
4. Prune, delete and listing
5. A failed snapshot write leaves no partial file behind
"""

import asyncio
import hashlib
import json

import pytest

from lrm.backup import BACKUP_DIR, MANIFEST_FILE_NAME, BackupVersionManager
from lrm.exceptions import BackupNotFoundError, BackupWriteError, SourceNotFoundError


@pytest.fixture
def resource(tmp_path):
    path = tmp_path / "strings.fr.json"
    path.write_text('{"k": "v1"}', encoding="utf-8")
    return path


def _backup(manager, path, root, operation="update-key"):
    return asyncio.run(manager.create_backup(path, operation, root))


def test_create_backup_metadata(tmp_path, resource):
    """Test the first snapshot and its manifest entry."""
    manager = BackupVersionManager()
    metadata = _backup(manager, resource, tmp_path, "add-key")

    assert metadata.version == 1
    assert metadata.operation == "add-key"
    assert metadata.original_path == "strings.fr.json"
    assert metadata.backup_path.startswith("v001_")
    assert metadata.backup_path.endswith("_add-key.json")
    assert metadata.size == resource.stat().st_size
    assert metadata.hash == hashlib.sha256(resource.read_bytes()).hexdigest()

    store = tmp_path / BACKUP_DIR / "strings.fr.json"
    assert (store / metadata.backup_path).read_bytes() == resource.read_bytes()
    manifest = json.loads((store / MANIFEST_FILE_NAME).read_text(encoding="utf-8"))
    assert manifest["last_version"] == 1
    assert [b["version"] for b in manifest["backups"]] == [1]


def test_versions_increase(tmp_path, resource):
    """Test that consecutive backups get consecutive versions."""
    manager = BackupVersionManager()
    versions = [_backup(manager, resource, tmp_path).version for _ in range(3)]
    assert versions == [1, 2, 3]
    assert [b.version for b in manager.list_backups(resource, tmp_path)] == [3, 2, 1]


def test_retention_evicts_oldest(tmp_path, resource):
    """Test that only the newest max_versions snapshots remain."""
    manager = BackupVersionManager(max_versions=3)
    for _ in range(5):
        _backup(manager, resource, tmp_path)

    assert [b.version for b in manager.list_backups(resource, tmp_path)] == [5, 4, 3]
    store = manager.get_backup_directory(resource, tmp_path)
    snapshots = [p for p in store.iterdir() if p.name != MANIFEST_FILE_NAME]
    assert len(snapshots) == 3

    # numbering continues after rotation
    assert _backup(manager, resource, tmp_path).version == 6


def test_missing_source(tmp_path):
    """Test that backing up a missing file raises SourceNotFoundError."""
    manager = BackupVersionManager()
    with pytest.raises(SourceNotFoundError):
        _backup(manager, tmp_path / "nope.json", tmp_path)
    assert not (tmp_path / BACKUP_DIR).exists()


@pytest.mark.parametrize("damage", ["delete", "corrupt"])
def test_manifest_recovery(tmp_path, resource, damage):
    """Test that a lost or corrupt manifest is rebuilt from snapshot names."""
    manager = BackupVersionManager()
    _backup(manager, resource, tmp_path, "add-key")
    _backup(manager, resource, tmp_path, "delete-key")

    manifest_path = manager.get_backup_directory(resource, tmp_path) / MANIFEST_FILE_NAME
    if damage == "delete":
        manifest_path.unlink()
    else:
        manifest_path.write_text("{not json", encoding="utf-8")

    backups = manager.list_backups(resource, tmp_path)
    assert [(b.version, b.operation) for b in backups] == [(2, "delete-key"), (1, "add-key")]
    assert _backup(manager, resource, tmp_path).version == 3


def test_restore(tmp_path, resource):
    """Test restoring an older version with a pre-restore snapshot."""
    manager = BackupVersionManager()
    _backup(manager, resource, tmp_path)
    resource.write_text('{"k": "v2"}', encoding="utf-8")

    pre_restore = asyncio.run(manager.restore_backup(resource, 1, tmp_path))

    assert resource.read_text(encoding="utf-8") == '{"k": "v1"}'
    assert pre_restore.version == 2
    assert pre_restore.operation == "pre-restore"
    snapshot = manager.get_backup_file_path(resource, 2, tmp_path)
    assert snapshot.read_text(encoding="utf-8") == '{"k": "v2"}'


def test_restore_without_pre_restore_backup(tmp_path, resource):
    """Test backup_current=False."""
    manager = BackupVersionManager()
    _backup(manager, resource, tmp_path)
    resource.write_text("{}", encoding="utf-8")

    assert asyncio.run(manager.restore_backup(resource, 1, tmp_path, backup_current=False)) is None
    assert len(manager.list_backups(resource, tmp_path)) == 1


def test_restore_survives_rotation_of_target(tmp_path, resource):
    """Test restoring the oldest snapshot when the pre-restore backup evicts it."""
    manager = BackupVersionManager(max_versions=1)
    _backup(manager, resource, tmp_path)
    resource.write_text('{"k": "v2"}', encoding="utf-8")

    asyncio.run(manager.restore_backup(resource, 1, tmp_path))
    assert resource.read_text(encoding="utf-8") == '{"k": "v1"}'
    assert [b.version for b in manager.list_backups(resource, tmp_path)] == [2]


def test_restore_unknown_version(tmp_path, resource):
    """Test that a missing version raises BackupNotFoundError."""
    manager = BackupVersionManager()
    _backup(manager, resource, tmp_path)
    with pytest.raises(BackupNotFoundError):
        asyncio.run(manager.restore_backup(resource, 7, tmp_path))


def test_prune(tmp_path, resource):
    """Test keeping only the newest snapshots."""
    manager = BackupVersionManager()
    for _ in range(4):
        _backup(manager, resource, tmp_path)

    removed = manager.prune_backups(resource, tmp_path, keep=1)
    assert [b.version for b in removed] == [1, 2, 3]
    assert [b.version for b in manager.list_backups(resource, tmp_path)] == [4]
    assert manager.prune_backups(resource, tmp_path, keep=5) == []


def test_delete_backup(tmp_path, resource):
    """Test deleting single versions and whole stores."""
    manager = BackupVersionManager()
    for _ in range(3):
        _backup(manager, resource, tmp_path)

    assert manager.delete_backup(resource, 2, tmp_path) is True
    assert manager.delete_backup(resource, 2, tmp_path) is False
    assert manager.get_backup_file_path(resource, 2, tmp_path) is None
    assert [b.version for b in manager.list_backups(resource, tmp_path)] == [3, 1]

    assert manager.delete_all_backups(resource, tmp_path) == 2
    assert manager.list_backups(resource, tmp_path) == []


def test_list_backed_up_files(tmp_path, resource):
    """Test listing every file that has snapshots."""
    nested = tmp_path / "sub" / "strings.json"
    nested.parent.mkdir()
    nested.write_text("{}", encoding="utf-8")

    manager = BackupVersionManager()
    assert manager.list_backed_up_files(tmp_path) == []
    _backup(manager, resource, tmp_path)
    _backup(manager, nested, tmp_path)

    assert sorted(manager.list_backed_up_files(tmp_path)) == ["strings.fr.json", "sub/strings.json"]


def test_same_name_in_different_folders_kept_apart(tmp_path):
    """Test that two files with one name get separate stores."""
    first = tmp_path / "values-fr" / "strings.xml"
    second = tmp_path / "values-de" / "strings.xml"
    for path in (first, second):
        path.parent.mkdir()
        path.write_text("<resources/>", encoding="utf-8")

    manager = BackupVersionManager()
    assert _backup(manager, first, tmp_path).version == 1
    assert _backup(manager, second, tmp_path).version == 1
    assert manager.get_backup_directory(first, tmp_path) != manager.get_backup_directory(second, tmp_path)


def test_file_outside_root(tmp_path):
    """Test that files outside the root are stored under _external."""
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "elsewhere" / "strings.json"
    outside.parent.mkdir()
    outside.write_text("{}", encoding="utf-8")

    manager = BackupVersionManager()
    metadata = _backup(manager, outside, root)
    store = manager.get_backup_directory(outside, root)
    assert "_external" in store.parts
    assert store.is_relative_to(root / BACKUP_DIR)
    assert metadata.original_path == str(outside.resolve())


def test_invalid_max_versions():
    """Test that a non-positive cap is rejected."""
    with pytest.raises(ValueError):
        BackupVersionManager(max_versions=0)


def test_failed_write_leaves_no_snapshot(tmp_path, resource, monkeypatch):
    """Test that an I/O error raises BackupWriteError and removes the partial snapshot."""
    manager = BackupVersionManager()
    _backup(manager, resource, tmp_path)

    def failing_fsync(fd):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("lrm.backup.os.fsync", failing_fsync)
    with pytest.raises(BackupWriteError):
        _backup(manager, resource, tmp_path)
    monkeypatch.undo()

    store = manager.get_backup_directory(resource, tmp_path)
    snapshots = sorted(p.name for p in store.iterdir() if p.name != MANIFEST_FILE_NAME)
    assert len(snapshots) == 1
    assert snapshots[0].startswith("v001_")
    assert [b.version for b in manager.list_backups(resource, tmp_path)] == [1]
    assert _backup(manager, resource, tmp_path).version == 2
