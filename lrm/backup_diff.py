#!/usr/bin/env python3
"""
Key-level comparison of backup snapshots.

Both sides are parsed through the resource file's format handler, so a diff
lists keys that were added, deleted, given a new value or only a new
comment, independent of how the file happens to be laid out on disk.
A snapshot can be compared with another snapshot or with the current file.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .backup import BackupMetadata, BackupVersionManager
from .exceptions import BackupNotFoundError, ResourceNotFoundError
from .format_handlers import FormatHandler
from .models import ResourceEntry

logger = logging.getLogger(__name__)

CURRENT = "current"

PathLike = Union[str, Path]


class ChangeType(Enum):
    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    COMMENT_CHANGED = "comment_changed"
    UNCHANGED = "unchanged"


@dataclass
class KeyChange:
    """Difference for one key between two versions."""
    key: str
    change_type: ChangeType
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    old_comment: Optional[str] = None
    new_comment: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "type": self.change_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "old_comment": self.old_comment,
            "new_comment": self.new_comment,
        }


@dataclass
class BackupDiffResult:
    """
    Outcome of comparing version_a (old side) with version_b (new side).

    Attributes:
        version_a: Metadata of the old side
        version_b: Metadata of the new side; operation "current" for the live file
        changes: Changed keys sorted by key, plus unchanged ones when requested
        total_keys: Number of distinct keys on either side
    """
    version_a: BackupMetadata
    version_b: BackupMetadata
    changes: list[KeyChange] = field(default_factory=list)
    total_keys: int = 0

    def count(self, change_type: ChangeType) -> int:
        return sum(1 for c in self.changes if c.change_type is change_type)

    @property
    def has_changes(self) -> bool:
        return any(c.change_type is not ChangeType.UNCHANGED for c in self.changes)

    def statistics(self) -> dict:
        changed = sum(1 for c in self.changes if c.change_type is not ChangeType.UNCHANGED)
        return {
            "total_keys": self.total_keys,
            "added": self.count(ChangeType.ADDED),
            "modified": self.count(ChangeType.MODIFIED),
            "deleted": self.count(ChangeType.DELETED),
            "comment_changed": self.count(ChangeType.COMMENT_CHANGED),
            "unchanged": self.total_keys - changed,
        }

    def to_dict(self) -> dict:
        return {
            "version_a": self.version_a.to_dict(),
            "version_b": self.version_b.to_dict(),
            "statistics": self.statistics(),
            "changes": [c.to_dict() for c in self.changes],
        }


def compare_entries(
    old_entries: list[ResourceEntry],
    new_entries: list[ResourceEntry],
    include_unchanged: bool = False,
) -> tuple[list[KeyChange], int]:
    """
    Compare two entry lists key by key.

    A value change wins over a comment change; a missing and an empty
    comment compare equal.

    Returns:
        (changes sorted by key, number of distinct keys)
    """
    old = {e.key: e for e in old_entries}
    new = {e.key: e for e in new_entries}
    all_keys = set(old) | set(new)

    changes = []
    for key in sorted(all_keys):
        before, after = old.get(key), new.get(key)
        if before is None:
            changes.append(KeyChange(key, ChangeType.ADDED, new_value=after.value, new_comment=after.comment))
            continue
        if after is None:
            changes.append(KeyChange(key, ChangeType.DELETED, old_value=before.value, old_comment=before.comment))
            continue

        if before.value != after.value:
            change_type = ChangeType.MODIFIED
        elif (before.comment or "") != (after.comment or ""):
            change_type = ChangeType.COMMENT_CHANGED
        elif include_unchanged:
            change_type = ChangeType.UNCHANGED
        else:
            continue
        changes.append(KeyChange(
            key,
            change_type,
            old_value=before.value,
            new_value=after.value,
            old_comment=before.comment,
            new_comment=after.comment,
        ))
    return changes, len(all_keys)


class BackupDiffService:
    """Compares snapshots of one resource file through its format handler."""

    def __init__(self, handler: FormatHandler, backups: Optional[BackupVersionManager] = None):
        self.handler = handler
        self.backups = backups or BackupVersionManager()

    def _entries(self, path: Path) -> list[ResourceEntry]:
        return self.handler.parse(self.handler.read_content(path), source=str(path))

    def _snapshot(self, file_path: PathLike, version: int, root_dir: PathLike) -> tuple[BackupMetadata, Path]:
        metadata = self.backups.get_backup(file_path, version, root_dir)
        snapshot = self.backups.get_backup_file_path(file_path, version, root_dir)
        if metadata is None or snapshot is None:
            raise BackupNotFoundError(
                f"Backup version {version} not found for {file_path}",
                path=str(file_path),
                operation="backup-diff",
            )
        return metadata, snapshot

    def _current(self, file_path: Path, backup: BackupMetadata) -> BackupMetadata:
        if not file_path.is_file():
            raise ResourceNotFoundError(
                f"Current file not found: {file_path}",
                path=str(file_path),
                operation="backup-diff",
            )
        return BackupMetadata(
            version=backup.version + 1,
            operation=CURRENT,
            timestamp=datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
            original_path=backup.original_path,
            backup_path=file_path.name,
            size=file_path.stat().st_size,
        )

    def compare(
        self,
        file_path: PathLike,
        version_a: int,
        version_b: int,
        root_dir: PathLike,
        include_unchanged: bool = False,
    ) -> BackupDiffResult:
        """
        Compare two snapshots of a file.

        Raises:
            BackupNotFoundError: either version is unknown or its snapshot is gone
        """
        meta_a, path_a = self._snapshot(file_path, version_a, root_dir)
        meta_b, path_b = self._snapshot(file_path, version_b, root_dir)
        changes, total = compare_entries(self._entries(path_a), self._entries(path_b), include_unchanged)
        logger.debug("Compared v%d with v%d of %s: %d changes", version_a, version_b, file_path, len(changes))
        return BackupDiffResult(meta_a, meta_b, changes, total)

    def compare_with_current(
        self,
        file_path: PathLike,
        version: int,
        root_dir: PathLike,
        include_unchanged: bool = False,
    ) -> BackupDiffResult:
        """What changed in the file since the given snapshot."""
        file_path = Path(file_path)
        backup, snapshot = self._snapshot(file_path, version, root_dir)
        current = self._current(file_path, backup)
        changes, total = compare_entries(self._entries(snapshot), self._entries(file_path), include_unchanged)
        return BackupDiffResult(backup, current, changes, total)

    def preview_restore(
        self,
        file_path: PathLike,
        version: int,
        root_dir: PathLike,
        include_unchanged: bool = False,
    ) -> BackupDiffResult:
        """What restoring the given snapshot would change in the current file."""
        file_path = Path(file_path)
        backup, snapshot = self._snapshot(file_path, version, root_dir)
        current = self._current(file_path, backup)
        changes, total = compare_entries(self._entries(file_path), self._entries(snapshot), include_unchanged)
        return BackupDiffResult(current, backup, changes, total)

    def info(self, file_path: PathLike, version: int, root_dir: PathLike) -> dict:
        """
        Metadata of one snapshot plus what can be read from its file.

        Returns:
            Dictionary with the manifest record, snapshot path, key count and
            whether the snapshot still matches its recorded hash
        """
        metadata, snapshot = self._snapshot(file_path, version, root_dir)
        digest = hashlib.sha256(snapshot.read_bytes()).hexdigest()
        if metadata.hash and digest != metadata.hash:
            logger.warning("Snapshot v%03d of %s does not match its recorded hash", version, file_path)
        return {
            "backup": metadata.to_dict(),
            "backup_file": str(snapshot),
            "file_size": snapshot.stat().st_size,
            "key_count": len(self._entries(snapshot)),
            "hash_verified": not metadata.hash or digest == metadata.hash,
        }
