#!/usr/bin/env python3
"""
Versioned backups of resource files.

Each backed-up file gets its own store directory under
``{root}/.lrm/backups/{relative path of the file}/`` holding the snapshots
and a ``manifest.json`` describing them:

```json
{
  "file_name": "strings.fr.json",
  "last_version": 12,
  "backups": [
    {"version": 12, "operation": "add-key", "timestamp": "2026-01-05T10:22:31+00:00",
     "original_path": "strings.fr.json",
     "backup_path": "v012_2026-01-05T10-22-31_add-key.json",
     "hash": "9f2c...", "size": 512, "user": "dev"}
  ]
}
```

Version numbers only ever grow: the counter lives in the manifest and is
reconciled with the snapshot file names, so neither rotation nor a lost
manifest can hand out a number twice.
"""

import asyncio
import getpass
import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from .exceptions import BackupNotFoundError, BackupWriteError, SourceNotFoundError

logger = logging.getLogger(__name__)

BACKUP_DIR = Path(".lrm") / "backups"
MANIFEST_FILE_NAME = "manifest.json"
EXTERNAL_DIR = "_external"
DEFAULT_MAX_VERSIONS = 10

TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
SNAPSHOT_PATTERN = re.compile(
    r'^v(?P<version>\d{3,})_(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2})_(?P<operation>.+)$'
)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class BackupMetadata:
    """One snapshot. Immutable once created."""
    version: int
    operation: str
    timestamp: str           # ISO 8601, UTC
    original_path: str       # relative to the resource root when inside it
    backup_path: str         # snapshot file name inside the store directory
    hash: str = ""           # SHA-256 of the snapshot
    size: int = 0
    user: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BackupMetadata":
        return cls(
            version=int(data["version"]),
            operation=data.get("operation", ""),
            timestamp=data.get("timestamp", ""),
            original_path=data.get("original_path", ""),
            backup_path=data["backup_path"],
            hash=data.get("hash", ""),
            size=int(data.get("size", 0)),
            user=data.get("user", ""),
        )


@dataclass
class BackupManifest:
    """Contents of manifest.json for one file."""
    file_name: str
    last_version: int = 0
    backups: list[BackupMetadata] = field(default_factory=list)

    def get(self, version: int) -> Optional[BackupMetadata]:
        for backup in self.backups:
            if backup.version == version:
                return backup
        return None

    def latest(self) -> Optional[BackupMetadata]:
        return max(self.backups, key=lambda b: b.version, default=None)

    def to_dict(self) -> dict:
        return {
            "file_name": self.file_name,
            "last_version": self.last_version,
            "backups": [b.to_dict() for b in sorted(self.backups, key=lambda b: b.version)],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupManifest":
        return cls(
            file_name=data.get("file_name", ""),
            last_version=int(data.get("last_version", 0)),
            backups=[BackupMetadata.from_dict(b) for b in data.get("backups", [])],
        )


def _operation_slug(operation: str) -> str:
    return re.sub(r'[^A-Za-z0-9_-]+', '-', operation).strip('-') or "backup"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def _fsync_dir(directory: Path) -> None:
    """Flush a directory entry to disk where the platform allows it."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class BackupVersionManager:
    """
    Creates, lists, restores and rotates versioned backups.

    Args:
        max_versions: Retention cap per file; creating a backup past the cap
            evicts the single oldest snapshot
    """

    def __init__(self, max_versions: int = DEFAULT_MAX_VERSIONS):
        if max_versions < 1:
            raise ValueError(f"max_versions must be positive, got {max_versions}")
        self.max_versions = max_versions

    # Paths

    def _relative_key(self, file_path: PathLike, root_dir: PathLike) -> tuple[Path, str]:
        """Return (store directory relative to the backup dir, original path label)."""
        path = Path(file_path).resolve()
        root = Path(root_dir).resolve()
        try:
            relative = path.relative_to(root)
        except ValueError:
            digest = hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:12]
            return Path(EXTERNAL_DIR) / digest / path.name, str(path)
        return relative, relative.as_posix()

    def get_backup_directory(self, file_path: PathLike, root_dir: PathLike) -> Path:
        """Store directory for one file."""
        relative, _ = self._relative_key(file_path, root_dir)
        return Path(root_dir) / BACKUP_DIR / relative

    # Manifest

    def _scan_versions(self, store: Path) -> list[tuple[int, Path, re.Match]]:
        found = []
        if not store.is_dir():
            return found
        for snapshot in store.iterdir():
            match = SNAPSHOT_PATTERN.match(snapshot.name)
            if match and snapshot.is_file():
                found.append((int(match.group("version")), snapshot, match))
        return found

    def _recover_manifest(self, store: Path, file_name: str) -> BackupManifest:
        """Rebuild a manifest from snapshot file names."""
        suffix = Path(file_name).suffix
        manifest = BackupManifest(file_name=file_name)
        for version, snapshot, match in sorted(self._scan_versions(store), key=lambda item: item[0]):
            operation = match.group("operation")
            if suffix and operation.endswith(suffix):
                operation = operation[:-len(suffix)]
            timestamp = datetime.strptime(match.group("timestamp"), TIMESTAMP_FORMAT)
            manifest.backups.append(BackupMetadata(
                version=version,
                operation=operation,
                timestamp=timestamp.replace(tzinfo=timezone.utc).isoformat(),
                original_path=file_name,
                backup_path=snapshot.name,
                hash=self._hash_file(snapshot),
                size=snapshot.stat().st_size,
            ))
            manifest.last_version = max(manifest.last_version, version)
        return manifest

    def _load_manifest(self, store: Path, file_name: str) -> BackupManifest:
        manifest_path = store / MANIFEST_FILE_NAME
        if not manifest_path.is_file():
            if self._scan_versions(store):
                logger.warning("Manifest missing in %s; rebuilding from snapshots", store)
            return self._recover_manifest(store, file_name)

        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
            manifest = BackupManifest.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Corrupt manifest %s (%s); rebuilding from snapshots", manifest_path, e)
            return self._recover_manifest(store, file_name)

        manifest.file_name = manifest.file_name or file_name
        return manifest

    def _save_manifest(self, store: Path, manifest: BackupManifest) -> None:
        """Write manifest.json atomically (temp file, fsync, rename)."""
        store.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".manifest.", suffix=".tmp", dir=str(store))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(manifest.to_dict(), f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, store / MANIFEST_FILE_NAME)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        _fsync_dir(store)

    def _next_version(self, store: Path, manifest: BackupManifest) -> int:
        highest = manifest.last_version
        highest = max([highest] + [b.version for b in manifest.backups])
        highest = max([highest] + [version for version, _, _ in self._scan_versions(store)])
        return highest + 1

    @staticmethod
    def _hash_file(path: Path) -> str:
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
        return digest.hexdigest()

    # Create

    async def create_backup(
        self,
        file_path: PathLike,
        operation: str,
        root_dir: PathLike,
    ) -> BackupMetadata:
        """
        Snapshot a file before it is modified.

        Args:
            file_path: File to back up
            operation: Name of the operation about to modify it
            root_dir: Resource root the store lives under

        Returns:
            Metadata of the new snapshot

        Raises:
            SourceNotFoundError: file_path does not exist
            BackupWriteError: snapshot or manifest could not be written;
                no partial snapshot is left behind
        """
        return await asyncio.to_thread(self._create_backup, Path(file_path), operation, Path(root_dir))

    def _create_backup(self, file_path: Path, operation: str, root_dir: Path) -> BackupMetadata:
        if not file_path.is_file():
            raise SourceNotFoundError(
                f"File not found: {file_path}", path=str(file_path), operation=operation
            )

        store = self.get_backup_directory(file_path, root_dir)
        _, original_label = self._relative_key(file_path, root_dir)
        snapshot: Optional[Path] = None

        try:
            store.mkdir(parents=True, exist_ok=True)
            manifest = self._load_manifest(store, file_path.name)
            version = self._next_version(store, manifest)

            now = datetime.now(timezone.utc).replace(microsecond=0)
            snapshot_name = (
                f"v{version:03d}_{now.strftime(TIMESTAMP_FORMAT)}_"
                f"{_operation_slug(operation)}{file_path.suffix}"
            )
            snapshot = store / snapshot_name

            digest = hashlib.sha256()
            size = 0
            with open(file_path, "rb") as src, open(snapshot, "xb") as dst:
                for chunk in iter(lambda: src.read(65536), b""):
                    digest.update(chunk)
                    size += len(chunk)
                    dst.write(chunk)
                dst.flush()
                os.fsync(dst.fileno())

            metadata = BackupMetadata(
                version=version,
                operation=operation,
                timestamp=now.isoformat(),
                original_path=original_label,
                backup_path=snapshot_name,
                hash=digest.hexdigest(),
                size=size,
                user=_current_user(),
            )
            manifest.backups.append(metadata)
            manifest.last_version = version
            evicted = self._evict_oldest(manifest)
            self._save_manifest(store, manifest)
        except OSError as e:
            if snapshot is not None and snapshot.exists():
                snapshot.unlink()
            raise BackupWriteError(
                f"Cannot write backup for {file_path}: {e}",
                path=str(file_path),
                operation=operation,
            ) from e

        # delete the evicted file only once the manifest no longer lists it
        if evicted is not None:
            (store / evicted.backup_path).unlink(missing_ok=True)
            logger.warning(
                "Backup retention (%d) reached for %s; evicted version %d",
                self.max_versions, original_label, evicted.version,
            )

        logger.info("Backed up %s as version %d (%s)", original_label, version, operation)
        return metadata

    def _evict_oldest(self, manifest: BackupManifest) -> Optional[BackupMetadata]:
        if len(manifest.backups) <= self.max_versions:
            return None
        oldest = min(manifest.backups, key=lambda b: b.version)
        manifest.backups.remove(oldest)
        return oldest

    # Query

    def list_backups(self, file_path: PathLike, root_dir: PathLike) -> list[BackupMetadata]:
        """All snapshots of a file, newest first."""
        store = self.get_backup_directory(file_path, root_dir)
        if not store.is_dir():
            return []
        manifest = self._load_manifest(store, Path(file_path).name)
        return sorted(manifest.backups, key=lambda b: b.version, reverse=True)

    def get_backup(self, file_path: PathLike, version: int, root_dir: PathLike) -> Optional[BackupMetadata]:
        store = self.get_backup_directory(file_path, root_dir)
        if not store.is_dir():
            return None
        return self._load_manifest(store, Path(file_path).name).get(version)

    def get_backup_file_path(self, file_path: PathLike, version: int, root_dir: PathLike) -> Optional[Path]:
        """Path of a snapshot, or None when the version is unknown or its file is gone."""
        backup = self.get_backup(file_path, version, root_dir)
        if backup is None:
            return None
        snapshot = self.get_backup_directory(file_path, root_dir) / backup.backup_path
        return snapshot if snapshot.is_file() else None

    def list_backed_up_files(self, root_dir: PathLike) -> list[str]:
        """Relative paths (as recorded) of every file with at least one snapshot."""
        base = Path(root_dir) / BACKUP_DIR
        if not base.is_dir():
            return []
        files = []
        for manifest_path in sorted(base.rglob(MANIFEST_FILE_NAME)):
            store = manifest_path.parent
            manifest = self._load_manifest(store, store.name)
            if not manifest.backups:
                continue
            files.append(manifest.latest().original_path or store.relative_to(base).as_posix())
        return files

    # Delete

    def delete_backup(self, file_path: PathLike, version: int, root_dir: PathLike) -> bool:
        """Delete one snapshot. Returns False when the version does not exist."""
        store = self.get_backup_directory(file_path, root_dir)
        if not store.is_dir():
            return False
        manifest = self._load_manifest(store, Path(file_path).name)
        backup = manifest.get(version)
        if backup is None:
            return False

        manifest.backups.remove(backup)
        self._save_manifest(store, manifest)
        (store / backup.backup_path).unlink(missing_ok=True)
        logger.info("Deleted backup version %d of %s", version, backup.original_path)
        return True

    def delete_all_backups(self, file_path: PathLike, root_dir: PathLike) -> int:
        """Delete a file's whole store. Returns the number of snapshots removed."""
        store = self.get_backup_directory(file_path, root_dir)
        if not store.is_dir():
            return 0
        count = len(self._load_manifest(store, Path(file_path).name).backups)
        shutil.rmtree(store)
        logger.info("Deleted %d backups of %s", count, file_path)
        return count

    def prune_backups(self, file_path: PathLike, root_dir: PathLike, keep: int) -> list[BackupMetadata]:
        """
        Keep only the newest ``keep`` snapshots of a file.

        Returns:
            Metadata of the removed snapshots, oldest first
        """
        if keep < 0:
            raise ValueError(f"keep must not be negative, got {keep}")
        store = self.get_backup_directory(file_path, root_dir)
        if not store.is_dir():
            return []

        manifest = self._load_manifest(store, Path(file_path).name)
        ordered = sorted(manifest.backups, key=lambda b: b.version)
        removed = ordered[:max(len(ordered) - keep, 0)]
        if not removed:
            return []

        manifest.backups = ordered[len(removed):]
        self._save_manifest(store, manifest)
        for backup in removed:
            (store / backup.backup_path).unlink(missing_ok=True)
        logger.info("Pruned %d backups of %s", len(removed), file_path)
        return removed

    # Restore

    async def restore_backup(
        self,
        file_path: PathLike,
        version: int,
        root_dir: PathLike,
        backup_current: bool = True,
    ) -> Optional[BackupMetadata]:
        """
        Copy a snapshot back over the original file.

        Args:
            file_path: File to restore
            version: Snapshot version to restore
            root_dir: Resource root the store lives under
            backup_current: Snapshot the current file first ("pre-restore")

        Returns:
            Metadata of the pre-restore snapshot, if one was taken

        Raises:
            BackupNotFoundError: version is unknown or its snapshot is gone
        """
        file_path = Path(file_path)
        snapshot = self.get_backup_file_path(file_path, version, root_dir)
        if snapshot is None:
            raise BackupNotFoundError(
                f"Backup version {version} not found for {file_path}",
                path=str(file_path),
                operation="restore",
            )

        # stage the content first; the pre-restore backup may rotate the snapshot out
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", dir=str(file_path.parent))
        os.close(fd)
        try:
            shutil.copyfile(snapshot, tmp_name)
            pre_restore = None
            if backup_current and file_path.is_file():
                pre_restore = await self.create_backup(file_path, "pre-restore", root_dir)
            os.replace(tmp_name, file_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info("Restored %s to version %d", file_path, version)
        return pre_restore
