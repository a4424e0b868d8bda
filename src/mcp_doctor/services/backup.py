"""Backup store for MCP Doctor.

Byte-exact, timestamped snapshots of client configuration files with a
persisted index, per-target rotation and restore.

Layout of the backup directory::

    index.json                                  JSON array of records
    <kind>-<id>-<epoch_ms>.json                 one snapshot per record

Invariants
----------
* A record's snapshot file holds the exact bytes of the config file as it
  existed at ``created_at``.
* After every create, each ``(kind, config_path)`` group keeps only its
  ``max_per_client`` newest records; older records lose both their index
  entry and their snapshot file.
* The index is persisted only after snapshot deletions succeeded (or were
  skipped because the file was already gone).
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ClientKind
from mcp_doctor.domain.events import (
    BackupCreated,
    BackupDeleted,
    BackupRestored,
    DomainEvent,
)
from mcp_doctor.domain.exceptions import (
    BackupError,
    BackupNotFoundError,
    ConfigFileNotFoundError,
    SnapshotMissingError,
)
from mcp_doctor.domain.values import BackupRecord, utcnow
from mcp_doctor.infrastructure.config import BackupConfig
from mcp_doctor.infrastructure.event_bus import EventBus
from mcp_doctor.infrastructure.files import atomic_write_text, copy_exact
from mcp_doctor.infrastructure.locks import KeyLockRegistry
from mcp_doctor.infrastructure.serialization import (
    backup_record_from_dict,
    backup_record_to_dict,
)

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"

BackupKey = tuple[ClientKind, str]


def _same_bytes(snapshot: str | Path, config: str | Path) -> bool:
    """True when both files exist and hold identical bytes."""
    try:
        return Path(snapshot).read_bytes() == Path(config).read_bytes()
    except OSError:
        return False


class BackupStore:
    """Snapshot manager for client configuration files.

    Parameters
    ----------
    directory:
        Backup directory (created on demand).
    config:
        Rotation limit and staleness window.
    locks:
        Shared serialization-key registry; rotation of a group takes that
        group's key.
    event_bus:
        Optional bus receiving ``BackupCreated`` / ``BackupRestored`` /
        ``BackupDeleted``.
    clock:
        Returns the current aware UTC time (tests pin it).
    """

    def __init__(
        self,
        directory: str | Path,
        config: BackupConfig | None = None,
        locks: KeyLockRegistry | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._dir = Path(directory).expanduser()
        self._config = config or BackupConfig()
        self._locks = locks or KeyLockRegistry()
        self._bus = event_bus
        self._clock = clock
        self._lock = threading.RLock()
        self._records: list[BackupRecord] = self._load_index()

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def index_path(self) -> Path:
        return self._dir / INDEX_FILE

    @property
    def locks(self) -> KeyLockRegistry:
        return self._locks

    # -- queries ------------------------------------------------------------

    def all(self) -> list[BackupRecord]:
        with self._lock:
            return list(self._records)

    def get(self, backup_id: str) -> BackupRecord | None:
        with self._lock:
            for record in self._records:
                if record.backup_id == backup_id:
                    return record
        return None

    def list_for(self, client: TargetClient) -> list[BackupRecord]:
        """Records for *client*'s key, newest first."""
        return self._newest_first(self._group(client.key))

    def latest_for(self, client: TargetClient) -> BackupRecord | None:
        records = self.list_for(client)
        return records[0] if records else None

    # -- mutations ----------------------------------------------------------

    def create_backup(self, client: TargetClient) -> BackupRecord:
        """Snapshot *client*'s config file.

        Raises
        ------
        ConfigFileNotFoundError
            If the config file does not exist right now.
        BackupError
            If the snapshot or the index cannot be written.
        """
        source = Path(client.config_path)
        if not source.is_file():
            raise ConfigFileNotFoundError(
                f"Client configuration file not found: {source}",
                config_path=str(source),
            )

        with self._locks.hold(client.key):
            backup_id = str(uuid.uuid4())
            created_at = self._clock()
            snapshot = self._dir / (
                f"{client.kind.value}-{backup_id}-{int(created_at.timestamp() * 1000)}.json"
            )
            try:
                copy_exact(source, snapshot)
            except OSError as exc:
                raise BackupError(
                    f"Failed to snapshot {source}: {exc}", backup_id=backup_id
                ) from exc

            record = BackupRecord(
                backup_id=backup_id,
                client_kind=client.kind,
                config_path=client.config_path,
                snapshot_path=str(snapshot),
                created_at=created_at,
                helpers=tuple(client.helpers),
            )
            with self._lock:
                self._records.append(record)
                try:
                    self._save_index()
                except BackupError:
                    self._records.remove(record)
                    raise
            logger.info("Created backup %s of %s", backup_id, client.display_name)
            self._publish(BackupCreated(source_id="backup-store", record=record))

        self.rotate(own_key=client.key)
        return record

    def restore(self, backup_id: str) -> bool:
        """Copy the snapshot of *backup_id* back over its config path.

        Raises
        ------
        BackupNotFoundError
            Unknown id.
        SnapshotMissingError
            The snapshot file is gone.
        BackupError
            The copy itself failed.
        """
        record = self.get(backup_id)
        if record is None:
            raise BackupNotFoundError(f"Backup not found: {backup_id}", backup_id=backup_id)
        snapshot = Path(record.snapshot_path)
        if not snapshot.is_file():
            raise SnapshotMissingError(
                f"Backup file not found: {snapshot}", backup_id=backup_id
            )
        with self._locks.hold(record.key):
            try:
                copy_exact(snapshot, record.config_path)
            except OSError as exc:
                raise BackupError(
                    f"Failed to restore {record.config_path}: {exc}", backup_id=backup_id
                ) from exc
        logger.info("Restored backup %s to %s", backup_id, record.config_path)
        self._publish(BackupRestored(source_id="backup-store", record=record))
        return True

    def delete(self, backup_id: str) -> bool:
        """Remove the snapshot file and then the index entry."""
        record = self.get(backup_id)
        if record is None:
            raise BackupNotFoundError(f"Backup not found: {backup_id}", backup_id=backup_id)
        with self._locks.hold(record.key):
            self._delete_records([record], rotated=False)
        return True

    def ensure_fresh_backup(self, client: TargetClient) -> BackupRecord:
        """Return a backup that can restore *client*'s config as it is now.

        The newest record is reused only while it is inside the staleness
        window and its snapshot still holds the current config bytes; any
        edit since then gets a new snapshot, so a rollback never restores
        stale content.
        """
        latest = self.latest_for(client)
        window = timedelta(hours=self._config.staleness_hours)
        if latest is not None and self._clock() - latest.created_at < window:
            if _same_bytes(latest.snapshot_path, client.config_path):
                logger.debug("Reusing backup %s for %s", latest.backup_id, client.display_name)
                return latest
        return self.create_backup(client)

    def rotate(self, own_key: BackupKey | None = None) -> list[BackupRecord]:
        """Apply the per-group rotation limit; returns the deleted records.

        ``own_key`` is waited for; any other group whose key is busy (a
        repair in progress) is skipped until the next pass.
        """
        with self._lock:
            keys = list(dict.fromkeys(r.key for r in self._records))
        deleted: list[BackupRecord] = []
        for key in keys:
            if key == own_key:
                self._locks.try_acquire(key, timeout=-1)
            elif not self._locks.try_acquire(key):
                logger.debug("Skipping rotation of busy key %s", key)
                continue
            try:
                excess = self._newest_first(self._group(key))[self._config.max_per_client:]
                if excess:
                    deleted.extend(self._delete_records(excess, rotated=True))
            finally:
                self._locks.release(key)
        return deleted

    # -- internals ----------------------------------------------------------

    def _group(self, key: BackupKey) -> list[BackupRecord]:
        with self._lock:
            return [r for r in self._records if r.key == key]

    def _newest_first(self, records: list[BackupRecord]) -> list[BackupRecord]:
        with self._lock:
            position = {r.backup_id: i for i, r in enumerate(self._records)}
        return sorted(
            records,
            key=lambda r: (r.created_at, position.get(r.backup_id, -1)),
            reverse=True,
        )

    def _delete_records(self, records: list[BackupRecord], rotated: bool) -> list[BackupRecord]:
        removed: list[BackupRecord] = []
        for record in records:
            snapshot = Path(record.snapshot_path)
            try:
                snapshot.unlink(missing_ok=True)
            except OSError as exc:
                if not rotated:
                    raise BackupError(
                        f"Failed to delete snapshot {snapshot}: {exc}",
                        backup_id=record.backup_id,
                    ) from exc
                logger.warning("Failed to delete snapshot %s: %s", snapshot, exc)
                continue
            removed.append(record)

        if removed:
            ids = {r.backup_id for r in removed}
            with self._lock:
                self._records = [r for r in self._records if r.backup_id not in ids]
                self._save_index()
        for record in removed:
            logger.info("Deleted backup %s (rotated=%s)", record.backup_id, rotated)
            self._publish(BackupDeleted(source_id="backup-store", record=record, rotated=rotated))
        return removed

    def _load_index(self) -> list[BackupRecord]:
        path = self.index_path
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("index is not a JSON array")
            return [backup_record_from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring corrupt backup index %s: %s", path, exc)
            return []

    def _save_index(self) -> None:
        payload = json.dumps([backup_record_to_dict(r) for r in self._records], indent=2)
        try:
            atomic_write_text(self.index_path, payload + "\n")
        except OSError as exc:
            raise BackupError(f"Failed to write backup index {self.index_path}: {exc}") from exc

    def _publish(self, event: DomainEvent) -> None:
        if self._bus is not None:
            self._bus.publish(event)

