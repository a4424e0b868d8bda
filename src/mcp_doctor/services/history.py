"""Repair history: an append-only audit log of repair attempts.

Entries are kept in memory for querying and, when a path is given, appended
to a JSON-lines file (one serialized :class:`HistoryEntry` per line).
Existing lines are loaded on construction; lines that fail to parse are
skipped with a warning.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ClientKind, RepairPhase
from mcp_doctor.domain.values import HistoryEntry, RepairReport
from mcp_doctor.infrastructure.serialization import (
    history_entry_from_dict,
    history_entry_to_dict,
)

logger = logging.getLogger(__name__)


class RepairHistory:
    """Queryable, persisted history of repair outcomes.

    Parameters
    ----------
    path:
        JSON-lines file to append to.  ``None`` keeps the history in memory
        only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def record(self, entry: HistoryEntry) -> HistoryEntry:
        """Append *entry* in memory and on disk.

        A failed disk write is logged; the in-memory history still holds
        the entry.
        """
        with self._lock:
            self._entries.append(entry)
            if self._path is not None:
                line = json.dumps(history_entry_to_dict(entry), sort_keys=True)
                try:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    with self._path.open("a", encoding="utf-8") as fh:
                        fh.write(line + "\n")
                except OSError as exc:
                    logger.warning("Failed to append repair history to %s: %s", self._path, exc)
        logger.debug("Recorded repair history entry %s (%s)", entry.entry_id, entry.outcome.value)
        return entry

    def record_report(self, report: RepairReport, **metadata: Any) -> HistoryEntry:
        """Record the terminal outcome of a repair run."""
        plan = report.plan
        entry = HistoryEntry(
            client_kind=report.client.kind,
            config_path=report.client.config_path,
            outcome=report.phase,
            timestamp=report.finished_at,
            fixes=tuple(f.description for f in plan.fixes),
            changes=report.applied_changes,
            error_kinds=tuple(sorted({e.kind for e in plan.errors}, key=lambda k: k.value)),
            reason=report.reason,
            backup_id=report.backup_id,
            requires_manual_intervention=report.requires_manual_intervention,
            metadata={"report_id": report.report_id, "dry_run": report.dry_run, **metadata},
        )
        return self.record(entry)

    def query(
        self,
        client_kind: ClientKind | None = None,
        config_path: str | None = None,
        outcome: RepairPhase | None = None,
        limit: int = 100,
    ) -> list[HistoryEntry]:
        """Entries matching every given filter, newest first."""
        with self._lock:
            results = list(self._entries)
        if client_kind is not None:
            results = [e for e in results if e.client_kind is client_kind]
        if config_path is not None:
            results = [e for e in results if e.config_path == config_path]
        if outcome is not None:
            results = [e for e in results if e.outcome is outcome]
        results.reverse()
        return results[:limit]

    def log_watermark(self, client: TargetClient) -> dict[str, int]:
        """Log offsets recorded by the newest successful repair of *client*.

        Log lines before these offsets predate that repair and no longer
        describe the current configuration.
        """
        with self._lock:
            entries = list(self._entries)
        for entry in reversed(entries):
            if entry.client_kind is not client.kind or entry.config_path != client.config_path:
                continue
            offsets = entry.metadata.get("log_offsets")
            if entry.outcome is RepairPhase.SUCCEEDED and isinstance(offsets, dict):
                return {str(k): int(v) for k, v in offsets.items()}
        return {}

    @property
    def entries(self) -> list[HistoryEntry]:
        """All entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def _load(self) -> list[HistoryEntry]:
        if self._path is None or not self._path.exists():
            return []
        entries: list[HistoryEntry] = []
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning("Cannot read repair history %s: %s", self._path, exc)
            return []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entries.append(history_entry_from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping history line %d of %s: %s", number, self._path, exc)
        return entries
