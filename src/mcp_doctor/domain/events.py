"""Domain events for MCP Doctor.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  Events are
the integration point between the engine and its consumers: the monitor loop
publishes status snapshots, the backup store and repair executor publish
lifecycle events; the shell, notifications and the CLI subscribe.

All events carry a ``timestamp`` and a ``source_id`` identifying the
originating component.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .enums import HealthLevel, RepairPhase
from .values import BackupRecord, RepairChange, RepairReport, SystemStatus

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Monitoring events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusPublished(DomainEvent):
    """A monitor cycle (scheduled or manual) produced a fresh status."""

    status: SystemStatus | None = None
    manual: bool = False


@dataclass(frozen=True)
class StatusChanged(DomainEvent):
    """The overall health level differs from the previous snapshot."""

    previous: HealthLevel | None = None
    current: HealthLevel = HealthLevel.HEALTHY
    status: SystemStatus | None = None


# ---------------------------------------------------------------------------
# Backup events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackupCreated(DomainEvent):
    record: BackupRecord | None = None


@dataclass(frozen=True)
class BackupRestored(DomainEvent):
    record: BackupRecord | None = None


@dataclass(frozen=True)
class BackupDeleted(DomainEvent):
    record: BackupRecord | None = None
    rotated: bool = False


# ---------------------------------------------------------------------------
# Repair events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RepairStarted(DomainEvent):
    client_name: str = ""
    fix_count: int = 0
    dry_run: bool = False


@dataclass(frozen=True)
class RepairPhaseEntered(DomainEvent):
    client_name: str = ""
    phase: RepairPhase = RepairPhase.PLANNED


@dataclass(frozen=True)
class ChangeApplied(DomainEvent):
    client_name: str = ""
    change: RepairChange | None = None


@dataclass(frozen=True)
class RepairCompleted(DomainEvent):
    """A repair run reached a terminal phase."""

    report: RepairReport | None = None
