"""Value objects for MCP Doctor.

All types here are frozen dataclasses -- immutable, compared by value.
They represent diagnoses, health snapshots, backup metadata and repair
plans that have no identity beyond their content.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .entities import HelperProcess, TargetClient
from .enums import (
    ChangeKind,
    ClientKind,
    ErrorKind,
    FixSource,
    HealthLevel,
    Platform,
    RepairPhase,
)


def utcnow() -> datetime:
    """Timezone-aware current UTC time (used for every persisted timestamp)."""
    return datetime.now(timezone.utc)


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


# ---------------------------------------------------------------------------
# ClassifiedError
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassifiedError:
    """A typed diagnosis extracted from log evidence or active probing.

    Ephemeral: produced per analysis pass and only kept as part of a status
    snapshot or a repair record.
    """

    kind: ErrorKind
    message: str
    evidence: str = ""
    helper: HelperProcess | None = None
    client: TargetClient | None = None
    fixable: bool = False

    @property
    def helper_name(self) -> str | None:
        return self.helper.name if self.helper is not None else None

    @property
    def shape(self) -> tuple[ErrorKind, str]:
        """``(kind, message)`` pair used for de-duplication and lookups."""
        return (self.kind, self.message)


# ---------------------------------------------------------------------------
# Detection / analysis results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one client-inventory pass."""

    platform: Platform
    is_wsl: bool = False
    runtime_version: str | None = None
    clients: tuple[TargetClient, ...] = ()


@dataclass(frozen=True)
class LogAnalysisResult:
    """Aggregate log analysis for one client.

    ``helper_ok`` is a best-effort flag per helper name: ``False`` when any
    error classified against that helper is structurally fatal (process or
    path errors).  ``warnings`` collects non-fatal problems such as a
    missing log directory.
    """

    errors: tuple[ClassifiedError, ...] = ()
    warnings: tuple[str, ...] = ()
    helper_ok: Mapping[str, bool] = field(default_factory=dict)
    log_files: tuple[str, ...] = ()

    def errors_for(self, helper_name: str) -> list[ClassifiedError]:
        return [e for e in self.errors if e.helper_name == helper_name]


# ---------------------------------------------------------------------------
# Health snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HelperHealth:
    """Health of a single helper process within one monitor cycle."""

    health: HealthLevel = HealthLevel.HEALTHY
    errors: tuple[ClassifiedError, ...] = ()


@dataclass(frozen=True)
class ClientHealth:
    """Health of a target client plus its helpers."""

    client: TargetClient
    health: HealthLevel = HealthLevel.HEALTHY
    running: bool = False
    helpers: Mapping[str, HelperHealth] = field(default_factory=dict)

    @property
    def errors(self) -> list[ClassifiedError]:
        return [e for h in self.helpers.values() for e in h.errors]


@dataclass(frozen=True)
class SystemStatus:
    """Overall health snapshot, rebuilt from scratch every monitor cycle."""

    overall: HealthLevel = HealthLevel.HEALTHY
    clients: Mapping[TargetClient, ClientHealth] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=utcnow)

    def for_kind(self, kind: ClientKind) -> list[ClientHealth]:
        return [c for c in self.clients.values() if c.client.kind == kind]

    @property
    def errors(self) -> list[ClassifiedError]:
        return [e for c in self.clients.values() for e in c.errors]

    @property
    def is_healthy(self) -> bool:
        return self.overall == HealthLevel.HEALTHY


# ---------------------------------------------------------------------------
# Isolation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IsolationResult:
    """Terminal leaf value of the root-cause decision tree."""

    error_kind: ErrorKind
    description: str
    evidence: str = ""
    fixable: bool = False

    def to_error(
        self,
        helper: HelperProcess | None = None,
        client: TargetClient | None = None,
    ) -> ClassifiedError:
        """Express the isolation verdict as a ``ClassifiedError``."""
        return ClassifiedError(
            kind=self.error_kind,
            message=self.description,
            evidence=self.evidence,
            helper=helper,
            client=client,
            fixable=self.fixable,
        )


@dataclass(frozen=True)
class IsolationReport:
    """An isolation verdict plus the ``(probe name, outcome)`` path taken."""

    result: IsolationResult
    trace: tuple[tuple[str, bool], ...] = ()

    @property
    def probes_evaluated(self) -> int:
        return len(self.trace)


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackupRecord:
    """Metadata and snapshot pointer for a point-in-time config copy.

    Never mutated after creation.  ``snapshot_path`` holds a byte-exact copy
    of ``config_path`` as it existed at ``created_at``.
    """

    backup_id: str
    client_kind: ClientKind
    config_path: str
    snapshot_path: str
    created_at: datetime
    helpers: tuple[HelperProcess, ...] = ()

    @property
    def key(self) -> tuple[ClientKind, str]:
        return (self.client_kind, self.config_path)


# ---------------------------------------------------------------------------
# Repair plans
# ---------------------------------------------------------------------------


_MANUAL_CHANGE_KINDS = frozenset({ChangeKind.PERMISSION, ChangeKind.PACKAGE})


@dataclass(frozen=True)
class RepairChange:
    """A single edit (or manual action) targeting one helper process.

    ``before`` / ``after`` carry the audited values.  Changes whose kind is
    permission or package, or whose ``after`` is ``None``, describe work a
    person has to do and are never written to the config file.
    """

    kind: ChangeKind
    description: str
    helper_name: str | None = None
    before: Any = None
    after: Any = None

    @property
    def is_manual(self) -> bool:
        if self.kind is ChangeKind.CONFIG:
            return False
        return self.kind in _MANUAL_CHANGE_KINDS or self.after is None


@dataclass(frozen=True)
class RepairFix:
    """A candidate fix for one classified error."""

    error: ClassifiedError
    description: str
    changes: tuple[RepairChange, ...] = ()
    automatic: bool = False
    source: FixSource = FixSource.TEMPLATE
    confidence: float | None = None
    steps: tuple[str, ...] = ()
    template: str = ""

    def __post_init__(self) -> None:
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class RepairPlan:
    """An ordered set of fixes targeting specific errors of one client.

    Built fresh per repair request and discarded after execution; outcomes
    live in the repair history, never on the plan.
    """

    client: TargetClient
    errors: tuple[ClassifiedError, ...] = ()
    fixes: tuple[RepairFix, ...] = ()

    @property
    def requires_confirmation(self) -> bool:
        return any(not fix.automatic for fix in self.fixes)

    @property
    def is_empty(self) -> bool:
        return not self.fixes

    @property
    def target_kinds(self) -> frozenset[ErrorKind]:
        return frozenset(fix.error.kind for fix in self.fixes)


@dataclass(frozen=True)
class AdvisorSuggestion:
    """One ranked suggestion returned by the optional AI advisor."""

    error_kind: ErrorKind
    description: str
    steps: tuple[str, ...] = ()
    confidence: float = 0.5

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


# ---------------------------------------------------------------------------
# Repair outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RepairReport:
    """Explainable outcome of one repair run against one client."""

    client: TargetClient
    plan: RepairPlan
    phase: RepairPhase
    report_id: str = field(default_factory=_short_id)
    phases: tuple[RepairPhase, ...] = ()
    applied_changes: tuple[RepairChange, ...] = ()
    skipped_fixes: tuple[RepairFix, ...] = ()
    backup_id: str | None = None
    reason: str = ""
    health_before: HealthLevel | None = None
    health_after: HealthLevel | None = None
    requires_manual_intervention: bool = False
    dry_run: bool = False
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime = field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.phase is RepairPhase.SUCCEEDED

    def explain(self) -> str:
        """Human-readable account: what was targeted, what changed, why it ended here."""
        lines = [f"{self.client.display_name}: {self.phase.value}"]
        targets = sorted({f"{e.kind.value}: {e.message}" for e in self.plan.errors})
        if targets:
            lines.append("targeted: " + "; ".join(targets))
        for change in self.applied_changes:
            lines.append(f"changed: {change.description} ({change.before!r} -> {change.after!r})")
        for fix in self.skipped_fixes:
            lines.append(f"skipped: {fix.description}")
        if self.reason:
            lines.append(f"reason: {self.reason}")
        if self.requires_manual_intervention:
            lines.append("manual intervention required: configuration may be inconsistent")
        return "\n".join(lines)


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only audit record of one repair attempt."""

    client_kind: ClientKind
    config_path: str
    outcome: RepairPhase
    entry_id: str = field(default_factory=_short_id)
    timestamp: datetime = field(default_factory=utcnow)
    fixes: tuple[str, ...] = ()
    changes: tuple[RepairChange, ...] = ()
    error_kinds: tuple[ErrorKind, ...] = ()
    reason: str = ""
    backup_id: str | None = None
    requires_manual_intervention: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Self-test
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one self-test check."""

    name: str
    passed: bool
    description: str = ""
    error: str = ""


@dataclass(frozen=True)
class SelfTestResult:
    results: tuple[CheckResult, ...] = ()
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def all_passed(self) -> bool:
        return all(r.passed for r in self.results)
