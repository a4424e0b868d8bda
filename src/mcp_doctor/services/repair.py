"""Safe repair execution.

:class:`RepairExecutor` runs one :class:`RepairPlan` through the compiled
repair graph: backup, apply, verify and, when needed, rollback.  Every run
that reaches a terminal phase is appended to the repair history and
published as :class:`RepairCompleted`.

Runs are serialized per ``(client kind, config path)`` key through the
shared :class:`KeyLockRegistry`, the same registry the backup store uses for
rotation.  A run on a busy key raises :class:`RepairInProgressError` unless
``wait=True``.

Cancellation uses a ``threading.Event``.  A run cancelled before any change
is written leaves no trace and raises :class:`RepairCancelledError`; a run
cancelled while applying is rolled back.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import HealthLevel, RepairPhase
from mcp_doctor.domain.events import (
    ChangeApplied,
    DomainEvent,
    RepairCompleted,
    RepairPhaseEntered,
    RepairStarted,
)
from mcp_doctor.domain.exceptions import RepairCancelledError, RepairInProgressError
from mcp_doctor.domain.values import RepairChange, RepairFix, RepairPlan, RepairReport, utcnow
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.infrastructure.event_bus import EventBus
from mcp_doctor.infrastructure.locks import KeyLockRegistry
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.history import RepairHistory
from mcp_doctor.services.verification import BaseVerifier

logger = logging.getLogger(__name__)

_SOURCE = "repair-executor"


def exit_code(report: RepairReport) -> int:
    """``0`` for a succeeded (or dry) run, ``1`` otherwise."""
    if report.dry_run:
        return 0
    return 0 if report.succeeded else 1


class RepairExecutor:
    """Drives repair plans through the backup/apply/verify/rollback protocol.

    Parameters
    ----------
    backups:
        Backup store; its lock registry serializes runs per key.
    config_store:
        Writes each change.
    verifier:
        Post-apply verifier (see :mod:`mcp_doctor.services.verification`).
    history:
        Optional repair history receiving one entry per terminal run.
    event_bus:
        Optional bus for ``RepairStarted`` / ``RepairPhaseEntered`` /
        ``ChangeApplied`` / ``RepairCompleted``.
    """

    def __init__(
        self,
        backups: BackupStore,
        config_store: ConfigStore,
        verifier: BaseVerifier,
        history: RepairHistory | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        from mcp_doctor.graph.graph import build_repair_graph

        self._backups = backups
        self._store = config_store
        self._verifier = verifier
        self._history = history
        self._bus = event_bus
        self._graph = build_repair_graph(
            backups,
            config_store,
            verifier,
            on_phase=self._on_phase,
            on_change=self._on_change,
        )

    @property
    def locks(self) -> KeyLockRegistry:
        return self._backups.locks

    @property
    def history(self) -> RepairHistory | None:
        return self._history

    def execute(
        self,
        plan: RepairPlan,
        *,
        dry_run: bool = False,
        auto_confirm: bool = False,
        wait: bool = False,
        cancel: threading.Event | None = None,
        health_before: HealthLevel | None = None,
    ) -> RepairReport:
        """Run *plan* and return its report.

        Parameters
        ----------
        plan:
            The plan to execute; its client is the repair target.
        dry_run:
            Report what would change without taking a backup or writing.
        auto_confirm:
            Apply fixes that are not automatic as well.
        wait:
            Block on a busy key instead of raising.
        cancel:
            Optional cancellation token.
        health_before:
            Health of the client when the plan was made; verification
            fails if health ends up worse.

        Raises
        ------
        RepairInProgressError
            Another run holds the key and ``wait`` is false.
        RepairCancelledError
            Cancelled before any change was written.
        """
        client = plan.client
        started_at = utcnow()

        if plan.is_empty:
            logger.info("Nothing to repair for %s", client.display_name)
            return RepairReport(
                client=client,
                plan=plan,
                phase=RepairPhase.SUCCEEDED,
                phases=(RepairPhase.PLANNED, RepairPhase.SUCCEEDED),
                reason="No fixes planned",
                health_before=health_before,
                health_after=health_before,
                dry_run=dry_run,
                started_at=started_at,
            )
        if dry_run:
            return self._dry_run(plan, auto_confirm, health_before, started_at)

        if cancel is not None and cancel.is_set():
            raise RepairCancelledError("Repair cancelled before start", client_name=client.display_name)

        if not self.locks.try_acquire(client.key, timeout=-1 if wait else None):
            raise RepairInProgressError(
                f"A repair for {client.display_name} is already in progress",
                client_name=client.display_name,
            )
        try:
            return self._run(plan, auto_confirm, cancel, health_before, started_at)
        finally:
            self.locks.release(client.key)

    # -- internals ----------------------------------------------------------

    def _run(
        self,
        plan: RepairPlan,
        auto_confirm: bool,
        cancel: threading.Event | None,
        health_before: HealthLevel | None,
        started_at: datetime,
    ) -> RepairReport:
        client = plan.client
        logger.info("Repairing %s with %d fixes", client.display_name, len(plan.fixes))
        self._publish(
            RepairStarted(source_id=_SOURCE, client_name=client.display_name, fix_count=len(plan.fixes))
        )
        self._verifier.prepare(client)

        initial: dict[str, Any] = {
            "client": client,
            "plan": plan,
            "auto_confirm": auto_confirm,
            "cancel_event": cancel,
            "health_before": health_before,
            "phases": [RepairPhase.PLANNED],
            "applied_changes": [],
            "skipped_fixes": [],
            "failed": False,
            "cancelled": False,
            "verified": False,
            "reason": "",
            "requires_manual_intervention": False,
            "outcome": None,
        }
        final = self._graph.invoke(initial)

        if final.get("cancelled") and not final.get("applied_changes"):
            logger.info("Repair of %s cancelled before any change", client.display_name)
            raise RepairCancelledError(
                final.get("reason") or "Repair cancelled", client_name=client.display_name
            )

        report = RepairReport(
            client=client,
            plan=plan,
            phase=final["phase"],
            phases=tuple(final.get("phases", [])),
            applied_changes=tuple(final.get("applied_changes", [])),
            skipped_fixes=tuple(final.get("skipped_fixes", [])),
            backup_id=final.get("backup_id"),
            reason=final.get("reason", ""),
            health_before=health_before,
            health_after=final.get("health_after"),
            requires_manual_intervention=bool(final.get("requires_manual_intervention")),
            started_at=started_at,
            finished_at=utcnow(),
        )
        if report.requires_manual_intervention:
            logger.error(
                "Repair of %s needs manual intervention: %s", client.display_name, report.reason
            )
        else:
            logger.info("Repair of %s ended %s", client.display_name, report.phase.value)

        if self._history is not None:
            metadata: dict[str, Any] = {}
            if report.succeeded and final.get("log_offsets"):
                metadata["log_offsets"] = final["log_offsets"]
            self._history.record_report(report, **metadata)
        self._publish(RepairCompleted(source_id=_SOURCE, report=report))
        return report

    def _dry_run(
        self,
        plan: RepairPlan,
        auto_confirm: bool,
        health_before: HealthLevel | None,
        started_at: datetime,
    ) -> RepairReport:
        would_apply: list[RepairChange] = []
        skipped: list[RepairFix] = []
        for fix in plan.fixes:
            writable = [c for c in fix.changes if not c.is_manual]
            if (not fix.automatic and not auto_confirm) or not writable:
                skipped.append(fix)
            else:
                would_apply.extend(writable)
        logger.info(
            "Dry run for %s: %d changes would be applied, %d fixes skipped",
            plan.client.display_name, len(would_apply), len(skipped),
        )
        return RepairReport(
            client=plan.client,
            plan=plan,
            phase=RepairPhase.PLANNED,
            phases=(RepairPhase.PLANNED,),
            applied_changes=tuple(would_apply),
            skipped_fixes=tuple(skipped),
            reason="Dry run: no changes written",
            health_before=health_before,
            dry_run=True,
            started_at=started_at,
        )

    def _on_phase(self, state: dict[str, Any], phase: RepairPhase) -> None:
        client: TargetClient = state["client"]
        logger.debug("Repair of %s entered %s", client.display_name, phase.value)
        self._publish(RepairPhaseEntered(source_id=_SOURCE, client_name=client.display_name, phase=phase))

    def _on_change(self, state: dict[str, Any], change: RepairChange) -> None:
        client: TargetClient = state["client"]
        self._publish(ChangeApplied(source_id=_SOURCE, client_name=client.display_name, change=change))

    def _publish(self, event: DomainEvent) -> None:
        if self._bus is not None:
            self._bus.publish(event)
