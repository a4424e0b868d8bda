"""LangGraph node functions for the repair state machine.

Each ``make_*_node`` factory closes over the collaborators a node needs
(backup store, config store, verifier) and returns a function that takes a
``RepairState`` and returns a partial update dict.  The nodes delegate to
the service classes rather than reimplementing any logic.

Nodes never raise for repair-phase failures: they record ``failed`` /
``reason`` and let the edges route to rollback or finalize.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from mcp_doctor.domain.enums import RepairPhase
from mcp_doctor.domain.exceptions import DoctorError
from mcp_doctor.domain.values import RepairChange, RepairPlan
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.verification import BaseVerifier, applied_plan

logger = logging.getLogger(__name__)

Node = Callable[[dict[str, Any]], dict[str, Any]]
PhaseListener = Callable[[dict[str, Any], RepairPhase], None]
ChangeListener = Callable[[dict[str, Any], RepairChange], None]


def noop_listener(*_args: Any) -> None:
    return None


def _is_cancelled(state: dict[str, Any]) -> bool:
    event = state.get("cancel_event")
    return event is not None and event.is_set()


def _checked_plan(state: dict[str, Any]) -> RepairPlan:
    return applied_plan(state["plan"], state.get("skipped_fixes") or ())


def make_backup_node(backups: BackupStore, on_phase: PhaseListener = noop_listener) -> Node:
    """Create the node that secures a pre-repair snapshot.

    Parameters
    ----------
    backups:
        Store used for ``ensure_fresh_backup``.
    on_phase:
        Called with the state and ``BACKED_UP`` once the backup exists.

    Returns
    -------
    Callable
        A LangGraph node function.
    """

    def backup_node(state: dict[str, Any]) -> dict[str, Any]:
        client = state["client"]
        try:
            record = backups.ensure_fresh_backup(client)
        except (DoctorError, OSError) as exc:
            logger.error("Backup for %s failed; aborting repair: %s", client.display_name, exc)
            return {
                "failed": True,
                "reason": f"Backup failed: {exc}",
                "outcome": RepairPhase.FAILED,
            }
        on_phase(state, RepairPhase.BACKED_UP)
        logger.debug("backup_node: %s secured as %s", client.display_name, record.backup_id)
        return {"backup_id": record.backup_id, "phases": [RepairPhase.BACKED_UP]}

    return backup_node


def make_apply_node(
    store: ConfigStore,
    on_phase: PhaseListener = noop_listener,
    on_change: ChangeListener = noop_listener,
) -> Node:
    """Create the node that writes the plan's changes in order.

    Fixes that are not automatic are applied only with ``auto_confirm``;
    otherwise they are skipped.  Manual changes are never written.  The
    first failing change stops the run.
    """

    def apply_node(state: dict[str, Any]) -> dict[str, Any]:
        client = state["client"]
        plan = state["plan"]
        auto_confirm = state.get("auto_confirm", False)

        if _is_cancelled(state):
            logger.info("Repair of %s cancelled before applying", client.display_name)
            return {
                "cancelled": True,
                "reason": "Cancelled before applying",
                "outcome": RepairPhase.FAILED,
            }
        on_phase(state, RepairPhase.APPLYING)

        applied: list[RepairChange] = []
        skipped = []
        update: dict[str, Any] = {"phases": [RepairPhase.APPLYING]}

        for fix in plan.fixes:
            if not fix.automatic and not auto_confirm:
                skipped.append(fix)
                continue
            writable = [c for c in fix.changes if not c.is_manual]
            if not writable:
                skipped.append(fix)
                continue
            for change in writable:
                if _is_cancelled(state):
                    update.update(cancelled=True, reason="Cancelled during applying")
                    break
                try:
                    recorded = store.apply_change(client.config_path, change)
                except (DoctorError, OSError, ValueError, TypeError) as exc:
                    logger.error("Applying '%s' failed: %s", change.description, exc)
                    update.update(failed=True, reason=f"Applying '{change.description}' failed: {exc}")
                    break
                applied.append(recorded)
                on_change(state, recorded)
            if update.get("failed") or update.get("cancelled"):
                break

        update["applied_changes"] = applied
        update["skipped_fixes"] = skipped
        if not applied and not update.get("failed"):
            # Nothing was written, so there is nothing to verify or roll back.
            update["outcome"] = RepairPhase.FAILED
            if update.get("cancelled"):
                update["reason"] = "Cancelled before applying"
            else:
                update["reason"] = (
                    f"No automatic changes applied; {len(skipped)} fix(es) need manual action"
                )
        logger.debug(
            "apply_node: %d applied, %d skipped for %s",
            len(applied), len(skipped), client.display_name,
        )
        return update

    return apply_node


def make_verify_node(verifier: BaseVerifier, on_phase: PhaseListener = noop_listener) -> Node:
    """Create the node that re-checks the client against the fixes actually applied."""

    def verify_node(state: dict[str, Any]) -> dict[str, Any]:
        client = state["client"]
        on_phase(state, RepairPhase.VERIFYING)
        try:
            verdict = verifier.verify(client, _checked_plan(state), state.get("health_before"))
        except Exception as exc:
            logger.exception("Verification of %s raised", client.display_name)
            return {
                "phases": [RepairPhase.VERIFYING],
                "verified": False,
                "reason": f"Verification error: {exc}",
            }
        update: dict[str, Any] = {
            "phases": [RepairPhase.VERIFYING],
            "verified": verdict.ok,
            "health_after": verdict.health,
            "log_offsets": dict(verdict.log_offsets),
        }
        if verdict.ok:
            update["outcome"] = RepairPhase.SUCCEEDED
        else:
            update["reason"] = verdict.reason or "Verification failed"
        return update

    return verify_node


def make_rollback_node(backups: BackupStore, verifier: BaseVerifier) -> Node:
    """Create the node that restores the pre-repair backup.

    After a verification failure or a cancellation the run ends
    ``rolled_back``; after an apply failure it ends ``failed``.  A failed
    restore ends ``failed`` with ``requires_manual_intervention``.
    """

    def rollback_node(state: dict[str, Any]) -> dict[str, Any]:
        client = state["client"]
        backup_id = state.get("backup_id")
        reason = state.get("reason", "")
        try:
            if backup_id is None:
                raise DoctorError("No pre-repair backup to restore")
            backups.restore(backup_id)
        except (DoctorError, OSError) as exc:
            logger.error("Rollback of %s failed: %s", client.display_name, exc)
            return {
                "outcome": RepairPhase.FAILED,
                "requires_manual_intervention": True,
                "reason": f"{reason}; restore failed: {exc}" if reason else f"Restore failed: {exc}",
            }

        logger.info("Rolled back %s to backup %s", client.display_name, backup_id)
        update: dict[str, Any] = {
            "outcome": RepairPhase.FAILED if state.get("failed") else RepairPhase.ROLLED_BACK,
        }
        try:
            verdict = verifier.verify(client, _checked_plan(state), state.get("health_before"))
            update["health_after"] = verdict.health
        except Exception:
            logger.exception("Re-verification after rollback of %s raised", client.display_name)
        return update

    return rollback_node


def finalize_node(state: dict[str, Any]) -> dict[str, Any]:
    """Stamp the terminal phase."""
    outcome = state.get("outcome") or RepairPhase.FAILED
    return {"phase": outcome, "phases": [outcome]}
