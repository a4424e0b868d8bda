"""Post-repair verification.

A verifier answers one question for the repair graph: after the changes,
did health not regress and are the targeted errors gone?

:class:`ClientVerifier` is the default.  It re-reads the client's helper
map, classifies only log output written since :meth:`prepare` was called
(historical lines describe the state before the repair), re-probes every
helper targeted by an applied fix with the root-cause isolator and
re-evaluates health.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ErrorKind, HealthLevel
from mcp_doctor.domain.values import ClassifiedError, RepairFix, RepairPlan
from mcp_doctor.services.health import HealthEvaluator
from mcp_doctor.services.inventory import ClientInventory
from mcp_doctor.services.isolation import RootCauseIsolator
from mcp_doctor.services.log_classifier import LogClassifier, helper_name_from_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verification:
    """Verdict of one verification pass."""

    ok: bool
    health: HealthLevel | None = None
    reason: str = ""
    errors: tuple[ClassifiedError, ...] = ()
    log_offsets: dict[str, int] = field(default_factory=dict)


class BaseVerifier(ABC):
    """Decides whether a repair held."""

    def prepare(self, client: TargetClient) -> None:
        """Called once before any change is applied."""

    @abstractmethod
    def verify(
        self,
        client: TargetClient,
        plan: RepairPlan,
        health_before: HealthLevel | None,
    ) -> Verification:
        """Re-check *client* after the changes of *plan*."""


class CallableVerifier(BaseVerifier):
    """Adapts a plain ``(client, plan, health_before) -> Verification`` callable."""

    def __init__(
        self,
        fn: Callable[[TargetClient, RepairPlan, HealthLevel | None], Verification],
    ) -> None:
        self._fn = fn

    def verify(
        self,
        client: TargetClient,
        plan: RepairPlan,
        health_before: HealthLevel | None,
    ) -> Verification:
        return self._fn(client, plan, health_before)


def applied_plan(plan: RepairPlan, skipped: Iterable[RepairFix]) -> RepairPlan:
    """*plan* without the fixes the apply step skipped.

    A skipped fix leaves its error in place, so only the fixes whose
    changes were written are held against the verification.
    """
    skipped = list(skipped)
    if not skipped:
        return plan
    return replace(plan, fixes=tuple(f for f in plan.fixes if f not in skipped))


def targeted_shapes(plan: RepairPlan) -> set[tuple[ErrorKind, str | None]]:
    """``(kind, helper name)`` pairs the plan's fixes set out to remove."""
    return {(fix.error.kind, fix.error.helper_name) for fix in plan.fixes}


def remaining_targets(
    plan: RepairPlan, errors: tuple[ClassifiedError, ...] | list[ClassifiedError]
) -> list[ClassifiedError]:
    targets = targeted_shapes(plan)
    return [e for e in errors if (e.kind, e.helper_name) in targets]


class ClientVerifier(BaseVerifier):
    """Inventory + classifier + isolator + health re-run for one client."""

    def __init__(
        self,
        inventory: ClientInventory,
        classifier: LogClassifier,
        evaluator: HealthEvaluator | None = None,
        isolator: RootCauseIsolator | None = None,
    ) -> None:
        self._inventory = inventory
        self._classifier = classifier
        self._evaluator = evaluator or HealthEvaluator()
        self._isolator = isolator or RootCauseIsolator()
        self._offsets: dict[tuple[object, ...], dict[str, int]] = {}

    def prepare(self, client: TargetClient) -> None:
        self._offsets[client.key] = self._classifier.log_sizes(client)

    def verify(
        self,
        client: TargetClient,
        plan: RepairPlan,
        health_before: HealthLevel | None,
    ) -> Verification:
        if not self._inventory.refresh(client):
            return Verification(ok=False, reason="Configuration can no longer be read")

        offsets = self._classifier.log_sizes(client)
        errors = self._new_log_errors(client) + self._probe_errors(client, plan)
        running = self._inventory.is_client_running(client)
        health = self._evaluator.evaluate(client, running, errors).health

        if health_before is not None and health > health_before:
            return Verification(
                ok=False,
                health=health,
                reason=f"Health regressed from {health_before.value} to {health.value}",
                errors=tuple(errors),
                log_offsets=offsets,
            )
        remaining = remaining_targets(plan, errors)
        if remaining:
            shown = "; ".join(sorted({f"{e.kind.value}: {e.message}" for e in remaining}))
            return Verification(
                ok=False,
                health=health,
                reason=f"Targeted errors remain: {shown}",
                errors=tuple(errors),
                log_offsets=offsets,
            )
        return Verification(ok=True, health=health, errors=tuple(errors), log_offsets=offsets)

    def _new_log_errors(self, client: TargetClient) -> list[ClassifiedError]:
        offsets = self._offsets.get(client.key, {})
        errors: list[ClassifiedError] = []
        for path in self._classifier.log_paths(client):
            name = helper_name_from_log(path)
            helper = client.helper(name) if name else None
            errors.extend(
                self._classifier.analyze_file(path, helper, client, offset=offsets.get(str(path), 0))
            )
        return errors

    def _probe_errors(self, client: TargetClient, plan: RepairPlan) -> list[ClassifiedError]:
        errors: list[ClassifiedError] = []
        names = sorted({n for _, n in targeted_shapes(plan) if n})
        for name in names:
            report = self._isolator.isolate_helper(client, name)
            if report.result.error_kind is ErrorKind.UNKNOWN:
                continue
            errors.append(report.result.to_error(helper=client.helper(name), client=client))
        return errors
