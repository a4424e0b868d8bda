"""Health evaluation for MCP Doctor.

Reduces classified errors plus liveness into a :class:`HealthLevel` per
helper, per client and overall.  Pure and deterministic: no I/O.

Rules
-----
Helper (first match wins):
    process or permission error -> critical; path or config error -> major;
    network error -> minor; anything else (environment, unknown, no errors)
    -> healthy.
Client:
    starts at healthy if running else minor; a critical helper raises it to
    major; a major helper raises it to minor only while it is still healthy.
    Never lowered.  Minor helpers do not move the client level.
Overall:
    the maximum across clients, healthy when there are none.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ErrorKind, HealthLevel
from mcp_doctor.domain.values import (
    ClassifiedError,
    ClientHealth,
    HelperHealth,
    SystemStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

_CRITICAL_KINDS = frozenset({ErrorKind.PROCESS, ErrorKind.PERMISSION})
_MAJOR_KINDS = frozenset({ErrorKind.PATH, ErrorKind.CONFIG})


class HealthEvaluator:
    """Stateless severity reducer."""

    def helper_health(self, errors: Iterable[ClassifiedError]) -> HealthLevel:
        kinds = {e.kind for e in errors}
        if kinds & _CRITICAL_KINDS:
            return HealthLevel.CRITICAL
        if kinds & _MAJOR_KINDS:
            return HealthLevel.MAJOR
        if ErrorKind.NETWORK in kinds:
            return HealthLevel.MINOR
        return HealthLevel.HEALTHY

    def client_health(self, running: bool, helper_levels: Iterable[HealthLevel]) -> HealthLevel:
        level = HealthLevel.HEALTHY if running else HealthLevel.MINOR
        levels = list(helper_levels)
        if HealthLevel.CRITICAL in levels:
            level = HealthLevel.worst(level, HealthLevel.MAJOR)
        elif HealthLevel.MAJOR in levels and level is HealthLevel.HEALTHY:
            level = HealthLevel.MINOR
        return level

    def overall(self, client_levels: Iterable[HealthLevel]) -> HealthLevel:
        return HealthLevel.worst(*client_levels)

    def evaluate(
        self,
        client: TargetClient,
        running: bool,
        errors: Sequence[ClassifiedError],
    ) -> ClientHealth:
        """Evaluate one client.

        Errors are grouped by helper name.  Every configured helper gets an
        entry; errors naming a helper the client does not (or no longer)
        configure still get their own entry, and errors with no helper are
        grouped under ``""`` so that they still count.
        """
        grouped: dict[str, list[ClassifiedError]] = {name: [] for name in client.helper_names}
        for error in errors:
            grouped.setdefault(error.helper_name or "", []).append(error)

        helpers: dict[str, HelperHealth] = {}
        for name, helper_errors in grouped.items():
            helpers[name] = HelperHealth(
                health=self.helper_health(helper_errors),
                errors=tuple(helper_errors),
            )
        level = self.client_health(running, (h.health for h in helpers.values()))
        return ClientHealth(client=client, health=level, running=running, helpers=helpers)

    def build_status(self, client_healths: Iterable[ClientHealth]) -> SystemStatus:
        per_client: Mapping[TargetClient, ClientHealth] = {ch.client: ch for ch in client_healths}
        return SystemStatus(
            overall=self.overall(ch.health for ch in per_client.values()),
            clients=per_client,
            checked_at=utcnow(),
        )
