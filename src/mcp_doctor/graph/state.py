"""LangGraph state definition for the repair state machine.

``RepairState`` is the ``TypedDict`` flowing through the compiled repair
graph.  Append-only channels use ``Annotated[list, operator.add]`` so that
each node adds phases, applied changes and skipped fixes without
overwriting earlier ones.

Note: this module does NOT use ``from __future__ import annotations``
because LangGraph resolves the type hints at runtime via
``get_type_hints()``.
"""

import operator
import threading
from typing import Annotated, TypedDict

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import HealthLevel, RepairPhase
from mcp_doctor.domain.values import RepairPlan


class RepairState(TypedDict, total=False):
    """State of one repair run.

    ``outcome`` is set by whichever node decides the terminal phase; the
    edges route to ``finalize`` as soon as it is present.
    """

    # -- Inputs
    client: TargetClient
    plan: RepairPlan
    auto_confirm: bool
    cancel_event: threading.Event | None
    health_before: HealthLevel | None

    # -- Progress
    phases: Annotated[list, operator.add]
    backup_id: str | None
    applied_changes: Annotated[list, operator.add]
    skipped_fixes: Annotated[list, operator.add]

    # -- Verdict
    failed: bool
    cancelled: bool
    verified: bool
    health_after: HealthLevel | None
    log_offsets: dict
    reason: str
    requires_manual_intervention: bool
    outcome: RepairPhase | None
    phase: RepairPhase
