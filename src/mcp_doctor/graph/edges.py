"""Conditional edge functions for the repair graph.

Every router sends the run to ``finalize`` once a node has decided the
terminal ``outcome``.
"""

from __future__ import annotations

from typing import Any, Literal


def after_backup(state: dict[str, Any]) -> Literal["apply", "finalize"]:
    """Fail closed: no backup, no mutation."""
    if state.get("outcome") is not None:
        return "finalize"
    return "apply"


def after_apply(state: dict[str, Any]) -> Literal["verify", "rollback", "finalize"]:
    """Roll back after a partial apply; verify a complete one."""
    if state.get("outcome") is not None:
        return "finalize"
    if state.get("failed") or state.get("cancelled"):
        return "rollback"
    return "verify"


def after_verify(state: dict[str, Any]) -> Literal["rollback", "finalize"]:
    if state.get("verified"):
        return "finalize"
    return "rollback"
