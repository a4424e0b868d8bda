"""LangGraph-native repair state machine.

Public API
----------
build_repair_graph
    Build and compile the backup-apply-verify-rollback-finalize graph.
RepairState
    The TypedDict state flowing through the graph.

Node factories (for advanced customisation):
    make_backup_node, make_apply_node, make_verify_node, make_rollback_node,
    finalize_node

Edge functions:
    after_backup, after_apply, after_verify
"""

from mcp_doctor.graph.edges import after_apply, after_backup, after_verify
from mcp_doctor.graph.graph import build_repair_graph
from mcp_doctor.graph.nodes import (
    finalize_node,
    make_apply_node,
    make_backup_node,
    make_rollback_node,
    make_verify_node,
)
from mcp_doctor.graph.state import RepairState

__all__ = [
    "RepairState",
    "after_apply",
    "after_backup",
    "after_verify",
    "build_repair_graph",
    "finalize_node",
    "make_apply_node",
    "make_backup_node",
    "make_rollback_node",
    "make_verify_node",
]
