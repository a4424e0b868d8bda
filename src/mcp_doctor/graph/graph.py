"""Build the repair StateGraph.

``build_repair_graph()`` wires the backup, apply, verify, rollback and
finalize nodes with conditional edges into a compiled LangGraph that
implements ``planned -> backed_up -> applying -> verifying ->
{succeeded | rolled_back | failed}``.
"""

from typing import Any

from langgraph.graph import END, START, StateGraph

from mcp_doctor.graph.edges import after_apply, after_backup, after_verify
from mcp_doctor.graph.nodes import (
    ChangeListener,
    PhaseListener,
    finalize_node,
    make_apply_node,
    make_backup_node,
    make_rollback_node,
    make_verify_node,
    noop_listener,
)
from mcp_doctor.graph.state import RepairState
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.verification import BaseVerifier


def build_repair_graph(
    backups: BackupStore,
    store: ConfigStore,
    verifier: BaseVerifier,
    on_phase: PhaseListener = noop_listener,
    on_change: ChangeListener = noop_listener,
    checkpointer: Any | None = None,
) -> Any:
    """Build and compile the repair StateGraph.

    Parameters
    ----------
    backups:
        Backup store providing the pre-repair snapshot and the rollback.
    store:
        Config store writing each change.
    verifier:
        Post-apply verifier.
    on_phase:
        Called whenever a node enters a non-terminal phase.
    on_change:
        Called after each change has been written.
    checkpointer:
        Optional LangGraph checkpointer.

    Returns
    -------
    CompiledStateGraph
        A compiled graph ready for ``.invoke()``.
    """
    graph = StateGraph(RepairState)

    graph.add_node("backup", make_backup_node(backups, on_phase))
    graph.add_node("apply", make_apply_node(store, on_phase, on_change))
    graph.add_node("verify", make_verify_node(verifier, on_phase))
    graph.add_node("rollback", make_rollback_node(backups, verifier))
    graph.add_node("finalize", finalize_node)

    graph.add_edge(START, "backup")
    graph.add_conditional_edges(
        "backup", after_backup, {"apply": "apply", "finalize": "finalize"}
    )
    graph.add_conditional_edges(
        "apply",
        after_apply,
        {"verify": "verify", "rollback": "rollback", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "verify", after_verify, {"rollback": "rollback", "finalize": "finalize"}
    )
    graph.add_edge("rollback", "finalize")
    graph.add_edge("finalize", END)

    compile_kwargs: dict[str, Any] = {}
    if checkpointer is not None:
        compile_kwargs["checkpointer"] = checkpointer
    return graph.compile(**compile_kwargs)
