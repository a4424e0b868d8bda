"""Root-cause isolation for MCP Doctor.

A fixed, hand-authored binary decision tree that actively probes the
environment when passive log evidence is ambiguous or absent (for example a
helper that is not running and left no log lines).

The tree is an explicit sum type: every node is either a
:class:`ProbeNode` (run a read-only probe, descend into ``on_true`` or
``on_false``) or an :class:`IsolationLeaf` (stop and return its result).
It is built once at import time; it has finite depth and no cycles by
construction.

Probes must be idempotent and side-effect-free.  Each runs under a timeout
on a daemon thread; a timeout or an exception counts as ``False``.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Union

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ErrorKind
from mcp_doctor.domain.values import IsolationReport, IsolationResult
from mcp_doctor.infrastructure.config_store import HELPER_MAP_KEY

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0

_SCRIPT_SUFFIXES = (".js", ".mjs", ".cjs", ".ts", ".py")


# ===================================================================== #
#  Probe context                                                         #
# ===================================================================== #


@dataclass(frozen=True)
class ProbeContext:
    """What the probes look at: one helper of one config file.

    ``search_path`` overrides the ``PATH`` used to resolve commands;
    ``None`` means the helper's own ``env.PATH`` if set, else the process
    environment.
    """

    config_path: str
    helper_name: str
    search_path: str | None = None

    @classmethod
    def for_helper(cls, client: TargetClient, helper_name: str) -> ProbeContext:
        return cls(config_path=client.config_path, helper_name=helper_name)

    # Read helpers used by the probes.  They re-read the file on every call
    # so that a probe never depends on another probe having run first.

    def load_config(self) -> Any:
        return json.loads(Path(self.config_path).read_text(encoding="utf-8"))

    def helper_entry(self) -> dict[str, Any]:
        config = self.load_config()
        helpers = config.get(HELPER_MAP_KEY) if isinstance(config, dict) else None
        entry = helpers.get(self.helper_name) if isinstance(helpers, dict) else None
        return entry if isinstance(entry, dict) else {}

    def command(self) -> str:
        return str(self.helper_entry().get("command") or "")

    def args(self) -> list[str]:
        args = self.helper_entry().get("args") or []
        return [str(a) for a in args] if isinstance(args, list) else []

    def env(self) -> dict[str, str]:
        env = self.helper_entry().get("env") or {}
        return {str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {}

    def effective_path(self) -> str | None:
        if self.search_path is not None:
            return self.search_path
        return self.env().get("PATH") or os.environ.get("PATH")

    def resolve_command(self) -> str | None:
        command = self.command()
        if not command:
            return None
        candidate = Path(command).expanduser()
        if candidate.is_absolute():
            return str(candidate) if candidate.exists() else None
        return shutil.which(command, path=self.effective_path())


# ===================================================================== #
#  Tree nodes                                                            #
# ===================================================================== #

Probe = Callable[[ProbeContext], bool]
Renderer = Callable[[ProbeContext, IsolationResult], IsolationResult]


@dataclass(frozen=True)
class IsolationLeaf:
    """Terminal node.  ``render`` may specialise the result for the context."""

    result: IsolationResult
    render: Renderer | None = field(default=None, compare=False)

    def resolve(self, ctx: ProbeContext) -> IsolationResult:
        if self.render is None:
            return self.result
        try:
            return self.render(ctx, self.result)
        except Exception:
            logger.exception("Rendering isolation leaf failed")
            return self.result


@dataclass(frozen=True)
class ProbeNode:
    """Inner node: run ``probe`` and descend."""

    name: str
    probe: Probe = field(compare=False)
    on_true: DecisionNode
    on_false: DecisionNode


DecisionNode = Union[ProbeNode, IsolationLeaf]


def depth(node: DecisionNode) -> int:
    """Maximum number of probes evaluated along any root-to-leaf path."""
    if isinstance(node, IsolationLeaf):
        return 0
    if isinstance(node, ProbeNode):
        return 1 + max(depth(node.on_true), depth(node.on_false))
    raise TypeError(f"not a decision node: {node!r}")


def leaf_count(node: DecisionNode) -> int:
    if isinstance(node, IsolationLeaf):
        return 1
    if isinstance(node, ProbeNode):
        return leaf_count(node.on_true) + leaf_count(node.on_false)
    raise TypeError(f"not a decision node: {node!r}")


# ===================================================================== #
#  Default probes                                                        #
# ===================================================================== #


def config_exists(ctx: ProbeContext) -> bool:
    return Path(ctx.config_path).is_file()


def config_readable(ctx: ProbeContext) -> bool:
    return os.access(ctx.config_path, os.R_OK)


def config_parses(ctx: ProbeContext) -> bool:
    try:
        config = ctx.load_config()
    except (OSError, ValueError):
        return False
    return isinstance(config, dict) and isinstance(config.get(HELPER_MAP_KEY), dict)


def helper_has_command(ctx: ProbeContext) -> bool:
    return bool(ctx.command())


def command_resolvable(ctx: ProbeContext) -> bool:
    return ctx.resolve_command() is not None


def command_executable(ctx: ProbeContext) -> bool:
    resolved = ctx.resolve_command()
    return resolved is not None and os.access(resolved, os.X_OK)


def _script_args(ctx: ProbeContext) -> list[str]:
    scripts = []
    for arg in ctx.args():
        if arg.startswith("-"):
            continue
        path = Path(arg).expanduser()
        if path.is_absolute() or arg.lower().endswith(_SCRIPT_SUFFIXES):
            scripts.append(arg)
    return scripts


def _missing_scripts(ctx: ProbeContext) -> list[str]:
    return [a for a in _script_args(ctx) if not Path(a).expanduser().exists()]


def script_args_exist(ctx: ProbeContext) -> bool:
    return not _missing_scripts(ctx)


def _empty_env_vars(ctx: ProbeContext) -> list[str]:
    return sorted(k for k, v in ctx.env().items() if not v.strip())


def env_vars_set(ctx: ProbeContext) -> bool:
    return not _empty_env_vars(ctx)


# -- leaf renderers ---------------------------------------------------------


def _render_missing_command(ctx: ProbeContext, result: IsolationResult) -> IsolationResult:
    command = ctx.command()
    return replace(
        result,
        description=f'Command "{command}" not found in PATH',
        evidence=f"{command!r} is not on PATH ({ctx.effective_path() or ''})",
    )


def _render_not_executable(ctx: ProbeContext, result: IsolationResult) -> IsolationResult:
    return replace(result, evidence=f"{ctx.resolve_command()} is not executable")


def _render_missing_script(ctx: ProbeContext, result: IsolationResult) -> IsolationResult:
    return replace(result, evidence="missing: " + ", ".join(_missing_scripts(ctx)))


def _render_empty_env(ctx: ProbeContext, result: IsolationResult) -> IsolationResult:
    variable = _empty_env_vars(ctx)[0]
    return replace(
        result,
        description=f'Environment variable "{variable}" is not set',
        evidence="empty: " + ", ".join(_empty_env_vars(ctx)),
    )


def _render_config_path(ctx: ProbeContext, result: IsolationResult) -> IsolationResult:
    return replace(result, evidence=ctx.config_path)


def _leaf(kind: ErrorKind, description: str, fixable: bool, render: Renderer | None = None) -> IsolationLeaf:
    return IsolationLeaf(IsolationResult(kind, description, "", fixable), render)


def build_default_tree() -> DecisionNode:
    """The helper-process tree, most fundamental check first."""
    no_root_cause = _leaf(ErrorKind.UNKNOWN, "No root cause isolated", False)
    env_check = ProbeNode(
        "env_vars_set", env_vars_set,
        on_true=no_root_cause,
        on_false=_leaf(ErrorKind.ENVIRONMENT, "Environment variable is not set", True, _render_empty_env),
    )
    script_check = ProbeNode(
        "script_args_exist", script_args_exist,
        on_true=env_check,
        on_false=_leaf(ErrorKind.PATH, "Module not found", True, _render_missing_script),
    )
    executable_check = ProbeNode(
        "command_executable", command_executable,
        on_true=script_check,
        on_false=_leaf(ErrorKind.PERMISSION, "Permission denied", True, _render_not_executable),
    )
    resolvable_check = ProbeNode(
        "command_resolvable", command_resolvable,
        on_true=executable_check,
        on_false=_leaf(ErrorKind.PATH, "Command not found in PATH", True, _render_missing_command),
    )
    command_check = ProbeNode(
        "helper_has_command", helper_has_command,
        on_true=resolvable_check,
        on_false=_leaf(ErrorKind.CONFIG, "Server entry is missing or has no command", False),
    )
    parse_check = ProbeNode(
        "config_parses", config_parses,
        on_true=command_check,
        on_false=_leaf(ErrorKind.CONFIG, "Invalid configuration syntax", True, _render_config_path),
    )
    readable_check = ProbeNode(
        "config_readable", config_readable,
        on_true=parse_check,
        on_false=_leaf(ErrorKind.PERMISSION, "Permission denied", True, _render_config_path),
    )
    return ProbeNode(
        "config_exists", config_exists,
        on_true=readable_check,
        on_false=_leaf(ErrorKind.CONFIG, "Configuration file not found", True, _render_config_path),
    )


DEFAULT_TREE: DecisionNode = build_default_tree()


# ===================================================================== #
#  Isolator                                                              #
# ===================================================================== #


class RootCauseIsolator:
    """Traverses a decision tree top-down with bounded probes.

    Parameters
    ----------
    tree:
        Root node; defaults to :data:`DEFAULT_TREE`.
    probe_timeout:
        Seconds allowed per probe before it counts as ``False``.
    """

    def __init__(
        self,
        tree: DecisionNode | None = None,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        if probe_timeout <= 0:
            raise ValueError(f"probe_timeout must be > 0, got {probe_timeout}")
        self._tree = tree if tree is not None else DEFAULT_TREE
        self._probe_timeout = probe_timeout

    @property
    def tree(self) -> DecisionNode:
        return self._tree

    def depth(self) -> int:
        return depth(self._tree)

    def isolate(self, ctx: ProbeContext) -> IsolationReport:
        """Walk the tree for *ctx* and return the leaf reached plus the trace."""
        node = self._tree
        trace: list[tuple[str, bool]] = []
        while True:
            if isinstance(node, IsolationLeaf):
                result = node.resolve(ctx)
                logger.debug(
                    "Isolated %s after %d probes: %s",
                    ctx.helper_name, len(trace), result.description,
                )
                return IsolationReport(result=result, trace=tuple(trace))
            if isinstance(node, ProbeNode):
                outcome = self._run_probe(node, ctx)
                trace.append((node.name, outcome))
                node = node.on_true if outcome else node.on_false
                continue
            raise TypeError(f"not a decision node: {node!r}")

    def isolate_helper(self, client: TargetClient, helper_name: str) -> IsolationReport:
        return self.isolate(ProbeContext.for_helper(client, helper_name))

    def _run_probe(self, node: ProbeNode, ctx: ProbeContext) -> bool:
        outcome: list[bool] = []

        def target() -> None:
            try:
                outcome.append(bool(node.probe(ctx)))
            except Exception as exc:
                logger.warning("Probe %s raised %s; treating as False", node.name, exc)
                outcome.append(False)

        worker = threading.Thread(target=target, name=f"probe-{node.name}", daemon=True)
        worker.start()
        worker.join(self._probe_timeout)
        if worker.is_alive():
            logger.warning(
                "Probe %s timed out after %.1fs; treating as False",
                node.name, self._probe_timeout,
            )
            return False
        return outcome[0] if outcome else False
