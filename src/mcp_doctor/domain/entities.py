"""Domain entities for MCP Doctor.

Entities have *identity*.  A ``TargetClient`` is identified by its
``(kind, config_path)`` pair and is created by detection; the only part of
it that changes over its lifetime is the list of helper processes parsed
from the backing config file.  ``HelperProcess`` is immutable and is
identified by its name within the owning client.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .enums import ClientKind, ProcessStatus

# ---------------------------------------------------------------------------
# HelperProcess
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HelperProcess:
    """A helper (MCP server) process launched by a target client.

    Mirrors one entry of the client's ``mcpServers`` map.  ``env`` is a
    plain dict; with ``frozen=True`` the reference cannot be reassigned but
    callers must still treat its contents as read-only.
    """

    name: str
    command: str = ""
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    status: ProcessStatus = ProcessStatus.UNKNOWN

    @classmethod
    def from_config_entry(cls, name: str, entry: Mapping[str, Any]) -> HelperProcess:
        """Build a helper from a raw ``mcpServers`` entry.

        Missing or mistyped fields degrade to empty values; validation of
        the entry is the config store's job.
        """
        args = entry.get("args") or []
        env = entry.get("env") or {}
        return cls(
            name=name,
            command=str(entry.get("command") or ""),
            args=tuple(str(a) for a in args) if isinstance(args, list) else (),
            env={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {},
        )

    def to_config_entry(self) -> dict[str, Any]:
        """Return the ``{command, args, env}`` dict written to config files."""
        return {"command": self.command, "args": list(self.args), "env": dict(self.env)}

    def with_status(self, status: ProcessStatus) -> HelperProcess:
        """Return a copy carrying *status*."""
        return dataclasses.replace(self, status=status)

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *self.args]).strip()


# ---------------------------------------------------------------------------
# TargetClient
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class TargetClient:
    """An installed client application whose helper configuration we manage.

    Equality and hashing use :attr:`key` only, so a re-detected client with
    a refreshed helper list compares equal to its earlier incarnation.
    """

    kind: ClientKind
    display_name: str
    config_path: str
    helpers: list[HelperProcess] = field(default_factory=list)

    @property
    def key(self) -> tuple[ClientKind, str]:
        """Identity and serialization key: ``(kind, config_path)``."""
        return (self.kind, self.config_path)

    def helper(self, name: str) -> HelperProcess | None:
        """Return the helper called *name*, or ``None``."""
        for helper in self.helpers:
            if helper.name == name:
                return helper
        return None

    @property
    def helper_names(self) -> list[str]:
        return [h.name for h in self.helpers]

    def replace_helpers(self, helpers: Iterable[HelperProcess]) -> None:
        """Swap in a freshly parsed helper list (names must be unique)."""
        new_helpers = list(helpers)
        names = [h.name for h in new_helpers]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate helper names for {self.display_name}: {names}")
        self.helpers = new_helpers

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TargetClient):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return (
            f"TargetClient(kind={self.kind.value!r}, config_path={self.config_path!r}, "
            f"helpers={self.helper_names!r})"
        )
