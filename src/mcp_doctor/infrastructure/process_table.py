"""Read-only view of the live process table.

Wraps :mod:`psutil`.  Enumeration problems never escape: a process that
vanishes or denies access mid-scan is skipped, and a failure to enumerate at
all yields an empty table plus a logged warning.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str
    cmdline: tuple[str, ...] = ()

    @property
    def command_line(self) -> str:
        return " ".join(self.cmdline)

    def matches(self, needle: str) -> bool:
        """Case-insensitive match against the process name or command line."""
        lowered = needle.lower()
        return lowered in self.name.lower() or lowered in self.command_line.lower()


class ProcessTable(ABC):
    """Source of running processes (swappable for tests)."""

    @abstractmethod
    def processes(self) -> list[ProcessInfo]:
        """Snapshot of running processes; ``[]`` when enumeration fails."""

    def any_matching(self, needles: Iterable[str]) -> bool:
        needles = [n for n in needles if n]
        if not needles:
            return False
        return any(p.matches(n) for p in self.processes() for n in needles)


class PsutilProcessTable(ProcessTable):
    """Process table backed by ``psutil.process_iter``."""

    def processes(self) -> list[ProcessInfo]:
        result: list[ProcessInfo] = []
        try:
            for proc in psutil.process_iter(attrs=["pid", "name", "cmdline"]):
                try:
                    info = proc.info
                    result.append(
                        ProcessInfo(
                            pid=int(info.get("pid") or 0),
                            name=str(info.get("name") or ""),
                            cmdline=tuple(info.get("cmdline") or ()),
                        )
                    )
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
        except (psutil.Error, OSError) as exc:
            logger.warning("Failed to enumerate processes: %s", exc)
            return []
        return result


class StaticProcessTable(ProcessTable):
    """Fixed process list, for tests and offline diagnosis."""

    def __init__(self, processes: Iterable[ProcessInfo | str] = ()) -> None:
        self._processes = [
            p if isinstance(p, ProcessInfo) else ProcessInfo(pid=i + 1, name=p)
            for i, p in enumerate(processes)
        ]

    def processes(self) -> list[ProcessInfo]:
        return list(self._processes)
