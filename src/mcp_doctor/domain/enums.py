"""Domain enumerations for MCP Doctor.

These enums capture the fixed vocabularies used across the domain layer:
host platforms, supported client applications, helper-process status, the
error taxonomy, health levels, repair change kinds, and the repair state
machine.
"""

from __future__ import annotations

from enum import Enum
from functools import total_ordering


class Platform(Enum):
    """Host operating system family."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"


class ClientKind(Enum):
    """Supported target client applications."""

    CLAUDE_DESKTOP = "claude_desktop"
    WINDSURF = "windsurf"
    CURSOR = "cursor"
    CUSTOM = "custom"


class ProcessStatus(Enum):
    """Last known runtime status of a helper process."""

    UNKNOWN = "unknown"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class ErrorKind(Enum):
    """Taxonomy of classified helper-process failures."""

    PATH = "path_error"  # missing executable or module
    ENVIRONMENT = "env_error"  # missing or incorrect variable
    PERMISSION = "permission_error"
    CONFIG = "config_error"  # malformed configuration
    NETWORK = "network_error"
    PROCESS = "process_error"  # failed to start or crashed
    UNKNOWN = "unknown_error"


_HEALTH_RANK = {"healthy": 0, "minor": 1, "major": 2, "critical": 3}


@total_ordering
class HealthLevel(Enum):
    """Totally ordered severity: HEALTHY < MINOR < MAJOR < CRITICAL."""

    HEALTHY = "healthy"
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _HEALTH_RANK[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, HealthLevel):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def worst(cls, *levels: HealthLevel) -> HealthLevel:
        """Maximum of *levels*; ``HEALTHY`` when empty."""
        return max(levels, default=cls.HEALTHY)


class ChangeKind(Enum):
    """What a single repair change touches."""

    PATH = "path"
    COMMAND = "command"
    ARGUMENT = "argument"
    ENVIRONMENT = "environment"
    PERMISSION = "permission"
    CONFIG = "config"
    PACKAGE = "package"


class FixSource(Enum):
    """Where a candidate fix came from."""

    TEMPLATE = "template"
    ADVISOR = "advisor"


class RepairPhase(Enum):
    """States of the per-client repair state machine."""

    PLANNED = "planned"
    BACKED_UP = "backed_up"
    APPLYING = "applying"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RepairPhase.SUCCEEDED, RepairPhase.ROLLED_BACK, RepairPhase.FAILED)
