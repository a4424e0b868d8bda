"""Configuration dataclasses for MCP Doctor.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  No third-party dependencies -- just
stdlib ``dataclasses``.

Configs are **frozen** (``frozen=True``) so a running engine can share them
between the monitor thread and repair callers without risking silent
mutation.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

_ENV_HOME = "MCP_DOCTOR_HOME"


def _filtered(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    valid_keys = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_keys}


# ===================================================================== #
#  Monitor Configuration                                                 #
# ===================================================================== #


@dataclass(frozen=True)
class MonitorConfig:
    """Parameters governing the periodic health-monitor loop.

    Attributes
    ----------
    interval_seconds:
        Period between scheduled checks.
    redetect_when_empty:
        Re-run client detection at the start of a cycle whenever the cached
        inventory is empty.
    analyze_stopped_clients:
        If ``True``, logs of clients that are not running are classified
        too.  By default a stopped client is reported as degraded without
        inspecting its helper logs.
    """

    interval_seconds: float = 60.0
    redetect_when_empty: bool = True
    analyze_stopped_clients: bool = False

    def validate(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be > 0, got {self.interval_seconds}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitorConfig:
        cfg = cls(**_filtered(cls, data))
        cfg.validate()
        return cfg


# ===================================================================== #
#  Backup Configuration                                                  #
# ===================================================================== #


@dataclass(frozen=True)
class BackupConfig:
    """Backup-store policy.

    Attributes
    ----------
    directory:
        Where snapshots and ``index.json`` live.  Empty string means
        ``<data_dir>/backups``.
    max_per_client:
        Rotation limit per ``(client kind, config path)`` group.
    staleness_hours:
        ``ensure_fresh_backup`` creates a new snapshot only when the newest
        one is older than this window.
    """

    directory: str = ""
    max_per_client: int = 10
    staleness_hours: float = 24.0

    def validate(self) -> None:
        if self.max_per_client < 1:
            raise ValueError(f"max_per_client must be >= 1, got {self.max_per_client}")
        if self.staleness_hours < 0:
            raise ValueError(
                f"staleness_hours must be >= 0, got {self.staleness_hours}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupConfig:
        cfg = cls(**_filtered(cls, data))
        cfg.validate()
        return cfg


# ===================================================================== #
#  Isolation Configuration                                               #
# ===================================================================== #


@dataclass(frozen=True)
class IsolationConfig:
    """Root-cause isolator limits.

    Attributes
    ----------
    probe_timeout_seconds:
        Upper bound for any single probe.  A probe that times out counts
        as ``False``.
    """

    probe_timeout_seconds: float = 5.0

    def validate(self) -> None:
        if self.probe_timeout_seconds <= 0:
            raise ValueError(
                f"probe_timeout_seconds must be > 0, got {self.probe_timeout_seconds}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IsolationConfig:
        cfg = cls(**_filtered(cls, data))
        cfg.validate()
        return cfg


# ===================================================================== #
#  Inventory Configuration                                               #
# ===================================================================== #


@dataclass(frozen=True)
class InventoryConfig:
    """Client-detection knobs.

    Attributes
    ----------
    custom_config_paths:
        Extra config files to treat as ``custom`` clients.
    home:
        Override for the user's home directory (tests, service accounts).
    """

    custom_config_paths: list[str] = field(default_factory=list)
    home: str = ""

    def __post_init__(self) -> None:
        if self.custom_config_paths is None:
            object.__setattr__(self, "custom_config_paths", [])

    def validate(self) -> None:
        for p in self.custom_config_paths:
            if not p:
                raise ValueError("custom_config_paths must not contain empty entries")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InventoryConfig:
        cfg = cls(**_filtered(cls, data))
        cfg.validate()
        return cfg


# ===================================================================== #
#  Advisor Configuration                                                 #
# ===================================================================== #


@dataclass(frozen=True)
class AdvisorConfig:
    """Optional AI advisor settings.

    Attributes
    ----------
    enabled:
        Whether ``repair`` consults the advisor at all.
    max_log_chars:
        Log text is truncated (keeping the tail) before being sent.
    min_confidence:
        Suggestions below this confidence are dropped.
    max_suggestions:
        Upper bound on advisor fixes merged into one plan.
    """

    enabled: bool = False
    max_log_chars: int = 20_000
    min_confidence: float = 0.0
    max_suggestions: int = 5

    def validate(self) -> None:
        if self.max_log_chars < 1:
            raise ValueError(f"max_log_chars must be >= 1, got {self.max_log_chars}")
        if not (0.0 <= self.min_confidence <= 1.0):
            raise ValueError(
                f"min_confidence must be in [0, 1], got {self.min_confidence}"
            )
        if self.max_suggestions < 0:
            raise ValueError(f"max_suggestions must be >= 0, got {self.max_suggestions}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdvisorConfig:
        cfg = cls(**_filtered(cls, data))
        cfg.validate()
        return cfg


# ===================================================================== #
#  Top-level Configuration                                               #
# ===================================================================== #


@dataclass(frozen=True)
class DoctorConfig:
    """All engine settings.

    ``data_dir`` holds the backup directory and the repair history; empty
    string means :meth:`default_data_dir`.
    """

    data_dir: str = ""
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    isolation: IsolationConfig = field(default_factory=IsolationConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    advisor: AdvisorConfig = field(default_factory=AdvisorConfig)

    @staticmethod
    def default_data_dir() -> Path:
        """``$MCP_DOCTOR_HOME`` if set, else ``~/.mcp-doctor``."""
        override = os.environ.get(_ENV_HOME)
        if override:
            return Path(override).expanduser()
        return Path.home() / ".mcp-doctor"

    @property
    def resolved_data_dir(self) -> Path:
        return Path(self.data_dir).expanduser() if self.data_dir else self.default_data_dir()

    @property
    def backup_dir(self) -> Path:
        if self.backup.directory:
            return Path(self.backup.directory).expanduser()
        return self.resolved_data_dir / "backups"

    @property
    def history_path(self) -> Path:
        return self.resolved_data_dir / "repair-history.jsonl"

    def validate(self) -> None:
        self.monitor.validate()
        self.backup.validate()
        self.isolation.validate()
        self.inventory.validate()
        self.advisor.validate()

    def with_data_dir(self, data_dir: str | Path) -> DoctorConfig:
        return replace(self, data_dir=str(data_dir))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DoctorConfig:
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            section_cls = _SECTION_MAP.get(key)
            if section_cls is not None:
                if not isinstance(value, dict):
                    raise ValueError(f"section '{key}' must be an object")
                kwargs[key] = section_cls.from_dict(value)
            elif key == "data_dir":
                kwargs[key] = str(value)
        cfg = cls(**kwargs)
        cfg.validate()
        return cfg


_SECTION_MAP: dict[str, type] = {
    "monitor": MonitorConfig,
    "backup": BackupConfig,
    "isolation": IsolationConfig,
    "inventory": InventoryConfig,
    "advisor": AdvisorConfig,
}


def load_config_from_json(json_str: str) -> DoctorConfig:
    """Parse a JSON string into a :class:`DoctorConfig`.

    The JSON is expected to be an object whose top-level keys are
    ``data_dir`` or section names (``monitor``, ``backup``, ``isolation``,
    ``inventory``, ``advisor``).  Unknown keys are ignored.
    """
    raw = json.loads(json_str)
    if not isinstance(raw, dict):
        raise ValueError("Top-level JSON must be an object")
    return DoctorConfig.from_dict(raw)


def load_config_file(path: str | Path | None) -> DoctorConfig:
    """Load settings from *path*; defaults when *path* is ``None`` or absent."""
    if path is None:
        return DoctorConfig()
    p = Path(path).expanduser()
    if not p.exists():
        return DoctorConfig()
    return load_config_from_json(p.read_text(encoding="utf-8"))
