"""Infrastructure layer for MCP Doctor.

Re-exports the public API surface for convenience::

    from mcp_doctor.infrastructure import (
        EventBus, EventStore, ConfigStore, DoctorConfig, PsutilProcessTable,
    )
"""

from mcp_doctor.infrastructure.config import (
    AdvisorConfig,
    BackupConfig,
    DoctorConfig,
    InventoryConfig,
    IsolationConfig,
    MonitorConfig,
    load_config_file,
    load_config_from_json,
)
from mcp_doctor.infrastructure.config_store import (
    HELPER_MAP_KEY,
    ConfigStore,
    parse_helpers,
    validate_config,
)
from mcp_doctor.infrastructure.event_bus import EventBus, EventStore
from mcp_doctor.infrastructure.locks import KeyLockRegistry
from mcp_doctor.infrastructure.logging import configure_logging
from mcp_doctor.infrastructure.process_table import (
    ProcessInfo,
    ProcessTable,
    PsutilProcessTable,
    StaticProcessTable,
)
from mcp_doctor.infrastructure.serialization import (
    deserialize,
    from_json,
    serialize,
    to_json,
    to_yaml,
    yaml_available,
)

__all__ = [
    # Event bus
    "EventBus",
    "EventStore",
    # Per-target locks
    "KeyLockRegistry",
    # Configuration
    "AdvisorConfig",
    "BackupConfig",
    "DoctorConfig",
    "InventoryConfig",
    "IsolationConfig",
    "MonitorConfig",
    "load_config_file",
    "load_config_from_json",
    # Client config files
    "HELPER_MAP_KEY",
    "ConfigStore",
    "parse_helpers",
    "validate_config",
    # Process table
    "ProcessInfo",
    "ProcessTable",
    "PsutilProcessTable",
    "StaticProcessTable",
    # Logging
    "configure_logging",
    # Serialization
    "serialize",
    "deserialize",
    "to_json",
    "from_json",
    "to_yaml",
    "yaml_available",
]
