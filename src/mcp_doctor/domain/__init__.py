"""Domain layer for MCP Doctor.

Re-exports all public domain types so that consumers can write::

    from mcp_doctor.domain import ClassifiedError, ErrorKind, HealthLevel
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    ChangeKind,
    ClientKind,
    ErrorKind,
    FixSource,
    HealthLevel,
    Platform,
    ProcessStatus,
    RepairPhase,
)

# -- Entities -----------------------------------------------------------------
from .entities import HelperProcess, TargetClient

# -- Value Objects ------------------------------------------------------------
from .values import (
    AdvisorSuggestion,
    BackupRecord,
    CheckResult,
    ClassifiedError,
    ClientHealth,
    DetectionResult,
    HelperHealth,
    HistoryEntry,
    IsolationReport,
    IsolationResult,
    LogAnalysisResult,
    RepairChange,
    RepairFix,
    RepairPlan,
    RepairReport,
    SelfTestResult,
    SystemStatus,
)

# -- Domain Events ------------------------------------------------------------
from .events import (
    BackupCreated,
    BackupDeleted,
    BackupRestored,
    ChangeApplied,
    DomainEvent,
    RepairCompleted,
    RepairPhaseEntered,
    RepairStarted,
    StatusChanged,
    StatusPublished,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    AdvisorError,
    BackupError,
    BackupNotFoundError,
    ConfigFileError,
    ConfigFileNotFoundError,
    DoctorError,
    RepairCancelledError,
    RepairError,
    RepairInProgressError,
    SnapshotMissingError,
)

__all__ = [
    # enums
    "ChangeKind",
    "ClientKind",
    "ErrorKind",
    "FixSource",
    "HealthLevel",
    "Platform",
    "ProcessStatus",
    "RepairPhase",
    # entities
    "HelperProcess",
    "TargetClient",
    # values
    "AdvisorSuggestion",
    "BackupRecord",
    "CheckResult",
    "ClassifiedError",
    "ClientHealth",
    "DetectionResult",
    "HelperHealth",
    "HistoryEntry",
    "IsolationReport",
    "IsolationResult",
    "LogAnalysisResult",
    "RepairChange",
    "RepairFix",
    "RepairPlan",
    "RepairReport",
    "SelfTestResult",
    "SystemStatus",
    # events
    "BackupCreated",
    "BackupDeleted",
    "BackupRestored",
    "ChangeApplied",
    "DomainEvent",
    "RepairCompleted",
    "RepairPhaseEntered",
    "RepairStarted",
    "StatusChanged",
    "StatusPublished",
    # exceptions
    "AdvisorError",
    "BackupError",
    "BackupNotFoundError",
    "ConfigFileError",
    "ConfigFileNotFoundError",
    "DoctorError",
    "RepairCancelledError",
    "RepairError",
    "RepairInProgressError",
    "SnapshotMissingError",
]
