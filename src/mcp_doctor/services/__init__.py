"""Service layer for MCP Doctor.

Re-exports public service types for convenient top-level access::

    from mcp_doctor.services import (
        ClientInventory, LogClassifier, HealthEvaluator, RootCauseIsolator,
        RepairPlanner, BackupStore, RepairExecutor, MonitorLoop, DoctorEngine,
    )
"""

from mcp_doctor.services.advisor import (
    BaseRepairAdvisor,
    LLMRepairAdvisor,
    StaticRepairAdvisor,
)
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.health import HealthEvaluator
from mcp_doctor.services.history import RepairHistory
from mcp_doctor.services.inventory import (
    DEFAULT_LOCATORS,
    ClientInventory,
    ClientLocator,
    detect_platform,
)
from mcp_doctor.services.isolation import (
    DEFAULT_TREE,
    IsolationLeaf,
    ProbeContext,
    ProbeNode,
    RootCauseIsolator,
)
from mcp_doctor.services.log_classifier import (
    DEFAULT_RULES,
    ClassificationRule,
    LogClassifier,
    suggest_fixes,
)
from mcp_doctor.services.planning import (
    CommandNotFoundTemplate,
    ConfigSyntaxTemplate,
    FixTemplate,
    MissingEnvVarTemplate,
    ModuleNotFoundTemplate,
    PermissionTemplate,
    RepairPlanner,
    default_templates,
)
from mcp_doctor.services.verification import (
    BaseVerifier,
    CallableVerifier,
    ClientVerifier,
    Verification,
)
from mcp_doctor.services.repair import RepairExecutor, exit_code
from mcp_doctor.services.monitor import MonitorLoop
from mcp_doctor.services.engine import (
    ClientDiagnosis,
    DiagnosisResult,
    DoctorEngine,
    RepairResult,
    StatusResult,
)

__all__ = [
    # Detection
    "ClientInventory",
    "ClientLocator",
    "DEFAULT_LOCATORS",
    "detect_platform",
    # Classification
    "ClassificationRule",
    "DEFAULT_RULES",
    "LogClassifier",
    "suggest_fixes",
    # Health
    "HealthEvaluator",
    # Isolation
    "DEFAULT_TREE",
    "IsolationLeaf",
    "ProbeContext",
    "ProbeNode",
    "RootCauseIsolator",
    # Planning
    "BaseRepairAdvisor",
    "LLMRepairAdvisor",
    "StaticRepairAdvisor",
    "FixTemplate",
    "CommandNotFoundTemplate",
    "ModuleNotFoundTemplate",
    "PermissionTemplate",
    "ConfigSyntaxTemplate",
    "MissingEnvVarTemplate",
    "RepairPlanner",
    "default_templates",
    # Backup / repair
    "BackupStore",
    "BaseVerifier",
    "CallableVerifier",
    "ClientVerifier",
    "Verification",
    "RepairExecutor",
    "RepairHistory",
    "exit_code",
    # Monitoring
    "MonitorLoop",
    # Facade
    "DoctorEngine",
    "StatusResult",
    "ClientDiagnosis",
    "DiagnosisResult",
    "RepairResult",
]
