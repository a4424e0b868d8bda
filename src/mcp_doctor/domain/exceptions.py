"""Domain exceptions for MCP Doctor.

All domain-specific exceptions inherit from ``DoctorError`` so callers can
catch the full family with a single ``except`` clause when needed.

Detection and classification never let these escape their component
boundary; they are raised (and meant to be handled) in the backup store,
the config store and the repair executor.
"""

from __future__ import annotations

from typing import Any


class DoctorError(Exception):
    """Base exception for all MCP Doctor errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class ConfigFileNotFoundError(DoctorError):
    """A client's configuration file does not exist at call time."""

    def __init__(
        self,
        message: str = "Client configuration file not found",
        config_path: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_path = config_path


class ConfigFileError(DoctorError):
    """A configuration file could not be read, parsed, validated or written."""

    def __init__(
        self,
        message: str = "Invalid configuration file",
        config_path: str = "",
        problems: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_path = config_path
        self.problems: list[str] = problems or []


class BackupError(DoctorError):
    """Base class for backup-store failures."""

    def __init__(
        self,
        message: str = "Backup operation failed",
        backup_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.backup_id = backup_id


class BackupNotFoundError(BackupError):
    """No backup record exists with the requested id."""


class SnapshotMissingError(BackupError):
    """The record exists but its snapshot file is gone."""


class RepairError(DoctorError):
    """Raised when a repair step cannot be carried out.

    ``RepairExecutor.execute`` only raises the in-progress and cancelled
    subclasses; every other failure ends the run in the ``failed`` phase.
    """

    def __init__(
        self,
        message: str = "Repair failed",
        client_name: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.client_name = client_name


class RepairInProgressError(RepairError):
    """Another repair (or a rotation pass) holds the same client key."""


class RepairCancelledError(RepairError):
    """The repair was cancelled through its cancellation token."""


class AdvisorError(DoctorError):
    """The AI advisor is unavailable or returned malformed output."""
