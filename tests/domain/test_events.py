"""Tests for domain events and exceptions."""

from __future__ import annotations

import dataclasses

import pytest

from mcp_doctor.domain.enums import HealthLevel, RepairPhase
from mcp_doctor.domain.events import (
    DomainEvent,
    RepairPhaseEntered,
    StatusChanged,
    StatusPublished,
)
from mcp_doctor.domain.exceptions import (
    BackupError,
    BackupNotFoundError,
    DoctorError,
    RepairCancelledError,
    RepairError,
    RepairInProgressError,
)


class TestEvents:
    def test_events_are_frozen(self) -> None:
        event = StatusPublished(source_id="monitor")
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.source_id = "other"  # type: ignore[misc]

    def test_subclasses_share_base(self) -> None:
        for event in (
            StatusPublished(),
            StatusChanged(previous=HealthLevel.HEALTHY, current=HealthLevel.MAJOR),
            RepairPhaseEntered(phase=RepairPhase.APPLYING),
        ):
            assert isinstance(event, DomainEvent)
            assert event.timestamp > 0


class TestExceptions:
    def test_hierarchy(self) -> None:
        assert issubclass(BackupNotFoundError, BackupError)
        assert issubclass(BackupError, DoctorError)
        assert issubclass(RepairInProgressError, RepairError)
        assert issubclass(RepairCancelledError, RepairError)

    def test_details_kept(self) -> None:
        exc = BackupNotFoundError("Backup not found: abc", backup_id="abc")
        assert exc.backup_id == "abc"
        assert "abc" in str(exc)
