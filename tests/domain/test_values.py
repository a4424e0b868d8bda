"""Tests for domain value objects."""

from __future__ import annotations

import pytest

from mcp_doctor.domain.entities import HelperProcess, TargetClient
from mcp_doctor.domain.enums import (
    ChangeKind,
    ClientKind,
    ErrorKind,
    HealthLevel,
    RepairPhase,
)
from mcp_doctor.domain.values import (
    AdvisorSuggestion,
    ClassifiedError,
    ClientHealth,
    HelperHealth,
    IsolationResult,
    RepairChange,
    RepairFix,
    RepairPlan,
    RepairReport,
    SystemStatus,
)

# ===================================================================== #
#  HealthLevel ordering                                                  #
# ===================================================================== #


class TestHealthLevel:
    def test_total_order(self) -> None:
        assert HealthLevel.HEALTHY < HealthLevel.MINOR < HealthLevel.MAJOR < HealthLevel.CRITICAL

    def test_worst(self) -> None:
        assert HealthLevel.worst(HealthLevel.MINOR, HealthLevel.MAJOR) is HealthLevel.MAJOR
        assert HealthLevel.worst() is HealthLevel.HEALTHY


# ===================================================================== #
#  Errors and isolation                                                  #
# ===================================================================== #


class TestClassifiedError:
    def test_helper_name_and_shape(self, helper: HelperProcess) -> None:
        error = ClassifiedError(ErrorKind.PATH, "Module not found", helper=helper)
        assert error.helper_name == "github"
        assert error.shape == (ErrorKind.PATH, "Module not found")

    def test_helper_name_none_without_helper(self) -> None:
        assert ClassifiedError(ErrorKind.NETWORK, "Connection refused").helper_name is None


class TestIsolationResult:
    def test_to_error_carries_verdict(self, helper: HelperProcess) -> None:
        result = IsolationResult(ErrorKind.PERMISSION, "Permission denied", "/bin/x", fixable=True)
        error = result.to_error(helper=helper)
        assert error.kind is ErrorKind.PERMISSION
        assert error.message == "Permission denied"
        assert error.evidence == "/bin/x"
        assert error.fixable is True
        assert error.helper is helper


# ===================================================================== #
#  Health snapshots                                                      #
# ===================================================================== #


class TestSystemStatus:
    def test_errors_and_kind_filter(self) -> None:
        client = TargetClient(ClientKind.CURSOR, "Cursor", "/c.json")
        error = ClassifiedError(ErrorKind.NETWORK, "Connection refused")
        health = ClientHealth(
            client=client,
            health=HealthLevel.MINOR,
            running=True,
            helpers={"a": HelperHealth(HealthLevel.MINOR, (error,))},
        )
        status = SystemStatus(overall=HealthLevel.MINOR, clients={client: health})
        assert status.errors == [error]
        assert status.for_kind(ClientKind.CURSOR) == [health]
        assert status.for_kind(ClientKind.WINDSURF) == []
        assert status.is_healthy is False

    def test_empty_status_is_healthy(self) -> None:
        assert SystemStatus().is_healthy is True


# ===================================================================== #
#  Repair plan values                                                    #
# ===================================================================== #


class TestRepairChange:
    @pytest.mark.parametrize(
        "kind,after,manual",
        [
            (ChangeKind.COMMAND, "npm", False),
            (ChangeKind.ARGUMENT, ["exec"], False),
            (ChangeKind.ENVIRONMENT, None, True),
            (ChangeKind.PACKAGE, "installed", True),
            (ChangeKind.PERMISSION, "fixed", True),
            (ChangeKind.CONFIG, None, False),
        ],
    )
    def test_is_manual(self, kind: ChangeKind, after: object, manual: bool) -> None:
        assert RepairChange(kind=kind, description="d", after=after).is_manual is manual


class TestRepairFix:
    def test_confidence_bounds(self) -> None:
        error = ClassifiedError(ErrorKind.PATH, "x")
        with pytest.raises(ValueError, match="confidence"):
            RepairFix(error=error, description="d", confidence=1.5)

    def test_advisor_suggestion_bounds(self) -> None:
        with pytest.raises(ValueError, match="confidence"):
            AdvisorSuggestion(ErrorKind.PATH, "d", confidence=-0.1)


class TestRepairPlan:
    def test_requires_confirmation_when_any_fix_is_manual(self) -> None:
        client = TargetClient(ClientKind.CURSOR, "Cursor", "/c.json")
        error = ClassifiedError(ErrorKind.PATH, "x")
        plan = RepairPlan(
            client=client,
            errors=(error,),
            fixes=(
                RepairFix(error=error, description="a", automatic=True),
                RepairFix(error=error, description="b", automatic=False),
            ),
        )
        assert plan.requires_confirmation is True
        assert plan.is_empty is False
        assert plan.target_kinds == frozenset({ErrorKind.PATH})

    def test_empty_plan(self) -> None:
        plan = RepairPlan(client=TargetClient(ClientKind.CURSOR, "Cursor", "/c.json"))
        assert plan.is_empty is True
        assert plan.requires_confirmation is False


class TestRepairReport:
    def test_explain_mentions_targets_changes_and_reason(self) -> None:
        client = TargetClient(ClientKind.CURSOR, "Cursor", "/c.json")
        error = ClassifiedError(ErrorKind.PATH, 'Command "npx" not found in PATH')
        change = RepairChange(ChangeKind.COMMAND, "Replace npx with npm", "fs", "npx", "npm")
        report = RepairReport(
            client=client,
            plan=RepairPlan(client=client, errors=(error,)),
            phase=RepairPhase.ROLLED_BACK,
            applied_changes=(change,),
            reason="Targeted errors remain",
        )
        text = report.explain()
        assert "Cursor: rolled_back" in text
        assert 'Command "npx" not found in PATH' in text
        assert "Replace npx with npm ('npx' -> 'npm')" in text
        assert "reason: Targeted errors remain" in text
        assert report.succeeded is False
