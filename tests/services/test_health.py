"""Tests for HealthEvaluator severity rules."""

from __future__ import annotations

import pytest

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ClientKind, ErrorKind, HealthLevel
from mcp_doctor.domain.values import ClassifiedError
from mcp_doctor.services.health import HealthEvaluator


@pytest.fixture
def evaluator() -> HealthEvaluator:
    return HealthEvaluator()


def _error(kind: ErrorKind, client: TargetClient | None = None, helper: str = "filesystem") -> ClassifiedError:
    owner = client.helper(helper) if client is not None else None
    return ClassifiedError(kind=kind, message=kind.value, helper=owner, client=client)


class TestHelperHealth:
    @pytest.mark.parametrize(
        "kinds, expected",
        [
            ([], HealthLevel.HEALTHY),
            ([ErrorKind.NETWORK], HealthLevel.MINOR),
            ([ErrorKind.ENVIRONMENT], HealthLevel.HEALTHY),
            ([ErrorKind.UNKNOWN], HealthLevel.HEALTHY),
            ([ErrorKind.ENVIRONMENT, ErrorKind.NETWORK], HealthLevel.MINOR),
            ([ErrorKind.PATH], HealthLevel.MAJOR),
            ([ErrorKind.CONFIG, ErrorKind.NETWORK], HealthLevel.MAJOR),
            ([ErrorKind.PERMISSION], HealthLevel.CRITICAL),
            ([ErrorKind.PATH, ErrorKind.PROCESS], HealthLevel.CRITICAL),
        ],
    )
    def test_levels(
        self, evaluator: HealthEvaluator, kinds: list[ErrorKind], expected: HealthLevel
    ) -> None:
        assert evaluator.helper_health([_error(k) for k in kinds]) is expected


class TestClientHealth:
    def test_running_and_clean(self, evaluator: HealthEvaluator) -> None:
        assert evaluator.client_health(True, [HealthLevel.HEALTHY]) is HealthLevel.HEALTHY

    def test_not_running_is_minor(self, evaluator: HealthEvaluator) -> None:
        assert evaluator.client_health(False, []) is HealthLevel.MINOR

    def test_critical_helper_makes_major(self, evaluator: HealthEvaluator) -> None:
        assert evaluator.client_health(True, [HealthLevel.CRITICAL]) is HealthLevel.MAJOR
        assert evaluator.client_health(False, [HealthLevel.CRITICAL]) is HealthLevel.MAJOR

    def test_major_helper_makes_minor(self, evaluator: HealthEvaluator) -> None:
        assert evaluator.client_health(True, [HealthLevel.MAJOR]) is HealthLevel.MINOR

    def test_minor_helpers_do_not_count(self, evaluator: HealthEvaluator) -> None:
        assert evaluator.client_health(True, [HealthLevel.MINOR] * 3) is HealthLevel.HEALTHY


class TestEvaluate:
    def test_network_only_error_is_minor_for_helper_only(
        self, evaluator: HealthEvaluator, client: TargetClient
    ) -> None:
        # Minor helpers do not move a running client, so the overall level
        # stays healthy even with a network error on record.
        other = TargetClient(ClientKind.CURSOR, "Cursor", "/c/mcp.json")
        health = evaluator.evaluate(client, True, [_error(ErrorKind.NETWORK, client)])
        status = evaluator.build_status([health, evaluator.evaluate(other, True, [])])
        assert health.helpers["filesystem"].health is HealthLevel.MINOR
        assert health.health is HealthLevel.HEALTHY
        assert status.overall is HealthLevel.HEALTHY

    def test_groups_by_helper(self, evaluator: HealthEvaluator, client: TargetClient) -> None:
        orphan = ClassifiedError(ErrorKind.PROCESS, "Failed to start server", client=client)
        health = evaluator.evaluate(client, True, [_error(ErrorKind.PATH, client), orphan])
        assert set(health.helpers) == {"filesystem", ""}
        assert health.helpers[""].health is HealthLevel.CRITICAL
        assert health.health is HealthLevel.MAJOR
        assert len(health.errors) == 2

    def test_every_configured_helper_listed(
        self, evaluator: HealthEvaluator, client: TargetClient
    ) -> None:
        health = evaluator.evaluate(client, True, [])
        assert health.helpers["filesystem"].health is HealthLevel.HEALTHY


class TestBuildStatus:
    def test_overall_is_worst(self, evaluator: HealthEvaluator, client: TargetClient) -> None:
        other = TargetClient(ClientKind.CURSOR, "Cursor", "/c/mcp.json")
        status = evaluator.build_status([
            evaluator.evaluate(client, True, []),
            evaluator.evaluate(other, False, []),
        ])
        assert status.overall is HealthLevel.MINOR
        assert status.clients[other].running is False

    def test_no_clients_is_healthy(self, evaluator: HealthEvaluator) -> None:
        assert evaluator.build_status([]).overall is HealthLevel.HEALTHY


_BASE_SETS = [
    [],
    [ErrorKind.NETWORK],
    [ErrorKind.ENVIRONMENT, ErrorKind.UNKNOWN],
    [ErrorKind.PATH],
    [ErrorKind.CONFIG, ErrorKind.NETWORK],
    [ErrorKind.PERMISSION],
    [ErrorKind.PROCESS, ErrorKind.PATH],
]


class TestMonotonicity:
    @pytest.mark.parametrize("base", _BASE_SETS)
    @pytest.mark.parametrize("added", list(ErrorKind))
    def test_adding_an_error_never_lowers_health(
        self,
        evaluator: HealthEvaluator,
        client: TargetClient,
        base: list[ErrorKind],
        added: ErrorKind,
    ) -> None:
        other = TargetClient(ClientKind.CURSOR, "Cursor", "/c/mcp.json")
        before = [_error(k, client) for k in base]
        after = before + [_error(added, client)]

        assert evaluator.helper_health(after) >= evaluator.helper_health(before)
        for running in (True, False):
            old = evaluator.evaluate(client, running, before)
            new = evaluator.evaluate(client, running, after)
            assert new.health >= old.health
            old_overall = evaluator.build_status([old, evaluator.evaluate(other, True, [])]).overall
            new_overall = evaluator.build_status([new, evaluator.evaluate(other, True, [])]).overall
            assert new_overall >= old_overall
