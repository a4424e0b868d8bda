"""Tests for RepairExecutor: backup, apply, verify, rollback."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import ChangeKind, ClientKind, ErrorKind, HealthLevel, RepairPhase
from mcp_doctor.domain.events import (
    ChangeApplied,
    RepairCompleted,
    RepairPhaseEntered,
    RepairStarted,
)
from mcp_doctor.domain.exceptions import RepairCancelledError, RepairInProgressError
from mcp_doctor.domain.values import (
    ClassifiedError,
    IsolationResult,
    RepairChange,
    RepairFix,
    RepairPlan,
)
from mcp_doctor.infrastructure.config_store import ConfigStore
from mcp_doctor.infrastructure.event_bus import EventBus
from mcp_doctor.infrastructure.locks import KeyLockRegistry
from mcp_doctor.services.backup import BackupStore
from mcp_doctor.services.history import RepairHistory
from mcp_doctor.services.isolation import IsolationLeaf, RootCauseIsolator
from mcp_doctor.services.planning import RepairPlanner, default_templates
from mcp_doctor.services.repair import RepairExecutor, exit_code
from mcp_doctor.services.verification import CallableVerifier, ClientVerifier, Verification


def npm_finder(command: str):
    return ("npm", ("exec", "--")) if command == "npx" else None


def passing(client, plan, health_before) -> Verification:
    return Verification(ok=True, health=HealthLevel.HEALTHY, log_offsets={"a.log": 5})


def failing(client, plan, health_before) -> Verification:
    return Verification(ok=False, health=HealthLevel.MINOR, reason="Targeted errors remain: path_error")


@pytest.fixture
def history() -> RepairHistory:
    return RepairHistory()


@pytest.fixture
def make_executor(backups: BackupStore, history: RepairHistory, event_bus: EventBus):
    def _make(verify=passing) -> RepairExecutor:
        return RepairExecutor(
            backups, ConfigStore(), CallableVerifier(verify), history=history, event_bus=event_bus
        )

    return _make


@pytest.fixture
def plan(client: TargetClient, npx_missing: ClassifiedError) -> RepairPlan:
    return RepairPlanner(templates=default_templates(npm_finder)).plan(client, [npx_missing])


def _server(config: Path) -> dict:
    return json.loads(config.read_text(encoding="utf-8"))["mcpServers"]["filesystem"]


# ===================================================================== #
#  Terminal outcomes                                                     #
# ===================================================================== #


class TestSuccess:
    def test_changes_written_and_recorded(
        self,
        make_executor,
        plan: RepairPlan,
        claude_config: Path,
        history: RepairHistory,
        client: TargetClient,
        backups: BackupStore,
    ) -> None:
        report = make_executor().execute(plan, health_before=HealthLevel.MINOR)

        assert report.phase is RepairPhase.SUCCEEDED
        assert report.phases == (
            RepairPhase.PLANNED, RepairPhase.BACKED_UP, RepairPhase.APPLYING,
            RepairPhase.VERIFYING, RepairPhase.SUCCEEDED,
        )
        assert exit_code(report) == 0
        assert _server(claude_config)["command"] == "npm"
        assert _server(claude_config)["args"][:2] == ["exec", "--"]
        assert json.loads(claude_config.read_text(encoding="utf-8"))["globalShortcut"] == "Ctrl+Space"
        assert [c.before for c in report.applied_changes][0] == "npx"
        assert report.health_after is HealthLevel.HEALTHY
        assert report.backup_id == backups.latest_for(client).backup_id

        entry = history.query()[0]
        assert entry.outcome is RepairPhase.SUCCEEDED
        assert history.log_watermark(client) == {"a.log": 5}

    def test_events(self, make_executor, plan: RepairPlan, event_bus: EventBus) -> None:
        seen: list = []
        event_bus.subscribe_all(seen.append)
        make_executor().execute(plan)
        repair_events = [
            e for e in seen
            if isinstance(e, (RepairStarted, RepairPhaseEntered, ChangeApplied, RepairCompleted))
        ]
        assert isinstance(repair_events[0], RepairStarted)
        assert [e.phase for e in repair_events if isinstance(e, RepairPhaseEntered)] == [
            RepairPhase.BACKED_UP, RepairPhase.APPLYING, RepairPhase.VERIFYING,
        ]
        assert sum(isinstance(e, ChangeApplied) for e in repair_events) == 2
        assert isinstance(repair_events[-1], RepairCompleted)


class TestRollback:
    def test_verification_failure_restores_bytes(
        self,
        make_executor,
        plan: RepairPlan,
        claude_config: Path,
        history: RepairHistory,
        client: TargetClient,
    ) -> None:
        original = claude_config.read_bytes()
        report = make_executor(failing).execute(plan)

        assert report.phase is RepairPhase.ROLLED_BACK
        assert report.reason == "Targeted errors remain: path_error"
        assert claude_config.read_bytes() == original
        assert exit_code(report) == 1
        assert history.query()[0].outcome is RepairPhase.ROLLED_BACK
        assert history.log_watermark(client) == {}

    def test_rollback_keeps_edits_made_after_earlier_backup(
        self,
        make_executor,
        plan: RepairPlan,
        claude_config: Path,
        client: TargetClient,
        backups: BackupStore,
    ) -> None:
        earlier = backups.create_backup(client)
        config = json.loads(claude_config.read_text(encoding="utf-8"))
        config["globalShortcut"] = "Alt+Space"
        claude_config.write_text(json.dumps(config, indent=2), encoding="utf-8")
        edited = claude_config.read_bytes()

        report = make_executor(failing).execute(plan)

        assert report.phase is RepairPhase.ROLLED_BACK
        assert report.backup_id != earlier.backup_id
        assert claude_config.read_bytes() == edited

    def test_apply_failure_restores_and_fails(
        self,
        make_executor,
        client: TargetClient,
        npx_missing: ClassifiedError,
        claude_config: Path,
    ) -> None:
        original = claude_config.read_bytes()
        fix = RepairFix(
            error=npx_missing,
            description="Broken fix",
            changes=(
                RepairChange(ChangeKind.COMMAND, "swap", "filesystem", after="npm"),
                RepairChange(ChangeKind.COMMAND, "blank", "filesystem", after=""),
            ),
            automatic=True,
        )
        report = make_executor().execute(RepairPlan(client=client, errors=(npx_missing,), fixes=(fix,)))

        assert report.phase is RepairPhase.FAILED
        assert "Applying 'blank' failed" in report.reason
        assert len(report.applied_changes) == 1
        assert not report.requires_manual_intervention
        assert claude_config.read_bytes() == original

    def test_restore_failure_needs_manual_intervention(
        self, make_executor, plan: RepairPlan, backups: BackupStore
    ) -> None:
        def lose_snapshot(client, plan, health_before) -> Verification:
            Path(backups.latest_for(client).snapshot_path).unlink(missing_ok=True)
            return failing(client, plan, health_before)

        report = make_executor(lose_snapshot).execute(plan)
        assert report.phase is RepairPhase.FAILED
        assert report.requires_manual_intervention
        assert "restore failed" in report.reason


class TestNothingToDo:
    def test_empty_plan(self, make_executor, client: TargetClient, history: RepairHistory) -> None:
        report = make_executor().execute(RepairPlan(client=client))
        assert report.phase is RepairPhase.SUCCEEDED
        assert report.reason == "No fixes planned"
        assert len(history) == 0

    def test_only_manual_fixes(
        self,
        make_executor,
        client: TargetClient,
        npx_missing: ClassifiedError,
        claude_config: Path,
    ) -> None:
        original = claude_config.read_bytes()
        plan = RepairPlanner(templates=default_templates(lambda c: None)).plan(client, [npx_missing])
        report = make_executor().execute(plan, auto_confirm=True)
        assert report.phase is RepairPhase.FAILED
        assert report.reason == "No automatic changes applied; 1 fix(es) need manual action"
        assert claude_config.read_bytes() == original

    def test_dry_run_touches_nothing(
        self,
        make_executor,
        plan: RepairPlan,
        claude_config: Path,
        backups: BackupStore,
        history: RepairHistory,
    ) -> None:
        original = claude_config.read_bytes()
        report = make_executor().execute(plan, dry_run=True)
        assert report.phase is RepairPhase.PLANNED
        assert report.dry_run
        assert len(report.applied_changes) == 2
        assert exit_code(report) == 0
        assert claude_config.read_bytes() == original
        assert backups.all() == []
        assert len(history) == 0


# ===================================================================== #
#  Concurrency and cancellation                                          #
# ===================================================================== #


class TestConcurrency:
    def test_busy_key_raises(
        self, make_executor, plan: RepairPlan, locks: KeyLockRegistry, client: TargetClient
    ) -> None:
        held = threading.Event()
        release = threading.Event()

        def hold() -> None:
            with locks.hold(client.key):
                held.set()
                release.wait(5)

        worker = threading.Thread(target=hold)
        worker.start()
        held.wait(5)
        try:
            with pytest.raises(RepairInProgressError):
                make_executor().execute(plan)
        finally:
            release.set()
            worker.join()

    def test_wait_blocks_until_free(
        self, make_executor, plan: RepairPlan, locks: KeyLockRegistry, client: TargetClient
    ) -> None:
        executor = make_executor()
        results: list = []
        locks.try_acquire(client.key)
        worker = threading.Thread(
            target=lambda: results.append(executor.execute(plan, wait=True)), daemon=True
        )
        worker.start()
        worker.join(0.2)
        assert worker.is_alive()
        locks.release(client.key)
        worker.join(5)
        assert results[0].phase is RepairPhase.SUCCEEDED


class TestCancellation:
    def test_cancel_before_start(
        self, make_executor, plan: RepairPlan, history: RepairHistory, claude_config: Path
    ) -> None:
        original = claude_config.read_bytes()
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(RepairCancelledError):
            make_executor().execute(plan, cancel=cancel)
        assert len(history) == 0
        assert claude_config.read_bytes() == original

    def test_cancel_mid_apply_rolls_back(
        self, make_executor, plan: RepairPlan, event_bus: EventBus, claude_config: Path
    ) -> None:
        original = claude_config.read_bytes()
        cancel = threading.Event()
        event_bus.subscribe(ChangeApplied, lambda event: cancel.set())

        report = make_executor().execute(plan, cancel=cancel)
        assert report.phase is RepairPhase.ROLLED_BACK
        assert len(report.applied_changes) == 1
        assert claude_config.read_bytes() == original


class TestMixedPlans:
    def test_skipped_manual_fix_does_not_undo_automatic_fix(
        self,
        backups: BackupStore,
        history: RepairHistory,
        inventory,
        classifier,
        claude_config: Path,
        config_writer,
    ) -> None:
        config_writer(
            claude_config,
            {
                "a": {"command": "npx", "args": ["server-a"]},
                "b": {"command": "node", "args": ["b.js"], "env": {"API_KEY": ""}},
            },
        )
        client = TargetClient(ClientKind.CLAUDE_DESKTOP, "Claude Desktop", str(claude_config))
        client.replace_helpers(ConfigStore().read_helpers(claude_config))
        path_error = ClassifiedError(
            ErrorKind.PATH, 'Command "npx" not found in PATH', helper=client.helper("a"), client=client
        )
        env_error = ClassifiedError(
            ErrorKind.ENVIRONMENT,
            'Environment variable "API_KEY" is not set',
            helper=client.helper("b"),
            client=client,
        )
        swap = RepairFix(
            error=path_error,
            description="Use npm",
            changes=(RepairChange(ChangeKind.COMMAND, "swap", "a", "npx", "npm"),),
            automatic=True,
        )
        set_key = RepairFix(
            error=env_error,
            description="Set API_KEY",
            changes=(RepairChange(ChangeKind.ENVIRONMENT, "set API_KEY", "b"),),
        )
        # Every probed helper still reports the missing variable.
        isolator = RootCauseIsolator(tree=IsolationLeaf(IsolationResult(
            ErrorKind.ENVIRONMENT, 'Environment variable "API_KEY" is not set'
        )))
        executor = RepairExecutor(
            backups,
            ConfigStore(),
            ClientVerifier(inventory, classifier, isolator=isolator),
            history=history,
        )

        report = executor.execute(
            RepairPlan(client=client, errors=(path_error, env_error), fixes=(swap, set_key))
        )

        assert report.phase is RepairPhase.SUCCEEDED
        assert report.skipped_fixes == (set_key,)
        servers = json.loads(claude_config.read_text(encoding="utf-8"))["mcpServers"]
        assert servers["a"]["command"] == "npm"
