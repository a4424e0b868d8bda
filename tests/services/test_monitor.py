"""Tests for the periodic health monitor."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import HealthLevel, Platform
from mcp_doctor.domain.events import StatusChanged, StatusPublished
from mcp_doctor.domain.values import SystemStatus
from mcp_doctor.infrastructure.config import InventoryConfig, MonitorConfig
from mcp_doctor.infrastructure.event_bus import EventBus
from mcp_doctor.infrastructure.process_table import StaticProcessTable
from mcp_doctor.services.inventory import ClientInventory
from mcp_doctor.services.log_classifier import LogClassifier
from mcp_doctor.services.monitor import MonitorLoop


class ExplodingClassifier(LogClassifier):
    def analyze_client(self, client, offsets=None):
        raise RuntimeError("disk on fire")


@pytest.fixture
def monitor(
    inventory: ClientInventory, classifier: LogClassifier, event_bus: EventBus, claude_config: Path
) -> MonitorLoop:
    return MonitorLoop(inventory, classifier, event_bus=event_bus)


# ===================================================================== #
#  Single cycles                                                         #
# ===================================================================== #


class TestCheckNow:
    def test_detects_and_evaluates(self, monitor: MonitorLoop, event_bus: EventBus) -> None:
        published: list = []
        event_bus.subscribe(StatusPublished, published.append)

        status = monitor.check_now()
        assert status.overall is HealthLevel.HEALTHY
        assert len(status.clients) == 1
        assert monitor.last_status is status
        assert [c.helper_names for c in monitor.clients] == [["filesystem"]]
        assert published[0].manual is True

    def test_status_changed_only_on_transition(
        self, monitor: MonitorLoop, event_bus: EventBus, log_writer
    ) -> None:
        changes: list = []
        event_bus.subscribe(StatusChanged, changes.append)

        monitor.check_now()
        monitor.check_now()
        assert changes == []

        log_writer("filesystem", "Failed to start server")
        assert monitor.check_now().overall is HealthLevel.MAJOR
        assert len(changes) == 1
        assert changes[0].previous is HealthLevel.HEALTHY
        assert changes[0].current is HealthLevel.MAJOR

    def test_watermark_hides_old_lines(
        self,
        inventory: ClientInventory,
        classifier: LogClassifier,
        claude_config: Path,
        log_writer,
    ) -> None:
        log_writer("filesystem", "Error: spawn npx ENOENT")
        monitor = MonitorLoop(inventory, classifier, watermark=classifier.log_sizes)
        assert monitor.check_now().overall is HealthLevel.HEALTHY

    def test_stopped_clients_not_analyzed(
        self, home: Path, classifier: LogClassifier, claude_config: Path, log_writer
    ) -> None:
        log_writer("filesystem", "Failed to start server")
        inventory = ClientInventory(
            config=InventoryConfig(home=str(home)),
            process_table=StaticProcessTable(),
            is_wsl=False,
            runtime_probe=None,
            platform=Platform.MACOS,
        )
        status = MonitorLoop(inventory, classifier).check_now()
        health = next(iter(status.clients.values()))
        assert health.health is HealthLevel.MINOR
        assert health.errors == []

    def test_failing_client_is_minor(
        self, inventory: ClientInventory, home: Path, claude_config: Path
    ) -> None:
        monitor = MonitorLoop(inventory, ExplodingClassifier(home=home))
        status = monitor.check_now()
        assert status.overall is HealthLevel.MINOR

    def test_no_clients(self, inventory: ClientInventory, classifier: LogClassifier) -> None:
        status = MonitorLoop(inventory, classifier).check_now()
        assert status.overall is HealthLevel.HEALTHY
        assert status.clients == {}

    @pytest.mark.asyncio
    async def test_acheck_now(self, monitor: MonitorLoop) -> None:
        status = await monitor.acheck_now()
        assert isinstance(status, SystemStatus)


# ===================================================================== #
#  Subscriptions and background thread                                   #
# ===================================================================== #


class TestSubscriptions:
    def test_subscribe_and_unsubscribe(self, monitor: MonitorLoop) -> None:
        seen: list[SystemStatus] = []
        monitor.subscribe(seen.append)
        monitor.check_now()
        assert monitor.unsubscribe(seen.append)
        monitor.check_now()
        assert len(seen) == 1
        assert not monitor.unsubscribe(seen.append)


class TestBackgroundLoop:
    def test_start_and_stop(
        self, inventory: ClientInventory, classifier: LogClassifier, claude_config: Path
    ) -> None:
        monitor = MonitorLoop(inventory, classifier, config=MonitorConfig(interval_seconds=0.05))
        cycles = threading.Semaphore(0)
        monitor.subscribe(lambda status: cycles.release())

        monitor.start()
        try:
            assert monitor.is_running
            assert cycles.acquire(timeout=5)
            assert cycles.acquire(timeout=5)
        finally:
            monitor.stop(timeout=5)
        assert not monitor.is_running
        assert monitor.last_status is not None

    def test_start_is_idempotent(self, monitor: MonitorLoop) -> None:
        monitor.start()
        first = monitor._thread
        monitor.start()
        assert monitor._thread is first
        monitor.stop(timeout=5)
