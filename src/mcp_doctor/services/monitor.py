"""Periodic health monitoring.

:class:`MonitorLoop` owns one background thread that, every
``interval_seconds``, re-detects clients when the cached inventory is empty
and then evaluates each client in turn: liveness, log classification,
health.  The per-client results are merged into a fresh
:class:`SystemStatus`, published on the event bus and kept as the last
known status.

``check_now()`` runs the same cycle in the caller's thread;
``acheck_now()`` wraps it with ``asyncio.to_thread``.  One client failing
to evaluate never affects the others or stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping

from mcp_doctor.domain.entities import TargetClient
from mcp_doctor.domain.enums import HealthLevel
from mcp_doctor.domain.events import DomainEvent, StatusChanged, StatusPublished
from mcp_doctor.domain.values import ClientHealth, SystemStatus
from mcp_doctor.infrastructure.config import MonitorConfig
from mcp_doctor.infrastructure.event_bus import EventBus
from mcp_doctor.services.health import HealthEvaluator
from mcp_doctor.services.inventory import ClientInventory
from mcp_doctor.services.log_classifier import LogClassifier

logger = logging.getLogger(__name__)

StatusHandler = Callable[[SystemStatus], None]

_SOURCE = "monitor"


class MonitorLoop:
    """Scheduled detection + classification + evaluation.

    Parameters
    ----------
    inventory:
        Client detection and liveness.
    classifier:
        Helper log classification.
    evaluator:
        Severity reducer.
    config:
        Interval and re-detection policy.
    event_bus:
        Bus receiving ``StatusPublished`` and ``StatusChanged``; a private
        bus is created when omitted.
    watermark:
        Returns per-log byte offsets below which lines are ignored (the
        log position at the last successful repair).
    """

    def __init__(
        self,
        inventory: ClientInventory,
        classifier: LogClassifier,
        evaluator: HealthEvaluator | None = None,
        config: MonitorConfig | None = None,
        event_bus: EventBus | None = None,
        watermark: Callable[[TargetClient], Mapping[str, int]] | None = None,
    ) -> None:
        self._inventory = inventory
        self._classifier = classifier
        self._evaluator = evaluator or HealthEvaluator()
        self._config = config or MonitorConfig()
        self._bus = event_bus if event_bus is not None else EventBus()
        self._watermark = watermark

        self._clients: list[TargetClient] = []
        self._last_status: SystemStatus | None = None
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._adapters: dict[StatusHandler, Callable[[DomainEvent], None]] = {}

    # -- lifecycle ----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread; the first cycle runs immediately."""
        if self.is_running:
            logger.debug("Monitor already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="mcp-doctor-monitor", daemon=True)
        self._thread.start()
        logger.info("Monitor started (interval %.1fs)", self._config.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Monitor stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._cycle(manual=False)
            except Exception:
                logger.exception("Monitor cycle failed")
            if self._stop.wait(self._config.interval_seconds):
                break

    # -- status -------------------------------------------------------------

    @property
    def last_status(self) -> SystemStatus | None:
        with self._state_lock:
            return self._last_status

    @property
    def clients(self) -> list[TargetClient]:
        with self._state_lock:
            return list(self._clients)

    def set_clients(self, clients: list[TargetClient]) -> None:
        with self._state_lock:
            self._clients = list(clients)

    def redetect(self) -> list[TargetClient]:
        """Replace the cached inventory with a fresh detection pass."""
        try:
            clients = list(self._inventory.detect().clients)
        except Exception:
            logger.exception("Client detection failed")
            clients = []
        self.set_clients(clients)
        return clients

    def check_now(self) -> SystemStatus:
        """Run one cycle in the caller's thread and return the fresh status."""
        return self._cycle(manual=True)

    async def acheck_now(self) -> SystemStatus:
        return await asyncio.to_thread(self.check_now)

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, handler: StatusHandler) -> None:
        """Call *handler* with every published :class:`SystemStatus`."""

        def adapter(event: DomainEvent) -> None:
            if isinstance(event, StatusPublished) and event.status is not None:
                handler(event.status)

        with self._state_lock:
            self._adapters[handler] = adapter
        self._bus.subscribe(StatusPublished, adapter)

    def unsubscribe(self, handler: StatusHandler) -> bool:
        with self._state_lock:
            adapter = self._adapters.pop(handler, None)
        if adapter is None:
            return False
        return self._bus.unsubscribe(StatusPublished, adapter)

    # -- cycle --------------------------------------------------------------

    def _cycle(self, manual: bool) -> SystemStatus:
        with self._cycle_lock:
            clients = self.clients
            if not clients and self._config.redetect_when_empty:
                clients = self.redetect()

            healths = [self.evaluate_client(client) for client in clients]
            status = self._evaluator.build_status(healths)

            with self._state_lock:
                previous = self._last_status
                self._last_status = status

        logger.info(
            "Health check complete: %s (%d clients)", status.overall.value, len(status.clients)
        )
        self._bus.publish(StatusPublished(source_id=_SOURCE, status=status, manual=manual))
        if previous is not None and previous.overall != status.overall:
            self._bus.publish(
                StatusChanged(
                    source_id=_SOURCE,
                    previous=previous.overall,
                    current=status.overall,
                    status=status,
                )
            )
        return status

    def evaluate_client(self, client: TargetClient) -> ClientHealth:
        """Liveness, classification and evaluation of one client, contained."""
        try:
            self._inventory.refresh(client)
            running = self._inventory.is_client_running(client)
            errors = []
            if running or self._config.analyze_stopped_clients:
                offsets = self._watermark(client) if self._watermark is not None else None
                errors = list(self._classifier.analyze_client(client, offsets).errors)
            return self._evaluator.evaluate(client, running, errors)
        except Exception:
            logger.exception("Failed to evaluate %s", client.display_name)
            return ClientHealth(client=client, health=HealthLevel.MINOR, running=False)
