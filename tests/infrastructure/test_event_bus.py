"""Tests for EventBus and EventStore."""

from __future__ import annotations

import time

from mcp_doctor.domain.enums import HealthLevel
from mcp_doctor.domain.events import (
    BackupCreated,
    DomainEvent,
    StatusChanged,
    StatusPublished,
)
from mcp_doctor.infrastructure.event_bus import EventBus, EventStore


class TestEventBus:
    def test_typed_subscription(self) -> None:
        bus = EventBus()
        received: list[DomainEvent] = []
        bus.subscribe(StatusPublished, received.append)

        bus.publish(StatusPublished(source_id="monitor"))
        bus.publish(BackupCreated(source_id="backup-store"))

        assert len(received) == 1
        assert isinstance(received[0], StatusPublished)

    def test_delivery_follows_registration_order(self) -> None:
        bus = EventBus()
        order: list[str] = []
        bus.subscribe(StatusPublished, lambda e: order.append("typed"))
        bus.subscribe_all(lambda e: order.append("all"))
        bus.subscribe(StatusPublished, lambda e: order.append("typed-late"))

        bus.publish(StatusPublished())
        assert order == ["typed", "all", "typed-late"]

    def test_base_type_subscription_sees_every_event(self) -> None:
        bus = EventBus()
        received: list[DomainEvent] = []
        bus.subscribe(DomainEvent, received.append)

        bus.publish_many([StatusPublished(), BackupCreated()])
        assert [type(e) for e in received] == [StatusPublished, BackupCreated]
        assert bus.handler_count(StatusPublished) == 0

    def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        received: list[DomainEvent] = []

        def broken(event: DomainEvent) -> None:
            raise RuntimeError("boom")

        bus.subscribe(StatusPublished, broken)
        bus.subscribe(StatusPublished, received.append)
        bus.publish(StatusPublished())
        assert len(received) == 1
        assert bus.handler_failures == 1

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        received: list[DomainEvent] = []
        bus.subscribe(StatusPublished, received.append)
        assert bus.unsubscribe(StatusPublished, received.append) is True
        assert bus.unsubscribe(StatusPublished, received.append) is False
        assert bus.unsubscribe_all(received.append) is False
        bus.publish(StatusPublished())
        assert received == []

    def test_handler_count_and_clear(self) -> None:
        bus = EventBus()
        bus.subscribe(StatusPublished, lambda e: None)
        bus.subscribe_all(lambda e: None)
        assert bus.handler_count(StatusPublished) == 1
        assert bus.handler_count() == 2
        bus.clear()
        assert bus.handler_count() == 0


class TestEventStore:
    def test_audit_tap(self) -> None:
        bus = EventBus()
        store = EventStore()
        bus.subscribe_all(store.append)

        bus.publish(StatusPublished())
        bus.publish(StatusChanged(previous=HealthLevel.HEALTHY, current=HealthLevel.MINOR))

        assert len(store) == 2
        assert isinstance(store.latest, StatusChanged)
        assert len(store.query(event_type=StatusPublished)) == 1

    def test_max_size_evicts_oldest(self) -> None:
        store = EventStore(max_size=2)
        for i in range(3):
            store.append(StatusPublished(source_id=str(i)))
        assert [e.source_id for e in store.query()] == ["1", "2"]

    def test_since_filter(self) -> None:
        store = EventStore()
        store.append(StatusPublished(timestamp=time.time() - 100))
        cutoff = time.time() - 10
        store.append(StatusPublished())
        assert len(store.query(since=cutoff)) == 1
