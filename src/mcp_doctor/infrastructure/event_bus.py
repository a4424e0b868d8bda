"""Event bus infrastructure for MCP Doctor.

The monitor thread and repair callers publish on one shared bus.  Every
subscription lives in a single ordered list, so delivery follows
registration order whether a handler is typed or catch-all.  Handlers are
invoked on a snapshot taken outside the lock; a handler that raises is
logged, counted and skipped, and never reaches the monitor cycle or repair
that published the event.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from mcp_doctor.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


@dataclass(frozen=True)
class _Subscription:
    handler: Handler
    event_type: type[DomainEvent] | None = None

    def matches(self, event: DomainEvent) -> bool:
        return self.event_type is None or isinstance(event, self.event_type)


class EventBus:
    """Thread-safe synchronous pub-sub for domain events.

    ``subscribe(StatusPublished, h)`` receives status events only;
    ``subscribe_all(h)`` receives everything.  Both kinds share one
    registration order.

    Usage::

        bus = EventBus()
        bus.subscribe(StatusPublished, on_status)
        bus.publish(StatusPublished(status=status))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[_Subscription] = []
        self._handler_failures = 0

    @property
    def handler_failures(self) -> int:
        """Handler exceptions swallowed since construction."""
        with self._lock:
            return self._handler_failures

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        with self._lock:
            self._subscriptions.append(_Subscription(handler, event_type))

    def subscribe_all(self, handler: Handler) -> None:
        with self._lock:
            self._subscriptions.append(_Subscription(handler))

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> bool:
        """Drop the oldest *handler* registration for *event_type*."""
        return self._remove(_Subscription(handler, event_type))

    def unsubscribe_all(self, handler: Handler) -> bool:
        return self._remove(_Subscription(handler))

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            targets = [s.handler for s in self._subscriptions if s.matches(event)]

        for handler in targets:
            try:
                handler(event)
            except Exception:
                with self._lock:
                    self._handler_failures += 1
                logger.exception(
                    "Subscriber %r failed on %s from %s",
                    handler,
                    type(event).__name__,
                    event.source_id or "<unknown>",
                )

    def publish_many(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def handler_count(self, event_type: type[DomainEvent] | None = None) -> int:
        """Registrations for exactly *event_type* (catch-alls excluded), or all."""
        with self._lock:
            if event_type is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.event_type is event_type)

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def _remove(self, subscription: _Subscription) -> bool:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return False
            return True


class EventStore:
    """In-memory append-only event store, useful as an audit tap::

        store = EventStore(max_size=1000)
        bus.subscribe_all(store.append)
    """

    def __init__(self, max_size: int = 0) -> None:
        self._events: list[DomainEvent] = []
        self._max_size = max_size
        self._lock = threading.Lock()

    def append(self, event: DomainEvent) -> None:
        """Append *event*, evicting the oldest once *max_size* is exceeded."""
        with self._lock:
            self._events.append(event)
            if self._max_size > 0 and len(self._events) > self._max_size:
                self._events = self._events[-self._max_size:]

    def query(
        self,
        event_type: type[DomainEvent] | None = None,
        since: float | None = None,
        limit: int = 0,
    ) -> list[DomainEvent]:
        """Return stored events, optionally filtered by type and timestamp."""
        with self._lock:
            result = list(self._events)
        if event_type is not None:
            result = [e for e in result if isinstance(e, event_type)]
        if since is not None:
            result = [e for e in result if e.timestamp >= since]
        if limit > 0:
            result = result[-limit:]
        return result

    @property
    def latest(self) -> DomainEvent | None:
        with self._lock:
            return self._events[-1] if self._events else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
