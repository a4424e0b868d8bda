"""Per-target serialization keys.

Repairs and backup rotation on the same ``(client kind, config path)`` pair
must not overlap.  The registry hands out one re-entrant lock per key so a
repair that triggers a backup (and therefore a rotation pass) on its own key
does not deadlock itself.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyLockRegistry:
    """Lazily created re-entrant locks keyed by any hashable value."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def try_acquire(self, key: Hashable, timeout: float | None = None) -> bool:
        """Acquire the lock for *key*.

        ``timeout=None`` fails immediately when busy; a negative timeout
        blocks until the lock is free.
        """
        lock = self.lock_for(key)
        if timeout is None:
            return lock.acquire(blocking=False)
        if timeout < 0:
            return lock.acquire()
        return lock.acquire(timeout=timeout)

    def release(self, key: Hashable) -> None:
        self.lock_for(key).release()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Block until *key* is free and hold it for the ``with`` body."""
        lock = self.lock_for(key)
        with lock:
            yield

    def keys(self) -> list[Hashable]:
        with self._guard:
            return list(self._locks)
