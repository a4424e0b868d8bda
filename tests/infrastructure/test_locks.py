"""Tests for the per-key lock registry."""

from __future__ import annotations

import threading

from mcp_doctor.infrastructure.locks import KeyLockRegistry


class TestKeyLockRegistry:
    def test_same_key_same_lock(self) -> None:
        locks = KeyLockRegistry()
        assert locks.lock_for("a") is locks.lock_for("a")
        assert locks.lock_for("a") is not locks.lock_for("b")

    def test_reentrant_in_owner_thread(self) -> None:
        locks = KeyLockRegistry()
        assert locks.try_acquire("k") is True
        assert locks.try_acquire("k") is True
        locks.release("k")
        locks.release("k")

    def test_busy_key_fails_fast_in_other_thread(self) -> None:
        locks = KeyLockRegistry()
        locks.try_acquire("k")
        result: list[bool] = []

        worker = threading.Thread(target=lambda: result.append(locks.try_acquire("k")))
        worker.start()
        worker.join()
        locks.release("k")

        assert result == [False]

    def test_timeout(self) -> None:
        locks = KeyLockRegistry()
        locks.try_acquire("k")
        result: list[bool] = []
        worker = threading.Thread(
            target=lambda: result.append(locks.try_acquire("k", timeout=0.05))
        )
        worker.start()
        worker.join()
        locks.release("k")
        assert result == [False]

    def test_hold_context_manager(self) -> None:
        locks = KeyLockRegistry()
        with locks.hold(("cursor", "/c.json")):
            assert ("cursor", "/c.json") in locks.keys()
        assert locks.try_acquire(("cursor", "/c.json")) is True
        locks.release(("cursor", "/c.json"))
