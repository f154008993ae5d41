"""Unit tests for the per-digest keyed lock."""

from __future__ import annotations

import threading
import time

from context_indexing.indexing.locks import KeyedLock


def test_same_key_is_serialised() -> None:
    locks = KeyedLock()
    active = 0
    peak = 0
    guard = threading.Lock()

    def worker() -> None:
        nonlocal active, peak
        with locks.hold("dg-1"):
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with guard:
                active -= 1

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert peak == 1


def test_different_keys_do_not_block() -> None:
    locks = KeyedLock()
    entered = threading.Event()

    def other() -> None:
        with locks.hold("dg-2"):
            entered.set()

    with locks.hold("dg-1"):
        thread = threading.Thread(target=other)
        thread.start()
        assert entered.wait(timeout=2)
        thread.join()


def test_locks_are_released_after_use() -> None:
    locks = KeyedLock()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0


def test_lock_released_on_error() -> None:
    locks = KeyedLock()
    try:
        with locks.hold("a"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert len(locks) == 0
    with locks.hold("a"):
        pass
