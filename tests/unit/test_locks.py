"""Unit tests for keyed locks."""

from __future__ import annotations

import threading
import time

from patternlife.infra.locks import KeyedLock


class TestKeyedLock:
    def test_same_key_is_reentrant(self):
        locks = KeyedLock()

        with locks.hold("p1"):
            with locks.hold("p1"):
                pass

        assert len(locks) == 1

    def test_distinct_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other():
            with locks.hold("p2"):
                entered.set()

        with locks.hold("p1"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=2)
            thread.join()

        assert len(locks) == 2

    def test_same_key_serializes(self):
        locks = KeyedLock()
        active = []
        overlaps = []

        def worker():
            with locks.hold("p1"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
