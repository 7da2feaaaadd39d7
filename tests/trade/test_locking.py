"""Tests for per-key locks."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from charge_engine.trade.services.locking import KeyedLock


class TestKeyedLock:
    """Test KeyedLock."""

    def test_same_key_serializes(self):
        """Holders of one key never overlap."""
        locks = KeyedLock()
        active = []
        overlaps = []
        guard = threading.Lock()

        def work(_):
            with locks.hold(("charge", "ch_1")):
                with guard:
                    active.append(1)
                    if len(active) > 1:
                        overlaps.append(1)
                time.sleep(0.005)
                with guard:
                    active.pop()

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(work, range(8)))

        assert overlaps == []

    def test_different_keys_do_not_block(self):
        """A held key does not block another key."""
        locks = KeyedLock()

        with locks.hold("a"):
            acquired = threading.Event()

            def other():
                with locks.hold("b"):
                    acquired.set()

            thread = threading.Thread(target=other)
            thread.start()
            thread.join(timeout=1)

        assert acquired.is_set()

    def test_unused_locks_are_dropped(self):
        """The table only holds keys currently in use."""
        locks = KeyedLock()

        with locks.hold("a"):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_released_on_error(self):
        """An exception inside the block releases the key."""
        locks = KeyedLock()

        try:
            with locks.hold("a"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert len(locks) == 0
