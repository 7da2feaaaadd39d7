"""Tests for timeout scheduling."""

from datetime import datetime, timedelta, timezone

import pytest

from charge_engine.trade.scheduler import (
    DELAY_LEVELS,
    InMemoryScheduler,
    ScheduledClose,
    compute_delay_level,
)

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestDelayLevels:
    """Test mapping requested delays onto the broker's delay ladder."""

    @pytest.mark.parametrize(
        "seconds,level",
        [
            (0, 1),
            (1, 1),
            (2, 2),
            (5, 2),
            (6, 3),
            (60, 5),
            (61, 6),
            (1800, 16),
            (7200, 18),
            (10000, 18),
        ],
    )
    def test_smallest_level_not_shorter(self, seconds, level):
        """The chosen level never fires before the requested delay (up to the cap)."""
        assert compute_delay_level(seconds) == level

    def test_ladder_is_increasing(self):
        """Levels are strictly increasing."""
        assert list(DELAY_LEVELS) == sorted(set(DELAY_LEVELS))
        assert len(DELAY_LEVELS) == 18


class FakeGateway:
    def __init__(self, fail_for=()):
        self.closed = []
        self.fail_for = set(fail_for)

    def close_charge(self, charge_no, now=None):
        if charge_no in self.fail_for:
            raise RuntimeError("platform down")
        self.closed.append((charge_no, now))


class TestInMemoryScheduler:
    """Test the in-process scheduler."""

    def test_schedule_relative_to_clock(self):
        """Entries are due at clock time plus delay."""
        scheduler = InMemoryScheduler(clock=lambda: T0)

        scheduler.schedule_at(timedelta(minutes=30), "ch_1")

        assert scheduler.pending() == [ScheduledClose(due_at=T0 + timedelta(minutes=30), charge_no="ch_1")]

    def test_pop_due_returns_in_order(self):
        """Only due entries are removed, earliest first."""
        scheduler = InMemoryScheduler(clock=lambda: T0)
        scheduler.schedule_at(timedelta(minutes=10), "ch_b")
        scheduler.schedule_at(timedelta(minutes=5), "ch_a")
        scheduler.schedule_at(timedelta(minutes=60), "ch_c")

        due = scheduler.pop_due(T0 + timedelta(minutes=10))

        assert [d.charge_no for d in due] == ["ch_a", "ch_b"]
        assert [p.charge_no for p in scheduler.pending()] == ["ch_c"]

    def test_run_due_fires_closes(self):
        """Due entries are closed through the gateway."""
        scheduler = InMemoryScheduler(clock=lambda: T0)
        scheduler.schedule_at(timedelta(minutes=1), "ch_1")
        gateway = FakeGateway()
        now = T0 + timedelta(minutes=2)

        assert scheduler.run_due(gateway, now=now) == 1
        assert gateway.closed == [("ch_1", now)]
        assert scheduler.pending() == []

    def test_failed_close_is_retried(self):
        """A close that raises is rescheduled a minute later."""
        scheduler = InMemoryScheduler(clock=lambda: T0)
        scheduler.schedule_at(timedelta(minutes=1), "ch_1")
        gateway = FakeGateway(fail_for={"ch_1"})
        now = T0 + timedelta(minutes=2)

        scheduler.run_due(gateway, now=now)

        assert scheduler.pending() == [ScheduledClose(due_at=now + timedelta(minutes=1), charge_no="ch_1")]

    @pytest.mark.parametrize(
        "requested,actual",
        [
            (timedelta(seconds=45), timedelta(minutes=1)),
            (timedelta(minutes=30), timedelta(minutes=30)),
            (timedelta(minutes=31), timedelta(hours=1)),
            (timedelta(hours=3), timedelta(hours=2)),
        ],
    )
    def test_delay_levels_round_the_delay(self, requested, actual):
        """With delay levels on, delays snap to the ladder like a broker."""
        scheduler = InMemoryScheduler(clock=lambda: T0, delay_levels=True)

        scheduler.schedule_at(requested, "ch_1")

        assert scheduler.pending()[0].due_at == T0 + actual

    def test_nothing_due(self):
        """Nothing fires before its time."""
        scheduler = InMemoryScheduler(clock=lambda: T0)
        scheduler.schedule_at(timedelta(minutes=30), "ch_1")

        assert scheduler.run_due(FakeGateway()) == 0
