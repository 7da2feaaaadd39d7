"""Timeout scheduling for unpaid charges.

The engine only needs one thing from a scheduler: "call close_charge for this
charge number no sooner than ``delay`` from now". Delivery may be late or
repeated; closing is idempotent.

Delay queues (RocketMQ-style brokers) support a fixed ladder of delays rather
than arbitrary ones; ``compute_delay_level`` maps a requested delay onto it.
"""

from __future__ import annotations

import heapq
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Protocol

from charge_engine.trade.types import utcnow

if TYPE_CHECKING:
    from charge_engine.trade.gateway import TradeGateway

logger = logging.getLogger(__name__)

# Level n (1-based) delays for DELAY_LEVELS[n - 1] seconds
DELAY_LEVELS: tuple[int, ...] = (
    1, 5, 10, 30,
    60, 120, 180, 240, 300, 360, 420, 480, 540, 600,
    1200, 1800,
    3600, 7200,
)


def compute_delay_level(seconds: float) -> int:
    """Return the smallest delay level whose delay is at least ``seconds``.

    Delays beyond the last level are capped at the last level; the charge is
    then closed by a later query or a repeated timeout.
    """
    for level, level_seconds in enumerate(DELAY_LEVELS, start=1):
        if seconds <= level_seconds:
            return level
    return len(DELAY_LEVELS)


class TimeoutScheduler(Protocol):
    """Arranges for a charge's timeout close to fire later."""

    def schedule_at(self, delay: timedelta, charge_no: str) -> None:
        ...


@dataclass(order=True)
class ScheduledClose:
    """A pending timeout close."""

    due_at: datetime
    charge_no: str = field(compare=False)


class InMemoryScheduler:
    """Heap-backed scheduler for development and tests.

    Nothing fires on its own: call ``run_due`` periodically (the API does so
    from a background task when polling is enabled).

    With ``delay_levels`` set, requested delays are rounded onto the delay
    queue ladder the way a broker would, so long delays fire early and
    short ones fire late.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow, delay_levels: bool = False):
        self._clock = clock
        self.delay_levels = delay_levels
        self._queue: list[ScheduledClose] = []
        self._lock = threading.Lock()

    def schedule_at(self, delay: timedelta, charge_no: str) -> None:
        if self.delay_levels:
            level = compute_delay_level(delay.total_seconds())
            logger.debug("Close of %s requested in %s, using delay level %d", charge_no, delay, level)
            delay = timedelta(seconds=DELAY_LEVELS[level - 1])
        due_at = self._clock() + delay
        with self._lock:
            heapq.heappush(self._queue, ScheduledClose(due_at=due_at, charge_no=charge_no))
        logger.debug("Scheduled close of %s at %s", charge_no, due_at.isoformat())

    def pending(self) -> list[ScheduledClose]:
        with self._lock:
            return sorted(self._queue)

    def pop_due(self, now: datetime | None = None) -> list[ScheduledClose]:
        """Remove and return every entry due at or before ``now``."""
        now = now or self._clock()
        due: list[ScheduledClose] = []
        with self._lock:
            while self._queue and self._queue[0].due_at <= now:
                due.append(heapq.heappop(self._queue))
        return due

    def run_due(self, gateway: TradeGateway, now: datetime | None = None) -> int:
        """Fire every due timeout against ``gateway``.

        A failing close is logged and rescheduled one minute later so a
        flaky platform cannot drop it.

        Returns:
            Number of closes fired
        """
        now = now or self._clock()
        entries = self.pop_due(now)
        for entry in entries:
            try:
                gateway.close_charge(entry.charge_no, now=now)
            except Exception:
                logger.exception("Timeout close failed for charge %s", entry.charge_no)
                with self._lock:
                    heapq.heappush(
                        self._queue,
                        ScheduledClose(due_at=now + timedelta(minutes=1), charge_no=entry.charge_no),
                    )
        return len(entries)
