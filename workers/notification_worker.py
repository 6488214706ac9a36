"""
Two-hour notification scheduler.

Purpose:
- Wake at the next even UTC hour (00:00, 02:00, ... 22:00), run one delivery cycle
- Then keep a fixed two-hour cadence measured from the previous scheduled firing
- Per-subscriber timezone alignment happens inside the cycle, not here

Usage:
- scheduler = NotificationScheduler(coordinator.run_cycle)
- scheduler.start()   (inside a running event loop)
- await scheduler.stop()

Notes:
- stop() cancels the pending timer; a cycle already running is allowed to finish
- an exception inside a cycle is logged and never breaks the cadence
- clock and sleep are injectable so tests can drive time deterministically
"""
import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from core.timeutils import CYCLE_PERIOD, Clock, minutes_until_next_even_hour, utcnow

logger = logging.getLogger(__name__)

class NotificationScheduler:
    """Single cooperative timer driving delivery cycles."""

    def __init__(self, run_cycle: Callable[[], Awaitable[object]], clock: Clock = utcnow,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 period: timedelta = CYCLE_PERIOD):
        self._run_cycle = run_cycle
        self._clock = clock
        self._sleep = sleep
        self.period = period
        self.cycles_run = 0
        self.cycles_failed = 0
        self.next_fire_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Future] = None
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Notification scheduler started")

    async def stop(self) -> None:
        self._stopping = True
        task, self._task = self._task, None
        if task is None:
            return
        if self._in_flight is not None and not self._in_flight.done():
            logger.info("Waiting for in-flight cycle to complete")
            await asyncio.wait([self._in_flight])
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.next_fire_at = None
        logger.info("Notification scheduler stopped. Cycles run: %s, failed: %s",
                    self.cycles_run, self.cycles_failed)

    async def _run(self) -> None:
        now = self._clock()
        delay = minutes_until_next_even_hour(now) * 60
        self.next_fire_at = now + timedelta(seconds=delay)
        logger.info("First update in %s minutes", delay // 60)

        while not self._stopping:
            await self._sleep(delay)
            if self._stopping:
                return
            self._in_flight = asyncio.ensure_future(self._fire())
            # shielded so stop() never interrupts a cycle mid-subscription
            await asyncio.shield(self._in_flight)

            self.next_fire_at = self.next_fire_at + self.period
            delay = max(0.0, (self.next_fire_at - self._clock()).total_seconds())

    async def _fire(self) -> None:
        try:
            await self._run_cycle()
        except Exception as e:
            self.cycles_failed += 1
            logger.exception("Critical scheduler error: %s", e)
        finally:
            self.cycles_run += 1
