"""
Node Monitor - Poll Scheduler.

============================================================
RESPONSIBILITY
============================================================
Drives the poll cadence. Ticks land on the next wall-clock
instant that is a multiple of the block frequency since the
Unix epoch, plus a fixed grace period.

Aligning to epoch boundaries instead of "now + frequency"
keeps tick-processing latency from accumulating as drift.
No jitter or backoff is applied.

============================================================
"""

from typing import Awaitable, Callable, Optional
import asyncio
import logging

from node_monitor.clock import ClockProtocol, SystemClock


logger = logging.getLogger(__name__)


DEFAULT_GRACE_SECONDS = 1.0


def next_tick(now: float, frequency_seconds: int, grace_seconds: float = DEFAULT_GRACE_SECONDS) -> float:
    """
    Compute the next tick instant.

    Args:
        now: Current Unix time
        frequency_seconds: Block frequency
        grace_seconds: Added after the boundary

    Returns:
        Unix time of the next tick, always after ``now``'s boundary
    """
    if frequency_seconds <= 0:
        raise ValueError("frequency_seconds must be positive")

    # Integer milliseconds keep repeated ticks exact
    now_ms = int(round(now * 1000))
    frequency_ms = frequency_seconds * 1000
    boundary_ms = now_ms - (now_ms % frequency_ms) + frequency_ms
    return boundary_ms / 1000 + grace_seconds


class TickScheduler:
    """Suspends the poll loop until each epoch-aligned tick."""

    def __init__(
        self,
        frequency_seconds: int,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        clock: Optional[ClockProtocol] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize scheduler.

        Args:
            frequency_seconds: Block frequency
            grace_seconds: Delay after each boundary
            clock: Time source (system clock by default)
            sleep: Async sleep function (asyncio.sleep by default)
        """
        if frequency_seconds <= 0:
            raise ValueError("frequency_seconds must be positive")
        self._frequency = frequency_seconds
        self._grace = grace_seconds
        self._clock = clock or SystemClock()
        self._sleep = sleep or asyncio.sleep

    @property
    def frequency_seconds(self) -> int:
        return self._frequency

    def next_tick(self) -> float:
        """Next tick instant from the clock's current time."""
        return next_tick(self._clock.timestamp(), self._frequency, self._grace)

    async def wait_for_next_tick(self) -> float:
        """
        Sleep until the next tick.

        Returns:
            The tick instant that was waited for
        """
        tick = self.next_tick()
        delay = tick - self._clock.timestamp()
        if delay > 0:
            logger.debug(f"Waiting {delay:.3f}s until next tick at {tick:.3f}")
            await self._sleep(delay)
        return tick
