"""
Node Monitor - Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable time source for health evaluation and the
poll scheduler.

- Health verdicts depend on wall-clock seconds since the epoch
- Scheduler ticks are aligned to epoch boundaries
- Tests drive a MockClock instead of sleeping

============================================================
"""

from abc import ABC, abstractmethod
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the monitor clock."""

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def epoch_seconds(self) -> int:
        """Get current Unix time truncated to whole seconds."""
        return int(self.timestamp())


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests. ``sleep`` advances
    the clock instead of waiting, so it can be handed to the scheduler.
    """

    def __init__(self, initial_timestamp: Optional[float] = None):
        """
        Initialize mock clock.

        Args:
            initial_timestamp: Starting Unix time (defaults to current time)
        """
        self._time = initial_timestamp if initial_timestamp is not None else time.time()
        self._lock = threading.Lock()

    def timestamp(self) -> float:
        with self._lock:
            return self._time

    def set_time(self, timestamp: float) -> None:
        """Set the current time."""
        with self._lock:
            self._time = timestamp

    def advance(self, seconds: float) -> None:
        """Advance time by the specified number of seconds."""
        with self._lock:
            self._time += seconds

    async def sleep(self, seconds: float) -> None:
        """Pretend to sleep by advancing the clock."""
        if seconds > 0:
            self.advance(seconds)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
]
