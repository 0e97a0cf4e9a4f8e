"""
Node Monitor - Shared State.

============================================================
RESPONSIBILITY
============================================================
Holds the single mutable record shared by the ingestion task
and the HTTP handlers.

- latest block (None until the first successful ingestion)
- operator-settable force-unhealthy flag
- block frequency, fixed at construction

============================================================
CONCURRENCY
============================================================
Every read and write runs under one lock, held only for that
single operation and never across I/O. Writers replace whole
values, so readers see either the old or the new block.

If an operation fails while holding the lock the state is
poisoned: the failing call and every later call raise
StateAccessFailure, and the runtime terminates the process.

============================================================
"""

from contextlib import contextmanager
from typing import Iterator, Optional
import logging
import threading

from node_monitor.exceptions import ConfigurationError, StateAccessFailure
from node_monitor.models import BlockRecord, StateSnapshot


logger = logging.getLogger(__name__)


class MonitorState:
    """Guarded container for the monitor's shared state."""

    def __init__(self, block_frequency_seconds: int):
        """
        Initialize state.

        Args:
            block_frequency_seconds: Expected interval between blocks

        Raises:
            ConfigurationError: If the frequency is not a positive integer
        """
        if (
            isinstance(block_frequency_seconds, bool)
            or not isinstance(block_frequency_seconds, int)
            or block_frequency_seconds <= 0
        ):
            raise ConfigurationError(
                f"block frequency must be a positive integer, got {block_frequency_seconds!r}"
            )

        self._block_frequency_seconds = block_frequency_seconds
        self._latest: Optional[BlockRecord] = None
        self._force_unhealthy = False
        self._lock = threading.Lock()
        self._poisoned: Optional[BaseException] = None

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def block_frequency_seconds(self) -> int:
        """Expected block interval; immutable."""
        return self._block_frequency_seconds

    @property
    def latest(self) -> Optional[BlockRecord]:
        """Latest accepted block, or None."""
        with self._guard("read latest"):
            return self._latest

    @property
    def is_poisoned(self) -> bool:
        return self._poisoned is not None

    # --------------------------------------------------------
    # Operations
    # --------------------------------------------------------

    def update(self, block: BlockRecord) -> None:
        """Replace the latest block."""
        if not isinstance(block, BlockRecord):
            raise TypeError(f"expected BlockRecord, got {type(block).__name__}")

        with self._guard("update"):
            previous = self._latest
            self._latest = block

        if previous is not None and block.number < previous.number:
            # No monotonicity is enforced; reorgs may legitimately go back
            logger.info(
                f"Accepted block {block.number} below previous {previous.number}"
            )

    def toggle_force_unhealthy(self) -> bool:
        """Flip the force-unhealthy flag and return its new value."""
        with self._guard("toggle"):
            self._force_unhealthy = not self._force_unhealthy
            value = self._force_unhealthy

        logger.warning(f"Force-unhealthy flag set to {value}")
        return value

    def snapshot(self) -> StateSnapshot:
        """Return a consistent copy of the state."""
        with self._guard("snapshot"):
            return StateSnapshot(
                latest=self._latest,
                force_unhealthy=self._force_unhealthy,
                block_frequency_seconds=self._block_frequency_seconds,
            )

    # --------------------------------------------------------
    # Lock discipline
    # --------------------------------------------------------

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Hold the lock for one operation, poisoning the state on failure."""
        with self._lock:
            if self._poisoned is not None:
                raise StateAccessFailure(
                    f"Monitor state is poisoned; refusing {operation}",
                    context={"operation": operation},
                    cause=self._poisoned,
                )
            try:
                yield
            except Exception as e:
                self._poisoned = e
                logger.critical(f"State {operation} failed while holding lock: {e}")
                raise StateAccessFailure(
                    f"Monitor state {operation} failed while holding lock",
                    context={"operation": operation},
                    cause=e,
                ) from e

    def __repr__(self) -> str:
        return (
            f"<MonitorState(block_frequency={self._block_frequency_seconds}, "
            f"poisoned={self.is_poisoned})>"
        )
