"""
Node Monitor - Health Evaluation.

A node is healthy when its latest block is no older than one block
interval. The comparison is inclusive on the healthy side: a block
exactly ``block_frequency_seconds`` old is still healthy.

This check will produce some false positives, since block production
is not exactly periodic. Monitors polling /health should poll faster
than the block frequency and require several consecutive failures
before treating the node as down.
"""

from typing import Optional
import logging

from node_monitor.clock import ClockProtocol, SystemClock
from node_monitor.models import HealthReason, HealthVerdict, StateSnapshot
from node_monitor.state import MonitorState


logger = logging.getLogger(__name__)


def evaluate_health(snapshot: StateSnapshot, now: int) -> HealthVerdict:
    """
    Derive a health verdict from a state snapshot.

    Args:
        snapshot: State copy from MonitorState.snapshot()
        now: Current Unix time in seconds

    Returns:
        HealthVerdict
    """
    if snapshot.force_unhealthy:
        return HealthVerdict(healthy=False, reason=HealthReason.FORCED)

    block = snapshot.latest
    if block is None:
        return HealthVerdict(healthy=False, reason=HealthReason.NO_BLOCK)

    stale = now - block.timestamp
    logger.debug(
        f"Checking health | block={block.number} block_ts={block.timestamp} "
        f"now={now} frequency={snapshot.block_frequency_seconds} stale={stale}"
    )

    if stale > snapshot.block_frequency_seconds:
        return HealthVerdict(healthy=False, reason=HealthReason.STALE, stale_seconds=stale)

    return HealthVerdict(healthy=True, stale_seconds=stale)


class HealthEvaluator:
    """Evaluates MonitorState against a clock on demand."""

    def __init__(self, state: MonitorState, clock: Optional[ClockProtocol] = None):
        self._state = state
        self._clock = clock or SystemClock()

    def evaluate(self, snapshot: Optional[StateSnapshot] = None) -> HealthVerdict:
        """
        Evaluate health now. Not cached.

        Args:
            snapshot: Snapshot to judge (taken from the state if omitted)
        """
        if snapshot is None:
            snapshot = self._state.snapshot()
        return evaluate_health(snapshot, self._clock.epoch_seconds())
