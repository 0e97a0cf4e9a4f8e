"""
Node Monitor - Block Sources.

============================================================
RESPONSIBILITY
============================================================
Runs the single ingestion task that writes blocks into
MonitorState. Two strategies share one loop:

- PollStrategy           pull latest block on each scheduler tick
- PushReconcileStrategy  consume pushed heads, reconcile each one
                         against the HTTP channel

The strategy is chosen once at startup from configuration.

============================================================
STATE MACHINE
============================================================
IDLE -> FETCHING/AWAITING -> RECONCILING (push only) -> UPDATED -> IDLE

Recoverable failures at any stage return to IDLE without
updating state. There is no terminal state.

============================================================
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional
import logging

from node_monitor.exceptions import ProviderError, SubscriptionClosedError
from node_monitor.models import BlockRecord, IngestionPhase
from node_monitor.providers.base import BlockProvider, BlockSubscription
from node_monitor.reconciler import Reconciler
from node_monitor.scheduler import TickScheduler
from node_monitor.state import MonitorState


logger = logging.getLogger(__name__)


# ============================================================
# BASE
# ============================================================

class BlockSource(ABC):
    """Common ingestion loop over one block acquisition strategy."""

    def __init__(self) -> None:
        self._phase = IngestionPhase.IDLE
        self.accepted = 0
        self.skipped = 0

    @property
    @abstractmethod
    def mode(self) -> str:
        """Strategy name for logs."""
        pass

    @property
    def phase(self) -> IngestionPhase:
        return self._phase

    @abstractmethod
    async def next_candidate(self) -> Optional[BlockRecord]:
        """
        Acquire the next candidate block.

        Returns:
            A candidate, or None when this cycle should be skipped
        """
        pass

    async def accept(self, candidate: BlockRecord) -> BlockRecord:
        """Decide which block to store for a candidate."""
        return candidate

    async def run_once(self, state: MonitorState) -> Optional[BlockRecord]:
        """
        Run one ingestion cycle.

        Returns:
            The stored block, or None if the cycle was skipped
        """
        candidate = await self.next_candidate()
        if candidate is None:
            self.skipped += 1
            self._transition(IngestionPhase.IDLE)
            return None

        block = await self.accept(candidate)
        state.update(block)
        self.accepted += 1
        self._transition(IngestionPhase.UPDATED)
        logger.debug(
            f"Updating to latest block | number={block.number} "
            f"timestamp={block.timestamp} hash={block.hash}"
        )
        self._transition(IngestionPhase.IDLE)
        return block

    async def run(self, state: MonitorState) -> None:
        """Ingest blocks for the lifetime of the process."""
        logger.info(f"Starting ingestion loop | mode={self.mode}")
        try:
            while True:
                await self.run_once(state)
        finally:
            self._transition(IngestionPhase.IDLE)

    def _transition(self, phase: IngestionPhase) -> None:
        if phase != self._phase:
            logger.debug(f"Ingestion {self._phase.value} -> {phase.value}")
            self._phase = phase

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(phase={self._phase.value}, accepted={self.accepted})>"


# ============================================================
# POLL
# ============================================================

class PollStrategy(BlockSource):
    """
    Pulls the latest block on every scheduler tick.

    The first fetch happens immediately; later ones wait for the
    next epoch-aligned tick. Failed fetches are not retried.
    """

    def __init__(self, provider: BlockProvider, scheduler: TickScheduler):
        super().__init__()
        self._provider = provider
        self._scheduler = scheduler
        self._first = True

    @property
    def mode(self) -> str:
        return "poll"

    async def next_candidate(self) -> Optional[BlockRecord]:
        if self._first:
            self._first = False
        else:
            await self._scheduler.wait_for_next_tick()

        self._transition(IngestionPhase.FETCHING)
        try:
            block = await self._provider.fetch_latest()
        except ProviderError as e:
            logger.warning(f"[{self._provider.name}] Failed to fetch latest block: {e}")
            return None

        if block is None:
            logger.warning(f"[{self._provider.name}] Latest block not available")
        return block


# ============================================================
# PUSH + RECONCILE
# ============================================================

class PushReconcileStrategy(BlockSource):
    """Consumes pushed heads and reconciles each against a second channel."""

    def __init__(
        self,
        subscription: BlockSubscription,
        reconciler: Optional[Reconciler] = None,
    ):
        super().__init__()
        self._subscription = subscription
        self._reconciler = reconciler
        self._stream: Optional[AsyncIterator[BlockRecord]] = None

    @property
    def mode(self) -> str:
        return "push+reconcile" if self._reconciler else "push"

    @property
    def reconciler(self) -> Optional[Reconciler]:
        return self._reconciler

    async def next_candidate(self) -> Optional[BlockRecord]:
        if self._stream is None:
            self._stream = self._subscription.blocks().__aiter__()

        self._transition(IngestionPhase.AWAITING)
        try:
            return await self._stream.__anext__()
        except StopAsyncIteration:
            raise SubscriptionClosedError(
                f"Push stream from {self._subscription.name} ended",
            )

    async def accept(self, candidate: BlockRecord) -> BlockRecord:
        if self._reconciler is None:
            return candidate

        self._transition(IngestionPhase.RECONCILING)
        result = await self._reconciler.reconcile(candidate)
        return result.block


# ============================================================
# FACTORY
# ============================================================

def create_block_source(
    http_provider: BlockProvider,
    scheduler: Optional[TickScheduler] = None,
    subscription: Optional[BlockSubscription] = None,
) -> BlockSource:
    """
    Choose the ingestion strategy.

    A push subscription selects push+reconcile with the HTTP provider
    as the secondary source; otherwise the HTTP provider is polled.
    """
    if subscription is not None:
        return PushReconcileStrategy(subscription, Reconciler(http_provider))

    if scheduler is None:
        raise ValueError("Poll mode requires a scheduler")
    return PollStrategy(http_provider, scheduler)
