"""
Shared fixtures for node monitor tests.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Union

import pytest

from node_monitor.clock import MockClock
from node_monitor.models import BlockRecord
from node_monitor.providers.base import BlockProvider, BlockSubscription
from node_monitor.state import MonitorState


FetchResult = Union[BlockRecord, None, Exception]


class FakeProvider(BlockProvider):
    """Scripted pull source."""

    def __init__(
        self,
        latest: Optional[List[FetchResult]] = None,
        by_number: Optional[Dict[int, FetchResult]] = None,
    ):
        self._latest = list(latest or [])
        self._by_number = dict(by_number or {})
        self.latest_calls = 0
        self.number_calls: List[int] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def fetch_latest(self) -> Optional[BlockRecord]:
        self.latest_calls += 1
        if not self._latest:
            return None
        result = self._latest.pop(0) if len(self._latest) > 1 else self._latest[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_by_number(self, number: int) -> Optional[BlockRecord]:
        self.number_calls.append(number)
        result = self._by_number.get(number)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class ListSubscription(BlockSubscription):
    """Push source over a fixed list of blocks; ends afterwards."""

    def __init__(self, blocks: List[BlockRecord]):
        self._blocks = list(blocks)

    @property
    def name(self) -> str:
        return "list"

    async def blocks(self) -> AsyncIterator[BlockRecord]:
        for block in self._blocks:
            yield block


def make_block(number: int = 5, hash: str = "0xabc", timestamp: int = 1000) -> BlockRecord:
    return BlockRecord(number=number, hash=hash, timestamp=timestamp)


def rpc_block(number: int, hash: Any, timestamp: int) -> Dict[str, Any]:
    """Block object as returned by eth_getBlockByNumber."""
    return {
        "number": hex(number) if number is not None else None,
        "hash": hash,
        "parentHash": "0x" + "00" * 32,
        "timestamp": hex(timestamp),
        "transactions": [],
    }


@pytest.fixture
def state() -> MonitorState:
    return MonitorState(block_frequency_seconds=12)


@pytest.fixture
def clock() -> MockClock:
    return MockClock(initial_timestamp=1_700_000_005.0)


@pytest.fixture
def block() -> BlockRecord:
    return make_block()
