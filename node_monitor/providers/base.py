"""
Base Block Provider - Abstract interfaces for block data channels.

Pull channels answer "give me block N" and "give me the latest
block". Push channels deliver new heads as they are produced.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from node_monitor.models import BlockRecord


class BlockProvider(ABC):
    """
    Pull source of blocks.

    Implementations raise ProviderError on transport or RPC failure
    and return None when the node does not know the block.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs."""
        pass

    @abstractmethod
    async def fetch_latest(self) -> Optional[BlockRecord]:
        """Fetch the current head of the chain."""
        pass

    @abstractmethod
    async def fetch_by_number(self, number: int) -> Optional[BlockRecord]:
        """Fetch a block by height."""
        pass

    async def close(self) -> None:
        """Release resources."""
        pass

    async def __aenter__(self) -> "BlockProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"


class BlockSubscription(ABC):
    """Push source of blocks."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def blocks(self) -> AsyncIterator[BlockRecord]:
        """
        Lazy, infinite sequence of new blocks.

        Can be iterated only once.
        """
        pass
