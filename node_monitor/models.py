"""
Node Monitor Data Models - Block records, state snapshots and verdicts.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from node_monitor.exceptions import ProviderError


class IngestionPhase(Enum):
    """Phase of the ingestion state machine."""
    IDLE = "idle"
    FETCHING = "fetching"
    AWAITING = "awaiting"
    RECONCILING = "reconciling"
    UPDATED = "updated"


class HealthReason(Enum):
    """Why a node is reported unhealthy."""
    FORCED = "forced"
    NO_BLOCK = "no block observed"
    STALE = "stale block"


def parse_quantity(value: Any, field_name: str) -> int:
    """Parse a JSON-RPC quantity (hex string or int)."""
    if isinstance(value, bool):
        raise ProviderError(f"Invalid {field_name}: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ProviderError(f"Negative {field_name}: {value}")
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        except ValueError as e:
            raise ProviderError(f"Invalid {field_name}: {value!r}", cause=e)
    raise ProviderError(f"Missing or invalid {field_name}: {value!r}")


@dataclass(frozen=True)
class BlockRecord:
    """
    Head-of-chain block as seen by the monitor.

    Immutable once constructed. Only the three fields the health signal
    needs are kept from the full RPC block.
    """
    number: int
    hash: str
    timestamp: int  # unix seconds

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "number": self.number,
            "hash": self.hash,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlockRecord":
        """Create from dictionary."""
        return cls(
            number=int(data["number"]),
            hash=str(data["hash"]),
            timestamp=int(data["timestamp"]),
        )

    @classmethod
    def from_rpc(cls, payload: Any) -> "BlockRecord":
        """
        Build a record from an Ethereum JSON-RPC block or header object.

        Args:
            payload: ``result`` of ``eth_getBlockByNumber`` or the
                ``params.result`` of a ``newHeads`` notification

        Raises:
            ProviderError: If the payload is not a complete, mined block
        """
        if not isinstance(payload, dict):
            raise ProviderError(f"Block payload is not an object: {type(payload).__name__}")

        block_hash = payload.get("hash")
        if not isinstance(block_hash, str) or not block_hash:
            # Pending blocks carry a null hash and number
            raise ProviderError("Block payload has no hash", context={"number": payload.get("number")})

        return cls(
            number=parse_quantity(payload.get("number"), "number"),
            hash=block_hash,
            timestamp=parse_quantity(payload.get("timestamp"), "timestamp"),
        )

    def __str__(self) -> str:
        return f"#{self.number} ({self.hash}) @ {self.timestamp}"


@dataclass(frozen=True)
class StateSnapshot:
    """Consistent copy of the monitor state at one instant."""
    latest: Optional[BlockRecord]
    force_unhealthy: bool
    block_frequency_seconds: int


@dataclass(frozen=True)
class HealthVerdict:
    """Result of one health evaluation."""
    healthy: bool
    reason: Optional[HealthReason] = None
    stale_seconds: Optional[int] = None

    @property
    def reason_text(self) -> Optional[str]:
        return self.reason.value if self.reason else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "reason": self.reason_text,
            "stale_seconds": self.stale_seconds,
        }
