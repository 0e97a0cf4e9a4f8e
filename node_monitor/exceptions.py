"""
Node Monitor - Exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
NodeMonitorError (base)
├── ConfigurationError          fatal at startup
├── ProviderError               recovered: cycle skipped
├── ReconciliationDiscrepancy   recovered: logged signal only
├── StateAccessFailure          fatal: shared state unverifiable
└── SubscriptionClosedError     fatal: push stream gone for good

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class NodeMonitorError(Exception):
    """
    Base exception for all node monitor errors.

    All exceptions carry:
    - context: for debugging
    - recoverable: whether ingestion can continue
    - timestamp: when the error occurred
    """

    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.recoverable = self.default_recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[{details}]")
        if self.cause:
            parts.append(f"(caused by: {self.cause})")
        return " ".join(parts)


class ConfigurationError(NodeMonitorError):
    """Invalid endpoint scheme, unparsable address or bad setting."""

    default_recoverable = False

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, context, cause)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class ProviderError(NodeMonitorError):
    """Transport or RPC failure while fetching a block."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        rpc_error: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, context, cause)
        self.endpoint = endpoint
        self.method = method
        self.status_code = status_code
        self.rpc_error = rpc_error

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "endpoint": self.endpoint,
            "method": self.method,
            "status_code": self.status_code,
            "rpc_error": self.rpc_error,
        })
        return data


class ReconciliationDiscrepancy(NodeMonitorError):
    """
    A pushed block could not be confirmed by the secondary source.

    Never raised by the reconciler. It is reported alongside the
    accepted block so callers can log or count it.
    """

    MISSING = "missing"
    HASH_MISMATCH = "hash_mismatch"

    def __init__(
        self,
        message: str,
        kind: str,
        block_number: int,
        primary_hash: str,
        secondary_hash: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            context={
                "block_number": block_number,
                "primary_hash": primary_hash,
                "secondary_hash": secondary_hash,
            },
            cause=cause,
        )
        self.kind = kind
        self.block_number = block_number
        self.primary_hash = primary_hash
        self.secondary_hash = secondary_hash

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind
        return data


class StateAccessFailure(NodeMonitorError):
    """
    Shared state was left in an unverifiable condition.

    Raised when an operation failed while holding the state lock, and by
    every operation attempted afterwards.
    """

    default_recoverable = False


class SubscriptionClosedError(NodeMonitorError):
    """Push subscription terminated and could not be re-established."""

    default_recoverable = False

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        attempts: int = 0,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, context={"url": url, "attempts": attempts}, cause=cause)
        self.url = url
        self.attempts = attempts


__all__ = [
    "NodeMonitorError",
    "ConfigurationError",
    "ProviderError",
    "ReconciliationDiscrepancy",
    "StateAccessFailure",
    "SubscriptionClosedError",
]
