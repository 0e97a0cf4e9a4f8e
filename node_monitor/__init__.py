"""
Node Monitor - Head-of-chain health signal for a blockchain node.

Answers one question for load balancers and uptime checks:
"is this node producing fresh blocks right now?"

Quick Start:
    from node_monitor import MonitorConfig, NodeMonitor

    async def serve():
        config = MonitorConfig(
            rpc_url="http://localhost:8545",
            ws_url="ws://localhost:8546",   # optional: push + reconcile
            block_frequency=12,
        )
        return await NodeMonitor(config).run()

Ingestion Modes:
- poll            fetch the latest block on epoch-aligned ticks
- push+reconcile  consume newHeads, confirm each block over HTTP

Health:
- unhealthy when forced, when no block was seen yet, or when the
  latest block is older than the block frequency
"""

__version__ = "1.0.0"

from node_monitor.clock import ClockProtocol, MockClock, SystemClock
from node_monitor.config import MonitorConfig, load_config
from node_monitor.exceptions import (
    ConfigurationError,
    NodeMonitorError,
    ProviderError,
    ReconciliationDiscrepancy,
    StateAccessFailure,
    SubscriptionClosedError,
)
from node_monitor.health import HealthEvaluator, evaluate_health
from node_monitor.models import (
    BlockRecord,
    HealthReason,
    HealthVerdict,
    IngestionPhase,
    StateSnapshot,
)
from node_monitor.reconciler import ReconciliationResult, Reconciler
from node_monitor.runtime import NodeMonitor
from node_monitor.scheduler import TickScheduler, next_tick
from node_monitor.sources import (
    BlockSource,
    PollStrategy,
    PushReconcileStrategy,
    create_block_source,
)
from node_monitor.state import MonitorState


__all__ = [
    # Models
    "BlockRecord",
    "StateSnapshot",
    "HealthVerdict",
    "HealthReason",
    "IngestionPhase",

    # State & health
    "MonitorState",
    "HealthEvaluator",
    "evaluate_health",

    # Ingestion
    "BlockSource",
    "PollStrategy",
    "PushReconcileStrategy",
    "create_block_source",
    "Reconciler",
    "ReconciliationResult",
    "TickScheduler",
    "next_tick",

    # Time
    "ClockProtocol",
    "SystemClock",
    "MockClock",

    # Runtime
    "MonitorConfig",
    "load_config",
    "NodeMonitor",

    # Exceptions
    "NodeMonitorError",
    "ConfigurationError",
    "ProviderError",
    "ReconciliationDiscrepancy",
    "StateAccessFailure",
    "SubscriptionClosedError",
]
