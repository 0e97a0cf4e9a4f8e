"""
Node Monitor HTTP API.

============================================================
ENDPOINTS
============================================================
GET  /lastBlock   - Latest block as seen by the monitor
POST /toggleFail  - Flip the force-unhealthy flag
GET  /health      - 200 when fresh, 503 otherwise

============================================================
"""

import json
import logging
from typing import Any, Callable, Optional

from aiohttp import web
from opentelemetry import trace
from opentelemetry.trace import Tracer

from node_monitor.clock import ClockProtocol
from node_monitor.exceptions import StateAccessFailure
from node_monitor.health import HealthEvaluator
from node_monitor.logging_setup import tracing_middleware
from node_monitor.state import MonitorState
from node_monitor.telemetry import span_middleware


logger = logging.getLogger(__name__)

FatalCallback = Callable[[BaseException], None]


STATE_KEY = web.AppKey("state", MonitorState)


def json_response(data: Any, status: int = 200) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data),
        status=status,
        content_type="application/json",
    )


# ============================================================
# API HANDLERS
# ============================================================

class MonitorAPI:
    """HTTP handlers over the shared monitor state."""

    def __init__(self, state: MonitorState, evaluator: HealthEvaluator):
        self._state = state
        self._evaluator = evaluator

    async def last_block(self, request: web.Request) -> web.Response:
        """
        GET /lastBlock

        Return the last block data as provided by the node.
        """
        block = self._state.latest
        return json_response({"lastBlock": block.to_dict() if block else None})

    async def toggle_fail(self, request: web.Request) -> web.Response:
        """
        POST /toggleFail

        Set the fail_intentional flag to the opposite of its current value.
        """
        value = self._state.toggle_force_unhealthy()
        return json_response({"fail_intentional": value})

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health

        Service unavailable when the latest block is older than the
        block frequency, when no block has been seen yet, or when the
        fail_intentional flag is set.
        """
        snapshot = self._state.snapshot()
        verdict = self._evaluator.evaluate(snapshot)

        if verdict.healthy:
            return json_response({"status": "healthy"})

        logger.debug(f"Reporting unhealthy: {verdict.reason_text}")
        return json_response({
            "status": "unhealthy",
            "reason": verdict.reason_text,
            "lastBlock": snapshot.latest.to_dict() if snapshot.latest else None,
        }, status=503)


# ============================================================
# APP FACTORY
# ============================================================

def state_failure_middleware(on_fatal: Optional[FatalCallback]):
    """Report StateAccessFailure to the runtime and answer 500."""

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except StateAccessFailure as e:
            logger.critical(f"{request.method} {request.path}: {e}")
            if on_fatal is not None:
                on_fatal(e)
            return json_response({"status": "error", "error": "state unavailable"}, status=500)

    return middleware


def create_app(
    state: MonitorState,
    clock: Optional[ClockProtocol] = None,
    tracing: bool = False,
    on_fatal: Optional[FatalCallback] = None,
    tracer: Optional[Tracer] = None,
) -> web.Application:
    """
    Create the monitor API application.

    Args:
        state: Shared monitor state
        clock: Time source for health evaluation
        tracing: Enable request spans and the request tracing middleware
        on_fatal: Called when a handler hits a poisoned state
        tracer: OpenTelemetry tracer (global tracer by default)
    """
    evaluator = HealthEvaluator(state, clock)
    api = MonitorAPI(state, evaluator)

    middlewares = []
    if tracing:
        middlewares.append(span_middleware(tracer or trace.get_tracer("node_monitor")))
        middlewares.append(tracing_middleware)
    middlewares.append(state_failure_middleware(on_fatal))

    app = web.Application(middlewares=middlewares)
    app[STATE_KEY] = state

    app.router.add_get("/lastBlock", api.last_block)
    app.router.add_post("/toggleFail", api.toggle_fail)
    app.router.add_get("/health", api.health)

    return app
