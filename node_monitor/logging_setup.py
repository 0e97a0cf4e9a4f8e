"""
Node Monitor - Logging & Request Tracing.

============================================================
RESPONSIBILITY
============================================================
- Configures the root logger (json or text) on stdout
- Tags every record with the current request trace id
- Optional aiohttp middleware that assigns trace ids,
  logs each request and echoes X-Request-ID

============================================================
"""

from contextvars import ContextVar
from typing import Awaitable, Callable, Optional
import json
import logging
import sys
import time
import uuid

from aiohttp import web
from opentelemetry import trace


TRACE_HEADER = "X-Request-ID"

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")

logger = logging.getLogger(__name__)


def current_trace_id() -> str:
    """Trace id of the request being handled, or empty string."""
    return _trace_id.get()


class TraceIdFilter(logging.Filter):
    """Adds ``trace_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", ""),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Set up process logging.

    Args:
        level: Log level name
        log_format: Output format (json or text)

    Returns:
        The node_monitor package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(trace_id)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(TraceIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # aiohttp's own access log duplicates the tracing middleware
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    return logging.getLogger("node_monitor")


Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _span_trace_id() -> str:
    """Trace id of the active OpenTelemetry span, if any."""
    span_context = trace.get_current_span().get_span_context()
    return format(span_context.trace_id, "032x") if span_context.is_valid else ""


@web.middleware
async def tracing_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Assign a trace id to the request and log its outcome."""
    trace_id = request.headers.get(TRACE_HEADER) or _span_trace_id() or uuid.uuid4().hex
    token = _trace_id.set(trace_id)
    start_time = time.time()
    status: Optional[int] = None
    try:
        response = await handler(request)
        status = response.status
        response.headers[TRACE_HEADER] = trace_id
        return response
    except web.HTTPException as e:
        status = e.status
        e.headers[TRACE_HEADER] = trace_id
        raise
    finally:
        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{request.method} {request.path} -> {status if status is not None else 'error'} "
            f"({latency_ms:.1f}ms)"
        )
        _trace_id.reset(token)
