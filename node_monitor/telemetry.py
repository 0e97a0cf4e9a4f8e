"""
Node Monitor - OpenTelemetry Tracing.

============================================================
RESPONSIBILITY
============================================================
Exports a server span for every API request when tracing is
enabled.

- Spans go to an OTLP collector (OTEL_EXPORTER_OTLP_* env)
- Incoming W3C trace context is continued
- The span context is returned in the response headers

============================================================
"""

from typing import Optional
import logging

from aiohttp import web
from opentelemetry import propagate
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer


logger = logging.getLogger(__name__)


DEFAULT_SERVICE_NAME = "node-monitor"


def create_tracer_provider(
    exporter: Optional[SpanExporter] = None,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> TracerProvider:
    """
    Build a tracer provider.

    Args:
        exporter: Span exporter; OTLP over gRPC when omitted. A given
            exporter is flushed synchronously on every span end.
        service_name: ``service.name`` resource attribute
    """
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
        logger.info("OpenTelemetry OTLP span export enabled")
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    return provider


def _route_name(request: web.Request) -> str:
    resource = request.match_info.route.resource
    return resource.canonical if resource is not None else request.path


def _set_status_code(span, status: int) -> None:
    span.set_attribute("http.response.status_code", status)
    if status >= 500:
        span.set_status(Status(StatusCode.ERROR))


def span_middleware(tracer: Tracer):
    """Wrap each request in a SERVER span."""

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        route = _route_name(request)
        with tracer.start_as_current_span(
            f"{request.method} {route}",
            context=propagate.extract(request.headers),
            kind=SpanKind.SERVER,
            attributes={
                "http.request.method": request.method,
                "http.route": route,
                "url.path": request.path,
            },
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                _set_status_code(span, e.status)
                propagate.inject(e.headers)
                raise
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            _set_status_code(span, response.status)
            propagate.inject(response.headers)
            return response

    return middleware
