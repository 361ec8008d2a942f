"""
OmniAsk - OpenTelemetry Distributed Tracing

Features:
- W3C trace context propagation (traceparent header)
- Server spans per request, client spans per upstream provider stream
- Optional OTLP exporter (OTEL_EXPORTER_OTLP_ENDPOINT)
- Console exporter for debugging (OTEL_CONSOLE_EXPORT=true)

Usage:
    from omniask.observability.tracing import trace_provider_call

    with trace_provider_call("claude", "claude-sonnet-4-6") as span:
        span.set_attribute("omniask.chunks", 12)
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.propagate import extract, set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.trace import Span, SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

# Optional OTLP exporter (requires opentelemetry-exporter-otlp)
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    OTLP_AVAILABLE = True
except ImportError:
    OTLP_AVAILABLE = False


SERVICE = "omniask"


@dataclass
class TraceContext:
    """Trace identifiers of a span, hex encoded."""
    trace_id: str
    span_id: str

    @classmethod
    def from_span(cls, span: Span) -> "TraceContext":
        ctx = span.get_span_context()
        return cls(
            trace_id=format(ctx.trace_id, "032x"),
            span_id=format(ctx.span_id, "016x"),
        )


class TracingManager:
    """
    Central tracing manager using OpenTelemetry.

    Singleton pattern for global access.
    """

    _instance: Optional["TracingManager"] = None

    def __init__(
        self,
        service_name: str = SERVICE,
        service_version: str = "1.0.0",
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
    ):
        """
        Initialize tracing.

        Args:
            service_name: Name of the service
            service_version: Version of the service
            otlp_endpoint: OTLP collector endpoint (e.g., http://localhost:4317)
            console_export: Whether to export spans to console (for debugging)
        """
        resource = Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
            "deployment.environment": os.getenv("MODE", "prod"),
        })
        self.provider = TracerProvider(resource=resource)

        if otlp_endpoint and OTLP_AVAILABLE:
            self.provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
        if console_export:
            self.provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        set_global_textmap(TraceContextTextMapPropagator())

        # Spans come from this manager's own provider, so a global provider
        # set earlier by the host process does not swallow them
        self.tracer = self.provider.get_tracer(service_name, service_version)

    @classmethod
    def get_instance(cls) -> "TracingManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def get_tracer(self) -> trace.Tracer:
        return self.tracer

    def extract_context(self, headers: Dict[str, str]) -> Context:
        """Extract W3C trace context from HTTP headers."""
        return extract({k.lower(): v for k, v in headers.items()})

    def start_server_span(
        self,
        name: str,
        headers: Dict[str, str],
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Start a server span continuing the caller's trace, if any."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.SERVER,
            attributes=attributes,
            context=self.extract_context(headers),
        )

    def start_client_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Start a client span for outgoing provider calls."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.CLIENT,
            attributes=attributes,
        )

    def shutdown(self):
        self.provider.shutdown()


_tracing_instance: Optional[TracingManager] = None


def setup_tracing(
    service_name: str = SERVICE,
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracingManager:
    """
    Setup distributed tracing.

    Call once at application startup. Environment variables fill in the
    exporter settings that are not passed explicitly.
    """
    global _tracing_instance

    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    _tracing_instance = TracingManager(
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint,
        console_export=console_export,
    )
    TracingManager._instance = _tracing_instance
    return _tracing_instance


def get_tracing_manager() -> TracingManager:
    global _tracing_instance
    if _tracing_instance is None:
        _tracing_instance = TracingManager.get_instance()
    return _tracing_instance


def get_tracer() -> trace.Tracer:
    return get_tracing_manager().get_tracer()


@contextmanager
def trace_provider_call(provider: str, model: str, operation: str = "stream") -> Iterator[Span]:
    """
    Client span around one upstream provider stream.

    The span is marked as an error when the stream ends with an error record;
    callers signal that through mark_stream_error().
    """
    with get_tracing_manager().start_client_span(
        name=f"{provider}.{operation}",
        attributes={
            "ai.provider": provider,
            "ai.model": model,
            "ai.operation": operation,
        },
    ) as span:
        yield span


def mark_stream_error(span: Span, message: str):
    span.set_status(Status(StatusCode.ERROR, message))
