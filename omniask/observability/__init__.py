"""
OmniAsk - Observability Module

- Prometheus metrics (requests, streams, time to first chunk)
- OpenTelemetry distributed tracing
- Structured JSON logging with context injection

Usage:
    from omniask.observability import setup_observability, get_logger, get_metrics

    setup_observability(service_name="omniask")

    logger = get_logger(__name__)
    metrics = get_metrics()
"""

from .metrics import (
    MetricsCollector,
    StreamOutcome,
    get_metrics,
    setup_metrics,
    metrics_endpoint,
)
from .tracing import (
    TracingManager,
    get_tracer,
    get_tracing_manager,
    setup_tracing,
    trace_provider_call,
)
from .logging import (
    StructuredLogger,
    TimedOperation,
    get_logger,
    setup_logging,
    LogContext,
)
from .middleware import (
    ObservabilityMiddleware,
    setup_observability,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "StreamOutcome",
    "get_metrics",
    "setup_metrics",
    "metrics_endpoint",
    # Tracing
    "TracingManager",
    "get_tracer",
    "get_tracing_manager",
    "setup_tracing",
    "trace_provider_call",
    # Logging
    "StructuredLogger",
    "TimedOperation",
    "get_logger",
    "setup_logging",
    "LogContext",
    # Combined
    "ObservabilityMiddleware",
    "setup_observability",
]
