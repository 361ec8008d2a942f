"""
OmniAsk - Prometheus Metrics

Metrics collection with the Prometheus client library.

Metrics exposed:
- omniask_requests_total: Counter of HTTP requests by endpoint and status
- omniask_request_duration_seconds: Histogram of HTTP request latency
- omniask_streams_total: Counter of proxied streams by provider and outcome
- omniask_stream_chunks_total: Counter of chunk records sent per provider
- omniask_time_to_first_chunk_seconds: Histogram of latency to first chunk
- omniask_stream_duration_seconds: Histogram of whole-stream duration
- omniask_active_streams: Gauge of streams currently open per provider

Usage:
    from omniask.observability.metrics import get_metrics, metrics_endpoint

    metrics = get_metrics()
    with metrics.track_active_stream("claude"):
        ...
    metrics.record_stream("claude", outcome="done", duration_seconds=3.2)
"""

from typing import Optional

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)


class StreamOutcome:
    """Label values for omniask_streams_total."""
    DONE = "done"
    ERROR = "error"
    UNCONFIGURED = "unconfigured"
    DISCONNECTED = "disconnected"


class MetricsCollector:
    """
    Central metrics collector using Prometheus client.

    One collector per registry; the process-wide instance uses the default
    registry and is shared through get_metrics().
    """

    _instance: Optional["MetricsCollector"] = None
    _initialized_registries: set = set()

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        registry_id = id(registry)
        if registry_id in MetricsCollector._initialized_registries:
            # Prometheus refuses duplicate names in one registry
            if MetricsCollector._instance is not None:
                self._copy_from(MetricsCollector._instance)
                return

        MetricsCollector._initialized_registries.add(registry_id)

        self.info = Info(
            "omniask",
            "OmniAsk stream proxy information",
            registry=registry,
        )
        self.info.info({
            "version": "1.0.0",
            "service": "omniask-stream-proxy",
        })

        self.requests_total = Counter(
            "omniask_requests_total",
            "Total number of HTTP requests",
            labelnames=["endpoint", "method", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "omniask_request_duration_seconds",
            "HTTP request duration in seconds (streams end when the body ends)",
            labelnames=["endpoint", "method"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf")),
            registry=registry,
        )

        self.streams_total = Counter(
            "omniask_streams_total",
            "Total proxied streams by terminal outcome",
            labelnames=["provider", "outcome"],
            registry=registry,
        )

        self.stream_chunks_total = Counter(
            "omniask_stream_chunks_total",
            "Chunk records forwarded to callers",
            labelnames=["provider"],
            registry=registry,
        )

        self.time_to_first_chunk = Histogram(
            "omniask_time_to_first_chunk_seconds",
            "Time from upstream request to first chunk",
            labelnames=["provider"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")),
            registry=registry,
        )

        self.stream_duration = Histogram(
            "omniask_stream_duration_seconds",
            "Duration of proxied streams",
            labelnames=["provider", "outcome"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
            registry=registry,
        )

        self.active_streams = Gauge(
            "omniask_active_streams",
            "Number of streams currently open",
            labelnames=["provider"],
            registry=registry,
        )

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None
        cls._initialized_registries.clear()

    def _copy_from(self, other: "MetricsCollector"):
        self.info = other.info
        self.requests_total = other.requests_total
        self.request_duration = other.request_duration
        self.streams_total = other.streams_total
        self.stream_chunks_total = other.stream_chunks_total
        self.time_to_first_chunk = other.time_to_first_chunk
        self.stream_duration = other.stream_duration
        self.active_streams = other.active_streams

    def record_request(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_seconds: float,
    ):
        """Record a completed HTTP request."""
        self.requests_total.labels(
            endpoint=endpoint,
            method=method,
            status=str(status_code),
        ).inc()
        self.request_duration.labels(
            endpoint=endpoint,
            method=method,
        ).observe(duration_seconds)

    def record_stream(
        self,
        provider: str,
        outcome: str,
        duration_seconds: float = 0.0,
    ):
        """Record a stream that reached its terminal record."""
        self.streams_total.labels(provider=provider, outcome=outcome).inc()
        self.stream_duration.labels(provider=provider, outcome=outcome).observe(duration_seconds)

    def record_chunk(self, provider: str):
        self.stream_chunks_total.labels(provider=provider).inc()

    def record_time_to_first_chunk(self, provider: str, seconds: float):
        self.time_to_first_chunk.labels(provider=provider).observe(seconds)

    def track_active_stream(self, provider: str) -> "ActiveStreamTracker":
        """Context manager that counts a stream as open while inside it."""
        return ActiveStreamTracker(self, provider)


class ActiveStreamTracker:
    """Context manager for the active streams gauge."""

    def __init__(self, collector: MetricsCollector, provider: str):
        self.collector = collector
        self.provider = provider

    def __enter__(self):
        self.collector.active_streams.labels(provider=self.provider).inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_streams.labels(provider=self.provider).dec()


_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times - returns the existing instance for the
    same registry.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    MetricsCollector._instance = _metrics_instance
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector, creating the default one on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = MetricsCollector.get_instance()
    return _metrics_instance


def metrics_endpoint() -> Response:
    """Prometheus text exposition of the default registry."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )
