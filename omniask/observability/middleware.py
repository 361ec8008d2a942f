"""
OmniAsk - Observability Middleware

One middleware that opens the server span, binds the log context and records
request metrics.

For streaming responses the recorded duration covers the time until headers
are sent; per-stream timings are recorded by the stream route itself.

Usage:
    setup_observability(service_name="omniask")
    app.add_middleware(ObservabilityMiddleware)
"""

import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request, Response
from opentelemetry.trace import Status, StatusCode
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from .logging import LogContext, get_logger, setup_logging
from .metrics import get_metrics, setup_metrics
from .tracing import TraceContext, get_tracing_manager, setup_tracing


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:24]}"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Unified observability middleware.

    Combines:
    - Prometheus request metrics
    - OpenTelemetry server span with W3C context extraction
    - Structured logging context (request_id, trace_id, span_id)
    """

    EXCLUDE_PATHS = {"/health", "/ready", "/metrics", "/openapi.json", "/docs", "/redoc"}

    def __init__(
        self,
        app: ASGIApp,
        service_name: str = "omniask",
        exclude_paths: Optional[set] = None,
    ):
        super().__init__(app)
        self.service_name = service_name
        self.exclude_paths = exclude_paths or self.EXCLUDE_PATHS
        self.logger = get_logger("omniask.observability.middleware")

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        headers = dict(request.headers)
        request_id = headers.get("x-request-id") or new_request_id()
        started = time.perf_counter()

        with get_tracing_manager().start_server_span(
            name=f"{request.method} {request.url.path}",
            headers=headers,
            attributes={
                "http.method": request.method,
                "http.route": request.url.path,
                "omniask.request_id": request_id,
            },
        ) as span:
            trace_ctx = TraceContext.from_span(span)
            self._bind(request, request_id, trace_ctx)
            try:
                response = await call_next(request)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, type(e).__name__))
                self._record(request, 500, time.perf_counter() - started, error_type=type(e).__name__)
                LogContext.clear()
                raise

            provider = response.headers.get("x-provider")
            if provider:
                span.set_attribute("ai.provider", provider)
            span.set_attribute("http.status_code", response.status_code)
            if response.status_code >= 500:
                span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))

            self._record(request, response.status_code, time.perf_counter() - started)
            LogContext.clear()

            response.headers["X-Request-Id"] = request_id
            response.headers["X-Trace-Id"] = trace_ctx.trace_id
            return response

    def _bind(self, request: Request, request_id: str, trace_ctx: TraceContext):
        """Expose correlation ids to route handlers and every log line."""
        log_ctx = LogContext(
            request_id=request_id,
            trace_id=trace_ctx.trace_id,
            span_id=trace_ctx.span_id,
            endpoint=request.url.path,
        )
        LogContext.set_current(log_ctx)
        request.state.request_id = request_id
        request.state.trace_id = trace_ctx.trace_id
        request.state.log_context = log_ctx

    def _record(
        self,
        request: Request,
        status_code: int,
        duration_seconds: float,
        error_type: Optional[str] = None,
    ):
        get_metrics().record_request(
            endpoint=request.url.path,
            method=request.method,
            status_code=status_code,
            duration_seconds=duration_seconds,
        )

        fields = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_seconds * 1000, 2),
        }
        if error_type is not None:
            self.logger.exception("Request failed with exception", error_type=error_type, **fields)
        elif status_code >= 500:
            self.logger.error("Request completed with server error", **fields)
        elif status_code >= 400:
            self.logger.warning("Request completed with client error", **fields)
        else:
            self.logger.info("Request completed", **fields)


_observability_initialized = False


def setup_observability(
    service_name: str = "omniask",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    log_level: str = "INFO",
    metrics_enabled: bool = True,
    tracing_enabled: bool = True,
) -> Dict[str, Any]:
    """
    Setup logging, metrics and tracing.

    Call once at application startup. Safe to call multiple times.

    Returns:
        Dict with the initialized components
    """
    global _observability_initialized

    result: Dict[str, Any] = {}

    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    setup_logging(
        level=os.getenv("LOG_LEVEL", log_level),
        json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
    )
    result["logging"] = True

    if metrics_enabled:
        result["metrics"] = setup_metrics()

    if tracing_enabled:
        result["tracing"] = setup_tracing(
            service_name=service_name,
            service_version=service_version,
            otlp_endpoint=otlp_endpoint,
        )

    if not _observability_initialized:
        get_logger("omniask.observability").info(
            "Observability initialized",
            service_name=service_name,
            service_version=service_version,
            metrics_enabled=metrics_enabled,
            tracing_enabled=tracing_enabled,
            otlp_endpoint=otlp_endpoint or "none",
        )
        _observability_initialized = True

    return result
