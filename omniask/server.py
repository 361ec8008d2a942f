"""
OmniAsk - Main API Server

FastAPI server hosting the stream proxy: one request asks one provider and
receives its answer as a canonical SSE stream.

Supports three modes:
- MODE=local: Development mode, stub adapters and wildcard CORS allowed
- MODE=test: Deterministic test mode
- MODE=prod: Fail-closed production settings (default)

Features:
- Provider-neutral stream protocol over four upstream dialects
- Caller-owned keys with a shared environment fallback
- Full observability (metrics, tracing, logging)
"""

import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import credentials_router, stream_router
from .auth.config import (
    get_auth_mode,
    get_cors_allowed_origins,
    is_local_mode,
    validate_security_config,
)
from .core.config import get_stream_idle_timeout, get_upstream_timeout, use_stub_adapters
from .core.errors import OmniAskException
from .core.models import PROVIDERS
from .credentials import InMemoryCredentialStore, LayeredCredentialResolver, encryptor_from_env
from .observability import (
    ObservabilityMiddleware,
    get_logger,
    metrics_endpoint,
    setup_observability,
)
from .observability.middleware import new_request_id


# ============================================================
# Lifespan management
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    observability = setup_observability(
        service_name="omniask",
        service_version=__version__,
        otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
    validate_security_config()

    logger = get_logger("omniask.server")
    mode = get_auth_mode()
    logger.info(f"OmniAsk starting in {mode.value.upper()} mode")

    owns_client = False
    if getattr(app.state, "http_client", None) is None:
        app.state.http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(get_upstream_timeout(), read=get_stream_idle_timeout()),
        )
        owns_client = True

    if getattr(app.state, "credential_resolver", None) is None:
        app.state.credential_resolver = LayeredCredentialResolver(
            store=InMemoryCredentialStore(encryptor=encryptor_from_env()),
        )

    resolver = app.state.credential_resolver
    shared = [p.value for p in PROVIDERS if resolver.fallback_available(p)]
    if not shared:
        logger.warning("No shared provider keys configured; callers must add their own")

    logger.info(
        "OmniAsk server ready",
        mode=mode.value,
        shared_providers=shared,
        stub_adapters=use_stub_adapters(),
    )

    yield

    if owns_client:
        await app.state.http_client.aclose()
        app.state.http_client = None

    if "tracing" in observability:
        observability["tracing"].shutdown()

    logger.info("OmniAsk server stopped")


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title="OmniAsk",
    description="Ask several AI providers at once and stream every answer",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# First added = outermost
app.add_middleware(ObservabilityMiddleware, service_name="omniask")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allowed_origins(),
    allow_credentials=True,
    allow_methods=["POST", "GET", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "X-Trace-Id"],
)

app.include_router(stream_router)
app.include_router(credentials_router)


# ============================================================
# Core Endpoints (not in routes)
# ============================================================

@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    resolver = getattr(request.app.state, "credential_resolver", None)

    return {
        "status": "healthy",
        "version": __version__,
        "mode": get_auth_mode().value,
        "providers": {
            provider.value: {
                "shared_key": bool(resolver and resolver.fallback_available(provider)),
            }
            for provider in PROVIDERS
        },
    }


@app.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Exposes all collected metrics in Prometheus text format.
    """
    return metrics_endpoint()


@app.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    Returns 200 once the credential resolver is available. Provider reachability
    is not probed: each stream reports its own upstream failures.
    """
    if getattr(request.app.state, "credential_resolver", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "Credential resolver not initialized"},
        )
    return {"status": "ready"}


# ============================================================
# Error handlers
# ============================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or new_request_id()


@app.exception_handler(OmniAskException)
async def omniask_exception_handler(request: Request, exc: OmniAskException):
    """Handle all canonical errors raised before a stream starts."""
    request_id = exc.error.request_id or _request_id(request)
    exc.error.request_id = request_id

    headers = {
        "X-Request-Id": request_id,
        "X-Error-Type": exc.error.type.value,
        "X-Error-Code": exc.error.code,
    }
    if exc.error.provider:
        headers["X-Provider"] = exc.error.provider

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.error.to_dict(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are semantic errors, reported with a 400."""
    request_id = _request_id(request)
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part != "body"]

    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "invalid_request",
                "message": first.get("msg", "Invalid request body"),
                "type": "semantic_error",
                "param": ".".join(location) or None,
                "request_id": request_id,
                "retryable": False,
            }
        },
        headers={"X-Request-Id": request_id},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle standard HTTP exceptions."""
    request_id = _request_id(request)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": "http_error",
                "message": str(exc.detail),
                "type": "semantic_error" if exc.status_code < 500 else "infra_error",
                "request_id": request_id,
                "retryable": exc.status_code >= 500,
            }
        },
        headers={"X-Request-Id": request_id},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = _request_id(request)
    get_logger("omniask.server").error(
        "Unhandled exception",
        error_type=type(exc).__name__,
        request_id=request_id,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred",
                "type": "infra_error",
                "request_id": request_id,
                "retryable": True,
            }
        },
        headers={"X-Request-Id": request_id},
    )


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "omniask.server:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=is_local_mode(),
    )
