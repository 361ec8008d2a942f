"""
OmniAsk - API Dependencies

Shared dependencies for FastAPI routes. Long-lived objects are created by the
server lifespan and kept on app.state; tests may place their own there or use
dependency_overrides.
"""

from typing import Optional, Union

import httpx
from fastapi import Request

from ..core.errors import ErrorDetails, ErrorType, InfraError, InvalidRequestError
from ..core.models import Provider
from ..credentials import CredentialStore, LayeredCredentialResolver


def _unavailable(what: str, request_id: str = "") -> InfraError:
    return InfraError(
        ErrorDetails(
            code="service_unavailable",
            message=f"{what} not initialized. Server may be starting up.",
            type=ErrorType.INFRA,
            request_id=request_id,
            retryable=True,
        ),
        status_code=503,
    )


def get_credential_resolver(request: Request) -> LayeredCredentialResolver:
    resolver = getattr(request.app.state, "credential_resolver", None)
    if resolver is None:
        raise _unavailable("Credential resolver", getattr(request.state, "request_id", ""))
    return resolver


def get_credential_store(request: Request) -> CredentialStore:
    store = getattr(get_credential_resolver(request), "store", None)
    if store is None:
        raise _unavailable("Credential store", getattr(request.state, "request_id", ""))
    return store


def get_upstream_client(request: Request) -> Optional[httpx.AsyncClient]:
    """Shared client for provider calls; None lets each adapter own one."""
    return getattr(request.app.state, "http_client", None)


def parse_provider(value: Union[str, Provider], request_id: str = "") -> Provider:
    """Map a provider tag to Provider or raise a 400."""
    if isinstance(value, Provider):
        return value
    try:
        return Provider(value.strip().lower())
    except ValueError:
        raise InvalidRequestError(
            message=f"Unknown provider: {value}",
            param="provider",
            request_id=request_id,
            details={"allowed": [p.value for p in Provider]},
        )
