"""
OmniAsk - API Layer

HTTP surface of the stream proxy.

Provides:
- POST /v1/stream for a single provider's streamed answer
- Provider status listing
- Caller key management
"""

from .models import (
    CredentialInput,
    ProviderListResponse,
    ProviderStatus,
    RoleEnum,
    StreamRequest,
    TurnInput,
)
from .dependencies import (
    get_credential_resolver,
    get_credential_store,
    get_upstream_client,
    parse_provider,
)
from .routes import (
    credentials_router,
    stream_router,
)


__all__ = [
    # Routers
    "stream_router",
    "credentials_router",
    # Models
    "StreamRequest",
    "TurnInput",
    "RoleEnum",
    "CredentialInput",
    "ProviderStatus",
    "ProviderListResponse",
    # Dependencies
    "get_credential_resolver",
    "get_credential_store",
    "get_upstream_client",
    "parse_provider",
]
