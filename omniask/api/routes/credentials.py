"""
OmniAsk - Provider Credentials API

Lets a caller see which providers can serve them and manage their own keys.
Keys are write-only: no endpoint ever returns a stored value.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...auth.middleware import AuthContext, get_caller_context
from ...core.config import get_provider_settings
from ...core.errors import ErrorDetails, ErrorType, InfraError, MissingRequiredFieldError
from ...core.models import PROVIDERS
from ...credentials import CredentialStore, EncryptionError, LayeredCredentialResolver
from ...observability.logging import get_logger
from ..dependencies import get_credential_resolver, get_credential_store, parse_provider
from ..models import CredentialInput, ProviderListResponse, ProviderStatus


router = APIRouter(prefix="/v1", tags=["credentials"])
logger = get_logger(__name__)


@router.get("/providers", response_model=ProviderListResponse)
async def list_providers(
    auth: AuthContext = Depends(get_caller_context),
    resolver: LayeredCredentialResolver = Depends(get_credential_resolver),
):
    """List every provider with whether a key is available for the caller."""
    owned = set()
    if resolver.store is not None:
        owned = await resolver.store.configured_providers(auth.caller_id)

    data = []
    for provider in PROVIDERS:
        settings = get_provider_settings(provider)
        caller_key = provider in owned
        shared_key = resolver.fallback_available(provider)
        data.append(
            ProviderStatus(
                provider=provider.value,
                label=settings.label,
                model=settings.model,
                caller_key=caller_key,
                shared_key=shared_key,
                configured=caller_key or shared_key,
            )
        )

    return JSONResponse(
        content=ProviderListResponse(data=data).model_dump(),
        headers={"X-Request-Id": auth.request_id},
    )


@router.put("/credentials/{provider}")
async def store_credential(
    provider: str,
    body: CredentialInput,
    auth: AuthContext = Depends(get_caller_context),
    store: CredentialStore = Depends(get_credential_store),
):
    """Save or replace the caller's key for one provider."""
    target = parse_provider(provider, request_id=auth.request_id)
    secret = body.api_key.strip()
    if not secret:
        raise MissingRequiredFieldError("apiKey", request_id=auth.request_id)

    try:
        await store.put(auth.caller_id, target, secret)
    except EncryptionError:
        logger.error("Failed to encrypt provider key", provider=target.value)
        raise InfraError(
            ErrorDetails(
                code="credential_store_unavailable",
                message="Could not store the key. Please try again later.",
                type=ErrorType.INFRA,
                provider=target.value,
                request_id=auth.request_id,
                retryable=True,
            ),
            status_code=503,
        )

    logger.info("Provider key stored", provider=target.value)
    return JSONResponse(
        content={"provider": target.value, "stored": True},
        headers={"X-Request-Id": auth.request_id},
    )


@router.delete("/credentials/{provider}")
async def delete_credential(
    provider: str,
    auth: AuthContext = Depends(get_caller_context),
    store: CredentialStore = Depends(get_credential_store),
):
    """Remove the caller's key for one provider."""
    target = parse_provider(provider, request_id=auth.request_id)
    deleted = await store.delete(auth.caller_id, target)

    if deleted:
        logger.info("Provider key deleted", provider=target.value)
    return JSONResponse(
        content={"provider": target.value, "deleted": deleted},
        headers={"X-Request-Id": auth.request_id},
    )
