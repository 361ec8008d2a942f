"""
OmniAsk - Credential Resolution

Decides which provider key a request runs with: the caller's own stored key
first, then the shared key from the environment, otherwise nothing.

Resolved keys are handed to a wire adapter and dropped. They are never
logged; log calls here carry only the caller id and provider tag.
"""

import os
from typing import Mapping, Optional, Protocol

from ..core.config import get_provider_settings
from ..core.models import Provider
from ..observability.logging import get_logger
from .store import CredentialStore


logger = get_logger(__name__)


class CredentialResolver(Protocol):
    """Resolves (caller, provider) to an opaque key or None."""

    async def resolve(self, caller_id: str, provider: Provider) -> Optional[str]:
        ...


class LayeredCredentialResolver:
    """
    Caller store first, environment fallback second.

    A failing store is treated like a missing entry so the shared key can
    still serve the request.
    """

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.store = store
        self._environ = environ

    def _env(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def fallback_available(self, provider: Provider) -> bool:
        return bool(self._env().get(get_provider_settings(provider).env_key))

    async def resolve(self, caller_id: str, provider: Provider) -> Optional[str]:
        if self.store is not None:
            try:
                secret = await self.store.get(caller_id, provider)
            except Exception as e:
                logger.warning(
                    "Credential store lookup failed, using fallback",
                    caller_id=caller_id,
                    provider=provider.value,
                    error_type=type(e).__name__,
                )
                secret = None
            if secret:
                return secret

        secret = self._env().get(get_provider_settings(provider).env_key)
        if secret:
            return secret

        logger.info(
            "No credential configured",
            caller_id=caller_id,
            provider=provider.value,
        )
        return None
