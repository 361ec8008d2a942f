"""
OmniAsk - Credential Store

Storage interface for caller-owned provider keys, plus the in-memory
implementation used in local mode and tests. Durable encrypted storage is an
external collaborator that implements the same protocol.
"""

from typing import Dict, Optional, Protocol, Set, Tuple

from ..core.models import Provider
from .encryption import KeyEncryptor


class CredentialStore(Protocol):
    """Caller-scoped provider key storage."""

    async def get(self, caller_id: str, provider: Provider) -> Optional[str]:
        ...

    async def put(self, caller_id: str, provider: Provider, secret: str) -> None:
        ...

    async def delete(self, caller_id: str, provider: Provider) -> bool:
        ...

    async def configured_providers(self, caller_id: str) -> Set[Provider]:
        ...


class InMemoryCredentialStore:
    """
    Process-local credential store.

    When an encryptor is given, only ciphertext is held in memory and keys
    are decrypted on read.
    """

    def __init__(self, encryptor: Optional[KeyEncryptor] = None):
        self._encryptor = encryptor
        self._secrets: Dict[Tuple[str, Provider], str] = {}

    async def get(self, caller_id: str, provider: Provider) -> Optional[str]:
        stored = self._secrets.get((caller_id, provider))
        if stored is None:
            return None
        if self._encryptor is not None:
            return self._encryptor.decrypt(stored)
        return stored

    async def put(self, caller_id: str, provider: Provider, secret: str) -> None:
        if self._encryptor is not None:
            secret = self._encryptor.encrypt(secret)
        self._secrets[(caller_id, provider)] = secret

    async def delete(self, caller_id: str, provider: Provider) -> bool:
        return self._secrets.pop((caller_id, provider), None) is not None

    async def configured_providers(self, caller_id: str) -> Set[Provider]:
        return {provider for (owner, provider) in self._secrets if owner == caller_id}
