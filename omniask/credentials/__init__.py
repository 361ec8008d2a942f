"""
OmniAsk - Credentials Module

Caller-owned key storage and the store-then-environment resolution order.
"""

from .encryption import EncryptionError, KeyEncryptor, OpenSSLEncryptor, encryptor_from_env
from .store import CredentialStore, InMemoryCredentialStore
from .resolver import CredentialResolver, LayeredCredentialResolver

__all__ = [
    "EncryptionError",
    "KeyEncryptor",
    "OpenSSLEncryptor",
    "encryptor_from_env",
    "CredentialStore",
    "InMemoryCredentialStore",
    "CredentialResolver",
    "LayeredCredentialResolver",
]
