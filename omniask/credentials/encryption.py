"""Encryption at rest for caller-owned provider keys."""

from __future__ import annotations

import base64
import os
import subprocess
from abc import ABC, abstractmethod
from typing import Optional


ENCRYPTION_SECRET_ENV = "API_KEY_ENCRYPTION_SECRET"


class EncryptionError(ValueError):
    """Raised when a stored key cannot be encrypted or decrypted."""


class KeyEncryptor(ABC):
    """Interface for pluggable secret-at-rest encryption."""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext and return ciphertext."""

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext and return plaintext."""


class OpenSSLEncryptor(KeyEncryptor):
    """
    AES-256-CBC with PBKDF2 key derivation via the openssl binary.

    The passphrase reaches openssl through its environment, not argv, so it
    does not show up in process listings.
    """

    PREFIX = "enc:v1:"
    ITERATIONS = 200000

    def __init__(self, passphrase: str):
        if not passphrase:
            raise EncryptionError(f"{ENCRYPTION_SECRET_ENV} must be set to store provider keys")
        self._passphrase = passphrase

    def _openssl(self, payload: bytes, decrypt: bool) -> bytes:
        args = ["openssl", "enc", "-aes-256-cbc", "-pbkdf2", "-iter", str(self.ITERATIONS)]
        if decrypt:
            args.append("-d")
        args += ["-pass", "env:OMNIASK_OPENSSL_PASS"]

        env = {"PATH": os.environ.get("PATH", ""), "OMNIASK_OPENSSL_PASS": self._passphrase}
        try:
            proc = subprocess.run(
                args,
                input=payload,
                capture_output=True,
                env=env,
                check=False,
            )
        except FileNotFoundError as exc:
            raise EncryptionError("openssl binary not found") from exc

        if proc.returncode != 0:
            action = "decrypt" if decrypt else "encrypt"
            raise EncryptionError(f"Failed to {action} provider key")
        return proc.stdout

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise EncryptionError("Cannot encrypt an empty key")
        sealed = self._openssl(plaintext.encode("utf-8"), decrypt=False)
        return self.PREFIX + base64.urlsafe_b64encode(sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext.startswith(self.PREFIX):
            raise EncryptionError("Unsupported ciphertext format")
        sealed = base64.urlsafe_b64decode(ciphertext[len(self.PREFIX):].encode("ascii"))
        return self._openssl(sealed, decrypt=True).decode("utf-8")


def encryptor_from_env() -> Optional[KeyEncryptor]:
    """
    Build the default encryptor from API_KEY_ENCRYPTION_SECRET.

    Returns None when the secret is unset; stored keys are then held in
    plaintext, which is only acceptable for process-local storage.
    """
    secret = os.getenv(ENCRYPTION_SECRET_ENV, "")
    if not secret:
        return None
    return OpenSSLEncryptor(secret)
