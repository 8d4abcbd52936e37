"""Transforms applied to tenant private key material before persistence."""

import base64
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class KeyDecryptionError(Exception):
    """Stored key material could not be deciphered."""


class KeyCipher(Protocol):
    """Reversible transform over the serialized key blob."""

    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, data: bytes) -> bytes: ...


class IdentityKeyCipher:
    """Stores key material as-is. Default when no secret is configured."""

    def encrypt(self, data: bytes) -> bytes:
        return data

    def decrypt(self, data: bytes) -> bytes:
        return data


class FernetKeyCipher:
    """Fernet encryption with a key derived from a configured secret.

    The Fernet key is derived with PBKDF2-SHA256 over the secret, so any
    string works as ``key_encryption_secret``. Changing the secret makes
    previously stored keys undecryptable.
    """

    SALT = b"uma-gateway-tenant-keys"
    ITERATIONS = 100_000

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("key encryption secret must not be empty")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.SALT,
            iterations=self.ITERATIONS,
        )
        derived = base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))
        self._fernet = Fernet(derived)

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, data: bytes) -> bytes:
        try:
            return self._fernet.decrypt(data)
        except InvalidToken as exc:
            raise KeyDecryptionError("Failed to decrypt tenant keys") from exc


def build_key_cipher(secret: str | None) -> KeyCipher:
    """Fernet cipher when a secret is configured, identity otherwise."""
    if secret:
        return FernetKeyCipher(secret)
    return IdentityKeyCipher()
