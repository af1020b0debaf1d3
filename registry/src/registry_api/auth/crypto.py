"""Encryption for backend credentials kept in the database."""

from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from registry_api.errors import BackendError

_NONCE_SIZE = 12
_TAG_SIZE = 16
_INFO = b"registry-storage-credentials"


class CredentialCipher:
    """AES-GCM with a key derived once from the configured key material.

    Ciphertext layout is ``nonce | ciphertext+tag``, base64 encoded.
    """

    def __init__(self, key_material: str) -> None:
        key = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=_INFO).derive(
            key_material.encode("utf-8")
        )
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(_NONCE_SIZE)
        combined = nonce + self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(combined).decode("ascii")

    def decrypt(self, token: str) -> str:
        combined = base64.b64decode(token.encode("ascii"))
        if len(combined) < _NONCE_SIZE + _TAG_SIZE:
            raise BackendError("Stored credential is truncated.")
        try:
            plaintext = self._aead.decrypt(combined[:_NONCE_SIZE], combined[_NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise BackendError(
                "Stored credential cannot be decrypted; check REGISTRY_ENCRYPTION_KEY."
            ) from exc
        return plaintext.decode("utf-8")
