"""Blob store contract and key rules shared by every backend."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import AsyncIterator, BinaryIO, Union

from registry_api.errors import NotFoundError, ValidationError

CHUNK_SIZE = 1024 * 1024

NAMESPACE_PUBLISHED = "published"
NAMESPACE_CACHED = "cached"

BlobPayload = Union[bytes, BinaryIO]


class BlobNotFoundError(NotFoundError):
    code = "blob_not_found"


class InvalidBlobKeyError(ValidationError):
    code = "invalid_blob_key"


def validate_key(key: str) -> str:
    """Reject keys that could name anything outside the store's root."""

    if not key or "\x00" in key or "\\" in key:
        raise InvalidBlobKeyError(f"Invalid blob key: {key!r}")
    if key.startswith("/") or ":" in key.split("/", 1)[0]:
        raise InvalidBlobKeyError(f"Blob keys must be relative: {key!r}")
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidBlobKeyError(f"Invalid path segment in blob key: {key!r}")
    return key


def archive_key(name: str, version: str, sha256: str) -> str:
    return validate_key(f"packages/{name}/{version}/{sha256}.tar.gz")


def staged_upload_key(session_id: str, attempt_id: str) -> str:
    """Each upload attempt stages under its own key so a losing attempt cleans up only itself."""

    return validate_key(f"uploads/{session_id}/{attempt_id}.tar.gz")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_stream(handle: BinaryIO) -> tuple[str, int]:
    """Digest and size of a seekable file, read in bounded chunks; rewinds afterwards."""

    digest = hashlib.sha256()
    size = 0
    handle.seek(0)
    while True:
        chunk = handle.read(CHUNK_SIZE)
        if not chunk:
            break
        digest.update(chunk)
        size += len(chunk)
    handle.seek(0)
    return digest.hexdigest(), size


class BlobStore(ABC):
    """Byte storage addressed by application-chosen keys.

    Each instance is bound to one namespace (``published`` or ``cached``);
    two instances over the same substrate never see each other's keys.
    """

    backend = "abstract"

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace

    @abstractmethod
    async def put(self, key: str, data: BlobPayload) -> None:
        """Store ``data`` under ``key``; readers never observe a partial object."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes at ``key`` or raise :class:`BlobNotFoundError`."""

    @abstractmethod
    def iter_chunks(self, key: str) -> AsyncIterator[bytes]:
        """Stream the bytes at ``key`` in bounded chunks."""

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        """Credential-free, time-limited download URL for ``key``."""

    @abstractmethod
    async def ensure_ready(self) -> None:
        """Fail fast with ``BackendError`` when the root or bucket is unusable."""

    async def digest(self, key: str) -> str:
        digest = hashlib.sha256()
        async for chunk in self.iter_chunks(key):
            digest.update(chunk)
        return digest.hexdigest()

    def describe(self) -> str:
        return f"{self.backend}:{self.namespace}"


__all__ = [
    "BlobNotFoundError",
    "BlobPayload",
    "BlobStore",
    "CHUNK_SIZE",
    "InvalidBlobKeyError",
    "NAMESPACE_CACHED",
    "NAMESPACE_PUBLISHED",
    "archive_key",
    "hash_stream",
    "sha256_hex",
    "staged_upload_key",
    "validate_key",
]
