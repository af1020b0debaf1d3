"""Filesystem blob store."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import quote, urlencode

from registry_api.errors import BackendError

from .base import CHUNK_SIZE, BlobNotFoundError, BlobPayload, BlobStore, InvalidBlobKeyError, validate_key

LOGGER = logging.getLogger(__name__)


class LocalBlobStore(BlobStore):
    """Stores blobs as files under ``<root>/<namespace>/<key>``.

    Keys are checked twice: syntactically by :func:`validate_key` and again
    after resolving symlinks, so nothing is ever written outside the root.
    Signed URLs point back at this service and carry an HMAC over the
    namespace, key and expiry.
    """

    backend = "local"

    def __init__(
        self,
        root: Path,
        *,
        namespace: str,
        base_url: str,
        signing_secret: str,
        default_ttl_seconds: int = 3600,
    ) -> None:
        super().__init__(namespace)
        self._root = Path(root).expanduser().resolve()
        self._base = (self._root / namespace).resolve()
        self._base_url = base_url.rstrip("/")
        self._secret = signing_secret.encode("utf-8")
        self._default_ttl = default_ttl_seconds

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        validate_key(key)
        candidate = (self._base / key).resolve()
        if candidate == self._base or not candidate.is_relative_to(self._base):
            raise InvalidBlobKeyError(f"Blob key escapes storage root: {key!r}")
        return candidate

    async def put(self, key: str, data: BlobPayload) -> None:
        target = self.path_for(key)
        await asyncio.to_thread(self._write_atomic, target, data)

    @staticmethod
    def _write_atomic(target: Path, data: BlobPayload) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".blob-", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    handle.write(data)
                else:
                    data.seek(0)
                    while True:
                        chunk = data.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        handle.write(chunk)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"Blob '{key}' not found.") from exc

    async def iter_chunks(self, key: str) -> AsyncIterator[bytes]:
        path = self.path_for(key)
        try:
            handle = await asyncio.to_thread(path.open, "rb")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"Blob '{key}' not found.") from exc
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self.path_for(key).is_file)

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    def _signature(self, key: str, expires: int) -> str:
        message = f"{self.namespace}/{key}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        validate_key(key)
        expires = int(time.time()) + (ttl_seconds or self._default_ttl)
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self._base_url}/blobs/{self.namespace}/{quote(key)}?{query}"

    def verify_signature(self, key: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)

    async def ensure_ready(self) -> None:
        try:
            await asyncio.to_thread(self._base.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise BackendError(f"Storage root {self._base} is not usable: {exc}") from exc
        if not os.access(self._base, os.W_OK):
            raise BackendError(f"Storage root {self._base} is not writable.")
        LOGGER.debug("Local blob store ready at %s", self._base)

    def describe(self) -> str:
        return f"local:{self._base}"


__all__ = ["LocalBlobStore"]
