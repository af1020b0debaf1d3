"""S3-compatible blob store (AWS, MinIO, R2, ...)."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
from typing import Any, AsyncIterator

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from registry_api.errors import BackendError

from .base import CHUNK_SIZE, BlobNotFoundError, BlobPayload, BlobStore, validate_key

LOGGER = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")


def _checksum(data: BlobPayload) -> tuple[str, str]:
    """Base64 digest for ``ChecksumSHA256`` plus the hex digest kept in metadata."""

    digest = hashlib.sha256()
    if isinstance(data, (bytes, bytearray, memoryview)):
        digest.update(data)
    else:
        data.seek(0)
        while True:
            chunk = data.read(CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
        data.seek(0)
    raw = digest.digest()
    return base64.b64encode(raw).decode("ascii"), raw.hex()


class S3BlobStore(BlobStore):
    """Objects live at ``<prefix>/<namespace>/<key>`` in one bucket.

    Writes send a SHA-256 checksum so the backend rejects corrupted uploads,
    and the hex digest is kept as object metadata.
    """

    backend = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        namespace: str,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
        force_path_style: bool = True,
        default_ttl_seconds: int = 3600,
        prefix: str = "",
        client: Any | None = None,
    ) -> None:
        super().__init__(namespace)
        if not bucket:
            raise BackendError("S3 storage requires a bucket name.")
        self.bucket = bucket
        self._default_ttl = default_ttl_seconds
        self._prefix = "/".join(part for part in (prefix.strip("/"), namespace) if part)
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                config=BotoConfig(
                    s3={"addressing_style": "path" if force_path_style else "virtual"},
                    signature_version="s3v4",
                ),
            )
        self.client = client

    def object_key(self, key: str) -> str:
        return f"{self._prefix}/{validate_key(key)}"

    async def put(self, key: str, data: BlobPayload) -> None:
        object_key = self.object_key(key)
        checksum, hex_digest = await asyncio.to_thread(_checksum, data)
        body = bytes(data) if isinstance(data, (bytearray, memoryview)) else data
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=object_key,
                Body=body,
                ContentType="application/octet-stream",
                ChecksumSHA256=checksum,
                Metadata={"sha256": hex_digest},
            )
        except (ClientError, BotoCoreError) as exc:
            raise BackendError(f"Failed to write s3://{self.bucket}/{object_key}: {exc}") from exc

    async def _get_object(self, key: str) -> dict[str, Any]:
        object_key = self.object_key(key)
        try:
            return await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=object_key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise BlobNotFoundError(f"Blob '{key}' not found.") from exc
            raise BackendError(f"Failed to read s3://{self.bucket}/{object_key}: {exc}") from exc
        except BotoCoreError as exc:
            raise BackendError(f"Failed to read s3://{self.bucket}/{object_key}: {exc}") from exc

    async def get(self, key: str) -> bytes:
        response = await self._get_object(key)
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()

    async def iter_chunks(self, key: str) -> AsyncIterator[bytes]:
        response = await self._get_object(key)
        body = response["Body"]
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def exists(self, key: str) -> bool:
        object_key = self.object_key(key)
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=object_key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise BackendError(f"Failed to stat s3://{self.bucket}/{object_key}: {exc}") from exc
        except BotoCoreError as exc:
            raise BackendError(f"Failed to stat s3://{self.bucket}/{object_key}: {exc}") from exc
        return True

    async def delete(self, key: str) -> None:
        object_key = self.object_key(key)
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=object_key)
        except (ClientError, BotoCoreError) as exc:
            raise BackendError(f"Failed to delete s3://{self.bucket}/{object_key}: {exc}") from exc

    async def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        return await asyncio.to_thread(
            self.client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": self.object_key(key)},
            ExpiresIn=ttl_seconds or self._default_ttl,
        )

    async def ensure_ready(self) -> None:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            raise BackendError(f"S3 bucket '{self.bucket}' is not reachable: {exc}") from exc
        LOGGER.debug("S3 blob store ready at s3://%s/%s", self.bucket, self._prefix)

    def describe(self) -> str:
        return f"s3://{self.bucket}/{self._prefix}"


__all__ = ["S3BlobStore"]
