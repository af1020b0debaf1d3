"""Blob storage backends."""

from .base import (
    NAMESPACE_CACHED,
    NAMESPACE_PUBLISHED,
    BlobNotFoundError,
    BlobStore,
    InvalidBlobKeyError,
    archive_key,
    staged_upload_key,
    validate_key,
)
from .factory import BlobStores, build_blob_stores, settings_storage_config
from .local import LocalBlobStore
from .s3 import S3BlobStore

__all__ = [
    "BlobNotFoundError",
    "BlobStore",
    "BlobStores",
    "InvalidBlobKeyError",
    "LocalBlobStore",
    "NAMESPACE_CACHED",
    "NAMESPACE_PUBLISHED",
    "S3BlobStore",
    "archive_key",
    "build_blob_stores",
    "settings_storage_config",
    "staged_upload_key",
    "validate_key",
]
