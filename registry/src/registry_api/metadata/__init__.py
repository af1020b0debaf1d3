"""Catalog store: packages, versions, tokens, sessions."""

from .engines import PostgresMetadataStore, SqliteMetadataStore, create_metadata_store
from .store import STORAGE_VARIANT_ACTIVE, STORAGE_VARIANT_PENDING, MetadataStore, PackageClaim

__all__ = [
    "MetadataStore",
    "PackageClaim",
    "PostgresMetadataStore",
    "STORAGE_VARIANT_ACTIVE",
    "STORAGE_VARIANT_PENDING",
    "SqliteMetadataStore",
    "create_metadata_store",
]
