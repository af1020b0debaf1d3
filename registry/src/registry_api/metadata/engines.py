"""Engine-specific metadata stores."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from registry_api.config.settings import RegistrySettings
from registry_api.db.session import dialect_name

from .store import MetadataStore

SQLITE_BUSY_TIMEOUT_SECONDS = 30.0


class SqliteMetadataStore(MetadataStore):
    """SQLite file database.

    Every transaction opens with ``BEGIN IMMEDIATE`` so writers queue on the
    database lock (bounded by the busy timeout) instead of failing a
    read-then-write upgrade; constraint violations then surface as ordinary
    ``IntegrityError``s.
    """

    dialect = "sqlite"

    def _create_engine(self, async_url: str) -> AsyncEngine:
        engine = create_async_engine(
            async_url,
            echo=False,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(connection) -> None:
            connection.exec_driver_sql("BEGIN IMMEDIATE")

        return engine


class PostgresMetadataStore(MetadataStore):
    """PostgreSQL via asyncpg; concurrent unique inserts block and then fail in the engine."""

    dialect = "postgresql"

    def _create_engine(self, async_url: str) -> AsyncEngine:
        return create_async_engine(
            async_url,
            echo=False,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=10,
        )


def create_metadata_store(settings: RegistrySettings) -> MetadataStore:
    backend = dialect_name(settings.database_url)
    if backend == "sqlite":
        return SqliteMetadataStore(settings)
    if backend == "postgresql":
        return PostgresMetadataStore(settings)
    raise ValueError(f"Unsupported database backend '{backend}'")
