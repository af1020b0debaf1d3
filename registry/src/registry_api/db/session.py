"""Database URL, engine and session helpers."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from registry_api.errors import BackendError

LOGGER = logging.getLogger(__name__)


def resolve_database_url(raw_url: str) -> str:
    """Normalise a configured URL; SQLite paths become absolute and get a parent dir."""

    url: URL = make_url(raw_url)
    if url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
        db_path = Path(url.database).expanduser()
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = url.set(database=str(db_path))
    return url.render_as_string(hide_password=False)


def resolve_sync_database_url(raw_url: str) -> str:
    url = make_url(resolve_database_url(raw_url))
    driver_map = {
        "sqlite+aiosqlite": "sqlite",
        "postgresql+asyncpg": "postgresql",
    }
    sync_driver = driver_map.get(url.drivername, url.drivername)
    return url.set(drivername=sync_driver).render_as_string(hide_password=False)


def resolve_async_database_url(sync_url: str) -> str:
    url = make_url(sync_url)
    driver = url.drivername
    driver_map = {
        "sqlite": "sqlite+aiosqlite",
        "sqlite+pysqlite": "sqlite+aiosqlite",
        "postgresql": "postgresql+asyncpg",
        "postgresql+psycopg2": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
    }
    async_driver = driver_map.get(driver, driver)
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def dialect_name(raw_url: str) -> str:
    return make_url(raw_url).get_backend_name()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def wait_for_database(
    engine: AsyncEngine,
    *,
    attempts: int,
    delay_seconds: float,
) -> None:
    """Block until the engine answers ``SELECT 1``; give up after ``attempts`` tries."""

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            async with engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            if attempt > 1:
                LOGGER.info("Database reachable after %d attempts", attempt)
            return
        except (OperationalError, DBAPIError, OSError) as exc:
            last_error = exc
            LOGGER.warning(
                "Database not reachable (attempt %d/%d): %s",
                attempt,
                attempts,
                exc,
            )
            if attempt < attempts:
                await asyncio.sleep(delay_seconds)
    LOGGER.error("Giving up on database after %d attempts", attempts)
    raise BackendError(f"Database unreachable after {attempts} attempts") from last_error


__all__ = [
    "create_session_factory",
    "dialect_name",
    "resolve_async_database_url",
    "resolve_database_url",
    "resolve_sync_database_url",
    "wait_for_database",
]
