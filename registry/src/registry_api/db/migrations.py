"""Helpers to apply Alembic migrations programmatically."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from .session import resolve_sync_database_url

LOGGER = logging.getLogger(__name__)

ALEMBIC_DIR = Path(__file__).resolve().parent / "alembic"


def _alembic_config(database_url: str) -> Config:
    alembic_cfg = Config()
    # Prevent Alembic from overriding the application's logging configuration.
    alembic_cfg.attributes["configure_logger"] = False
    alembic_cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return alembic_cfg


def pending_revisions(database_url: str) -> list[str]:
    """Revisions not yet applied, oldest first."""

    sync_url = resolve_sync_database_url(database_url)
    script = ScriptDirectory.from_config(_alembic_config(sync_url))
    engine = create_engine(sync_url, poolclass=NullPool)
    try:
        with engine.connect() as connection:
            current = MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()
    head = script.get_current_head()
    if current == head:
        return []
    revisions = [rev.revision for rev in script.iterate_revisions(head, current or "base")]
    revisions.reverse()
    return revisions


def upgrade_database(database_url: str) -> int:
    """Run Alembic migrations up to the latest revision; returns how many were applied."""

    sync_url = resolve_sync_database_url(database_url)
    pending = pending_revisions(sync_url)
    if not pending:
        LOGGER.debug("Database schema already up to date")
        return 0
    command.upgrade(_alembic_config(sync_url), "head")
    LOGGER.info("Applied %d migration(s): %s", len(pending), ", ".join(pending))
    return len(pending)


__all__ = ["pending_revisions", "upgrade_database"]
