"""Uvicorn launcher shared by the CLI and the dev run script."""

from __future__ import annotations

import logging
from typing import Final

import uvicorn

from registry_api.config.settings import RegistrySettings

LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(log_level: str) -> int:
    """Configure root and uvicorn loggers; returns the stdlib level used."""

    if log_level == "trace":
        # Uvicorn treats "trace" as the most verbose level; map to DEBUG for stdlib logging.
        root_level = logging.DEBUG
    else:
        root_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=root_level, format=LOG_FORMAT)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(root_level)
    return root_level


def run_server(
    settings: RegistrySettings,
    *,
    host: str | None = None,
    port: int | None = None,
    reload: bool | None = None,
    log_level: str | None = None,
) -> None:
    """Serve ``registry_api.app:create_app``; CLI flags override settings."""

    bind_host = host or settings.host
    bind_port = port or settings.port
    level = (log_level or settings.log_level).lower()
    configure_logging(level)

    uvicorn.run(
        "registry_api.app:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload if reload is not None else settings.reload,
        log_level=level if level != "trace" else "debug",
        log_config=None,
    )


__all__ = ["configure_logging", "run_server"]
