"""Runtime entrypoint assembling the registry FastAPI app."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from registry_api import __version__
from registry_api.apis.admin_api import router as admin_router
from registry_api.apis.auth_api import router as auth_router
from registry_api.apis.packages_api import router as packages_router
from registry_api.config.settings import RegistrySettings, load_settings
from registry_api.context import RegistryContext
from registry_api.http.errors import install_error_handlers


def create_app(settings: RegistrySettings | None = None) -> FastAPI:
    resolved = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        context = await RegistryContext.open(resolved)
        app.state.registry = context
        try:
            yield
        finally:
            app.state.registry = None
            await context.close()

    app = FastAPI(title="Pub Registry", version=__version__, lifespan=lifespan)
    if resolved.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(resolved.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    install_error_handlers(app)

    @app.get("/health", tags=["Health"], summary="Liveness check")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(packages_router)
    app.include_router(auth_router)
    app.include_router(admin_router)
    return app


__all__ = ["create_app"]
