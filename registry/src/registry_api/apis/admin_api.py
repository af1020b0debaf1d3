# coding: utf-8

from __future__ import annotations

import importlib
import pkgutil
from typing import Optional

from fastapi import (  # noqa: F401
    APIRouter,
    Body,
    Cookie,
    Depends,
    HTTPException,
    Path,
    Query,
    Response,
)

import registry_api.impl
from registry_api.apis.admin_api_base import BaseAdminApi
from registry_api.auth.sessions import ADMIN_COOKIE_NAME
from registry_api.context import RegistryContext
from registry_api.domain.models import AdminUser
from registry_api.http.deps import get_context, require_admin
from registry_api.models.requests import AdminLoginRequest, DiscontinueRequest, RetractRequest

router = APIRouter(prefix="/admin/api")

ns_pkg = registry_api.impl
for _, name, _ in pkgutil.iter_modules(ns_pkg.__path__, ns_pkg.__name__ + "."):
    importlib.import_module(name)


def _impl(context: RegistryContext) -> BaseAdminApi:
    if not BaseAdminApi.subclasses:
        raise HTTPException(status_code=500, detail="Not implemented")
    return BaseAdminApi.subclasses[0](context)


@router.post("/auth/login", tags=["Admin"], summary="Open an administrator session")
async def admin_login(
    admin_login_request: AdminLoginRequest = Body(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).admin_login(admin_login_request)


@router.post("/auth/logout", tags=["Admin"], summary="Close the administrator session")
async def admin_logout(
    session_id: Optional[str] = Cookie(default=None, alias=ADMIN_COOKIE_NAME),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).admin_logout(session_id)


@router.get("/auth/me", tags=["Admin"], summary="Describe the logged-in administrator")
async def admin_me(
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).admin_me(admin)


@router.get("/stats", tags=["Admin"], summary="Catalog statistics")
async def get_stats(
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).get_stats(admin)


@router.get("/packages", tags=["Admin"], summary="List local or cached packages")
async def list_packages(
    package_type: str = Query(default="local", alias="type", pattern="^(local|cached)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).list_packages(admin, package_type, page, limit)


@router.delete("/packages/{name}", tags=["Admin"], summary="Delete a package and its archives")
async def delete_package(
    name: str = Path(...),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).delete_package(admin, name)


@router.delete("/packages/{name}/versions/{version}", tags=["Admin"], summary="Delete one version")
async def delete_version(
    name: str = Path(...),
    version: str = Path(...),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).delete_version(admin, name, version)


@router.post("/packages/{name}/versions/{version}/retract", tags=["Admin"], summary="Retract a version")
async def retract_version(
    name: str = Path(...),
    version: str = Path(...),
    retract_request: Optional[RetractRequest] = Body(default=None),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).retract_version(admin, name, version, retract_request)


@router.post("/packages/{name}/versions/{version}/unretract", tags=["Admin"], summary="Undo a retraction")
async def unretract_version(
    name: str = Path(...),
    version: str = Path(...),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).unretract_version(admin, name, version)


@router.post("/packages/{name}/discontinue", tags=["Admin"], summary="Mark a package discontinued")
async def discontinue_package(
    name: str = Path(...),
    discontinue_request: Optional[DiscontinueRequest] = Body(default=None),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).discontinue_package(admin, name, discontinue_request)


@router.post("/packages/{name}/reactivate", tags=["Admin"], summary="Clear the discontinued flag")
async def reactivate_package(
    name: str = Path(...),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).reactivate_package(admin, name)


@router.delete("/cache", tags=["Admin"], summary="Remove every cached upstream package")
async def clear_cache(
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).clear_cache(admin)


@router.get("/activity", tags=["Admin"], summary="Recent registry activity")
async def list_activity(
    limit: int = Query(default=50, ge=1, le=500),
    package: Optional[str] = Query(default=None),
    admin: AdminUser = Depends(require_admin),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).list_activity(admin, limit, package)
