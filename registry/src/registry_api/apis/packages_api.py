# coding: utf-8

from __future__ import annotations

import importlib
import pkgutil
from typing import Optional

from fastapi import (  # noqa: F401
    APIRouter,
    Depends,
    HTTPException,
    Path,
    Query,
    Request,
    Response,
    Security,
)

import registry_api.impl
from registry_api.apis.packages_api_base import BasePackagesApi
from registry_api.context import RegistryContext
from registry_api.domain.models import AuthToken
from registry_api.http.deps import get_context, optional_read_token, require_publish_token

router = APIRouter()

ns_pkg = registry_api.impl
for _, name, _ in pkgutil.iter_modules(ns_pkg.__path__, ns_pkg.__name__ + "."):
    importlib.import_module(name)


def _impl(context: RegistryContext) -> BasePackagesApi:
    if not BasePackagesApi.subclasses:
        raise HTTPException(status_code=500, detail="Not implemented")
    return BasePackagesApi.subclasses[0](context)


@router.get(
    "/api/packages",
    tags=["Packages"],
    summary="List or search locally published packages",
    dependencies=[Depends(optional_read_token)],
)
async def list_packages(
    q: Optional[str] = Query(default=None, description="Substring matched against names and manifests."),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).list_packages(q, page, limit)


@router.get(
    "/api/packages/versions/new",
    tags=["Publish"],
    summary="Open an upload session",
)
async def new_upload(
    token: AuthToken = Security(require_publish_token),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).new_upload(token)


@router.post(
    "/api/packages/versions/upload/{session_id}",
    tags=["Publish"],
    summary="Upload the archive for an upload session",
    status_code=204,
)
async def upload_archive(
    request: Request,
    session_id: str = Path(..., min_length=1, max_length=64),
    token: AuthToken = Security(require_publish_token),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).upload_archive(session_id, token, request)


@router.get(
    "/api/packages/versions/finalize/{session_id}",
    tags=["Publish"],
    summary="Finalize an upload session and publish the version",
)
async def finalize_upload(
    session_id: str = Path(..., min_length=1, max_length=64),
    token: AuthToken = Security(require_publish_token),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).finalize_upload(session_id, token)


@router.get(
    "/api/packages/{name}",
    tags=["Packages"],
    summary="List all versions of a package",
    dependencies=[Depends(optional_read_token)],
)
async def get_package(
    name: str = Path(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).get_package(name)


@router.get(
    "/api/packages/{name}/versions/{version}",
    tags=["Packages"],
    summary="Inspect one package version",
    dependencies=[Depends(optional_read_token)],
)
async def get_package_version(
    name: str = Path(...),
    version: str = Path(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).get_package_version(name, version)


@router.get(
    "/packages/{name}/versions/{version}.tar.gz",
    tags=["Packages"],
    summary="Download a package archive",
    dependencies=[Depends(optional_read_token)],
)
async def download_archive(
    name: str = Path(...),
    version: str = Path(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).download_archive(name, version)


@router.get(
    "/blobs/{namespace}/{key:path}",
    tags=["Packages"],
    summary="Serve a blob through a signed URL",
)
async def download_signed_blob(
    namespace: str = Path(...),
    key: str = Path(...),
    expires: int = Query(...),
    signature: str = Query(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).download_signed_blob(namespace, key, expires, signature)
