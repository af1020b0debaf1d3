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
    Response,
)

import registry_api.impl
from registry_api.apis.auth_api_base import BaseAuthApi
from registry_api.auth.sessions import USER_COOKIE_NAME
from registry_api.context import RegistryContext
from registry_api.domain.models import User
from registry_api.http.deps import get_context, require_user
from registry_api.models.requests import TokenCreateRequest, UserLoginRequest, UserRegisterRequest

router = APIRouter()

ns_pkg = registry_api.impl
for _, name, _ in pkgutil.iter_modules(ns_pkg.__path__, ns_pkg.__name__ + "."):
    importlib.import_module(name)


def _impl(context: RegistryContext) -> BaseAuthApi:
    if not BaseAuthApi.subclasses:
        raise HTTPException(status_code=500, detail="Not implemented")
    return BaseAuthApi.subclasses[0](context)


@router.post(
    "/api/auth/register",
    tags=["Auth"],
    summary="Register an end-user account",
    status_code=201,
)
async def register(
    user_register_request: UserRegisterRequest = Body(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).register(user_register_request)


@router.post(
    "/api/auth/login",
    tags=["Auth"],
    summary="Open an end-user browser session",
)
async def login(
    user_login_request: UserLoginRequest = Body(...),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).login(user_login_request)


@router.post(
    "/api/auth/logout",
    tags=["Auth"],
    summary="Close the end-user browser session",
)
async def logout(
    session_id: Optional[str] = Cookie(default=None, alias=USER_COOKIE_NAME),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).logout(session_id)


@router.get(
    "/api/auth/me",
    tags=["Auth"],
    summary="Describe the logged-in user",
)
async def me(
    user: User = Depends(require_user),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).me(user)


@router.post(
    "/api/tokens",
    tags=["Tokens"],
    summary="Create a bearer token; the secret is returned once",
    status_code=201,
)
async def create_token(
    token_create_request: TokenCreateRequest = Body(...),
    user: User = Depends(require_user),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).create_token(user, token_create_request)


@router.get(
    "/api/tokens",
    tags=["Tokens"],
    summary="List the caller's tokens",
)
async def list_tokens(
    user: User = Depends(require_user),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).list_tokens(user)


@router.delete(
    "/api/tokens/{label}",
    tags=["Tokens"],
    summary="Delete one of the caller's tokens by label",
    status_code=204,
)
async def delete_token(
    label: str = Path(..., min_length=1, max_length=128),
    user: User = Depends(require_user),
    context: RegistryContext = Depends(get_context),
) -> Response:
    return await _impl(context).delete_token(user, label)
