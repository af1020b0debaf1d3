# coding: utf-8

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from fastapi import Response

from registry_api.context import RegistryContext
from registry_api.domain.models import User
from registry_api.models.requests import TokenCreateRequest, UserLoginRequest, UserRegisterRequest


class BaseAuthApi:
    subclasses: ClassVar[Tuple] = ()

    def __init__(self, context: RegistryContext) -> None:
        self.context = context

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        BaseAuthApi.subclasses = BaseAuthApi.subclasses + (cls,)

    async def register(
        self,
        user_register_request: UserRegisterRequest,
    ) -> Response:
        ...


    async def login(
        self,
        user_login_request: UserLoginRequest,
    ) -> Response:
        ...


    async def logout(
        self,
        session_id: Optional[str],
    ) -> Response:
        ...


    async def me(
        self,
        user: User,
    ) -> Response:
        ...


    async def create_token(
        self,
        user: User,
        token_create_request: TokenCreateRequest,
    ) -> Response:
        ...


    async def list_tokens(
        self,
        user: User,
    ) -> Response:
        ...


    async def delete_token(
        self,
        user: User,
        label: str,
    ) -> Response:
        ...
