# coding: utf-8

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from fastapi import Response

from registry_api.context import RegistryContext
from registry_api.domain.models import AdminUser
from registry_api.models.requests import AdminLoginRequest, DiscontinueRequest, RetractRequest


class BaseAdminApi:
    subclasses: ClassVar[Tuple] = ()

    def __init__(self, context: RegistryContext) -> None:
        self.context = context

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        BaseAdminApi.subclasses = BaseAdminApi.subclasses + (cls,)

    async def admin_login(
        self,
        admin_login_request: AdminLoginRequest,
    ) -> Response:
        ...


    async def admin_logout(
        self,
        session_id: Optional[str],
    ) -> Response:
        ...


    async def admin_me(
        self,
        admin: AdminUser,
    ) -> Response:
        ...


    async def get_stats(
        self,
        admin: AdminUser,
    ) -> Response:
        ...


    async def list_packages(
        self,
        admin: AdminUser,
        package_type: str,
        page: int,
        limit: int,
    ) -> Response:
        ...


    async def delete_package(
        self,
        admin: AdminUser,
        name: str,
    ) -> Response:
        ...


    async def delete_version(
        self,
        admin: AdminUser,
        name: str,
        version: str,
    ) -> Response:
        ...


    async def retract_version(
        self,
        admin: AdminUser,
        name: str,
        version: str,
        retract_request: Optional[RetractRequest],
    ) -> Response:
        ...


    async def unretract_version(
        self,
        admin: AdminUser,
        name: str,
        version: str,
    ) -> Response:
        ...


    async def discontinue_package(
        self,
        admin: AdminUser,
        name: str,
        discontinue_request: Optional[DiscontinueRequest],
    ) -> Response:
        ...


    async def reactivate_package(
        self,
        admin: AdminUser,
        name: str,
    ) -> Response:
        ...


    async def clear_cache(
        self,
        admin: AdminUser,
    ) -> Response:
        ...


    async def list_activity(
        self,
        admin: AdminUser,
        limit: int,
        package: Optional[str],
    ) -> Response:
        ...
