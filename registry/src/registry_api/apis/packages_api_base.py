# coding: utf-8

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from fastapi import Request, Response

from registry_api.context import RegistryContext
from registry_api.domain.models import AuthToken


class BasePackagesApi:
    subclasses: ClassVar[Tuple] = ()

    def __init__(self, context: RegistryContext) -> None:
        self.context = context

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        BasePackagesApi.subclasses = BasePackagesApi.subclasses + (cls,)

    async def list_packages(
        self,
        q: Optional[str],
        page: int,
        limit: int,
    ) -> Response:
        ...


    async def get_package(
        self,
        name: str,
    ) -> Response:
        ...


    async def get_package_version(
        self,
        name: str,
        version: str,
    ) -> Response:
        ...


    async def new_upload(
        self,
        token: AuthToken,
    ) -> Response:
        ...


    async def upload_archive(
        self,
        session_id: str,
        token: AuthToken,
        request: Request,
    ) -> Response:
        ...


    async def finalize_upload(
        self,
        session_id: str,
        token: AuthToken,
    ) -> Response:
        ...


    async def download_archive(
        self,
        name: str,
        version: str,
    ) -> Response:
        ...


    async def download_signed_blob(
        self,
        namespace: str,
        key: str,
        expires: int,
        signature: str,
    ) -> Response:
        ...
