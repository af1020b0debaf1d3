from __future__ import annotations

from typing import Any
from urllib.parse import quote

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse

from registry_api.apis.packages_api_base import BasePackagesApi
from registry_api.domain.models import AuthToken, Package, PackageInfo, PackageVersion
from registry_api.errors import ForbiddenError, NotFoundError, PayloadTooLargeError, ValidationError
from registry_api.http.errors import PUB_CONTENT_TYPE
from registry_api.http.multipart import ENVELOPE_ALLOWANCE, iter_file_field
from registry_api.storage.base import NAMESPACE_CACHED, NAMESPACE_PUBLISHED, BlobStore
from registry_api.storage.local import LocalBlobStore

ARCHIVE_MEDIA_TYPE = "application/octet-stream"


def pub_json(content: Any, *, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, media_type=PUB_CONTENT_TYPE)


def _declared_size(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError("Invalid Content-Length header.") from exc


class PackagesApiImpl(BasePackagesApi):
    def archive_url(self, name: str, version: str) -> str:
        base = self.context.settings.base_url
        return f"{base}/packages/{quote(name)}/versions/{quote(version)}.tar.gz"

    def version_json(self, version: PackageVersion) -> dict[str, Any]:
        return {
            "version": version.version,
            "retracted": version.is_retracted,
            "archive_url": self.archive_url(version.package_name, version.version),
            "archive_sha256": version.archive_sha256,
            "pubspec": version.pubspec,
            "published": version.published_at.isoformat(),
        }

    def package_json(self, info: PackageInfo) -> dict[str, Any]:
        latest = info.latest
        body: dict[str, Any] = {
            "name": info.name,
            "isDiscontinued": info.package.is_discontinued,
            "latest": self.version_json(latest) if latest else None,
            "versions": [self.version_json(version) for version in info.versions],
        }
        if info.package.replaced_by:
            body["replacedBy"] = info.package.replaced_by
        return body

    async def _require_info(self, name: str) -> PackageInfo:
        info = await self.context.metadata.get_package_info(name)
        if info is None or not info.versions:
            raise NotFoundError(f"Package '{name}' not found.")
        return info

    async def list_packages(self, q: str | None, page: int, limit: int) -> Response:
        metadata = self.context.metadata
        if q and q.strip():
            result = await metadata.search_packages(q, page=page, limit=limit)
        else:
            result = await metadata.list_packages(page=page, limit=limit)
        return pub_json(
            {
                "packages": [self.package_json(info) for info in result.packages if info.versions],
                "total": result.total,
                "page": result.page,
                "limit": result.limit,
            }
        )

    async def get_package(self, name: str) -> Response:
        return pub_json(self.package_json(await self._require_info(name)))

    async def get_package_version(self, name: str, version: str) -> Response:
        info = await self._require_info(name)
        found = info.get(version)
        if found is None:
            raise NotFoundError(f"Version {version} of package '{name}' not found.")
        return pub_json(self.version_json(found))

    async def new_upload(self, token: AuthToken) -> Response:
        target = await self.context.workflow.create(token)
        return pub_json({"url": target.upload_url, "fields": {}})

    async def upload_archive(self, session_id: str, token: AuthToken, request: Request) -> Response:
        declared = _declared_size(request)
        limit = self.context.settings.max_upload_size_bytes
        content_type = request.headers.get("content-type", "")
        multipart = content_type.startswith("multipart/form-data")
        ceiling = limit + ENVELOPE_ALLOWANCE if multipart else limit
        if declared is not None and declared > ceiling:
            raise PayloadTooLargeError(f"Archive exceeds the {limit} byte upload limit.")

        if multipart:
            chunks = iter_file_field(request.stream(), content_type, max_bytes=limit)
        else:
            chunks = request.stream()
        # A multipart Content-Length also counts the form envelope.
        archive_size = None if multipart else declared
        await self.context.workflow.upload(session_id, token, chunks, declared_size=archive_size)
        return Response(
            status_code=status.HTTP_204_NO_CONTENT,
            headers={"Location": self.context.workflow.finalize_url(session_id)},
        )

    async def finalize_upload(self, session_id: str, token: AuthToken) -> Response:
        published = await self.context.workflow.finalize(session_id, token)
        message = f"Successfully published {published.package_name} {published.version}"
        return pub_json({"success": {"message": message}})

    def _store_for(self, package: Package) -> BlobStore:
        blobs = self.context.blobs
        return blobs.cached if package.is_upstream_cache else blobs.published

    async def download_archive(self, name: str, version: str) -> Response:
        package = await self.context.metadata.get_package(name)
        found = await self.context.metadata.get_package_version(name, version) if package else None
        if package is None or found is None:
            raise NotFoundError(f"Version {version} of package '{name}' not found.")
        store = self._store_for(package)
        if self.context.settings.redirect_downloads:
            url = await store.signed_url(found.archive_key)
            return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)
        if not await store.exists(found.archive_key):
            raise NotFoundError(f"Archive for {name} {version} is missing from storage.", code="blob_not_found")
        headers = {"Content-Disposition": f'attachment; filename="{name}-{version}.tar.gz"'}
        if found.archive_size is not None:
            headers["Content-Length"] = str(found.archive_size)
        return StreamingResponse(store.iter_chunks(found.archive_key), media_type=ARCHIVE_MEDIA_TYPE, headers=headers)

    async def download_signed_blob(self, namespace: str, key: str, expires: int, signature: str) -> Response:
        blobs = self.context.blobs
        stores = {NAMESPACE_PUBLISHED: blobs.published, NAMESPACE_CACHED: blobs.cached}
        store = stores.get(namespace)
        if not isinstance(store, LocalBlobStore):
            raise NotFoundError("Unknown blob namespace.")
        if not store.verify_signature(key, expires, signature):
            raise ForbiddenError("Signed URL is invalid or has expired.", code="invalid_signature")
        if not await store.exists(key):
            raise NotFoundError("Blob not found.", code="blob_not_found")
        return StreamingResponse(store.iter_chunks(key), media_type=ARCHIVE_MEDIA_TYPE)
