from __future__ import annotations

from typing import Any

from fastapi import Response
from fastapi.responses import JSONResponse

from registry_api.apis.admin_api_base import BaseAdminApi
from registry_api.domain.models import AdminUser, PackageInfo
from registry_api.errors import AuthError
from registry_api.models.requests import AdminLoginRequest, DiscontinueRequest, RetractRequest


def package_summary(info: PackageInfo) -> dict[str, Any]:
    latest = info.latest
    return {
        "name": info.name,
        "ownerId": info.package.owner_id,
        "latest": latest.version if latest else None,
        "versionCount": len(info.versions),
        "isDiscontinued": info.package.is_discontinued,
        "replacedBy": info.package.replaced_by,
        "isUpstreamCache": info.package.is_upstream_cache,
        "createdAt": info.package.created_at.isoformat(),
        "updatedAt": info.package.updated_at.isoformat(),
    }


class AdminApiImpl(BaseAdminApi):
    async def admin_login(self, admin_login_request: AdminLoginRequest) -> Response:
        sessions = self.context.sessions
        outcome = await sessions.login_admin(
            admin_login_request.username.strip(),
            admin_login_request.password.get_secret_value(),
        )
        if outcome is None:
            raise AuthError("Invalid username or password.", code="invalid_credentials")
        session_id, admin = outcome
        response = JSONResponse(content={"admin": admin.to_dict()})
        response.set_cookie(value=session_id, **sessions.admin_policy.cookie_kwargs())
        return response

    async def admin_logout(self, session_id: str | None) -> Response:
        sessions = self.context.sessions
        await sessions.logout(session_id)
        response = JSONResponse(content={"success": True})
        response.delete_cookie(sessions.admin_policy.name, path=sessions.admin_policy.path)
        return response

    async def admin_me(self, admin: AdminUser) -> Response:
        return JSONResponse(content={"admin": admin.to_dict()})

    async def get_stats(self, admin: AdminUser) -> Response:
        stats = await self.context.admin.stats()
        return JSONResponse(content=stats.to_dict())

    async def list_packages(self, admin: AdminUser, package_type: str, page: int, limit: int) -> Response:
        result = await self.context.admin.list_packages(package_type, page=page, limit=limit)
        return JSONResponse(
            content={
                "packages": [package_summary(info) for info in result.packages],
                "total": result.total,
                "page": result.page,
                "limit": result.limit,
            }
        )

    async def delete_package(self, admin: AdminUser, name: str) -> Response:
        removed = await self.context.admin.delete_package(name, actor_id=admin.id)
        return JSONResponse(content={"success": True, "removedArchives": removed})

    async def delete_version(self, admin: AdminUser, name: str, version: str) -> Response:
        await self.context.admin.delete_version(name, version, actor_id=admin.id)
        return JSONResponse(content={"success": True})

    async def retract_version(
        self,
        admin: AdminUser,
        name: str,
        version: str,
        retract_request: RetractRequest | None,
    ) -> Response:
        message = retract_request.message if retract_request else None
        await self.context.admin.retract(name, version, message=message, actor_id=admin.id)
        return JSONResponse(content={"success": True})

    async def unretract_version(self, admin: AdminUser, name: str, version: str) -> Response:
        await self.context.admin.unretract(name, version, actor_id=admin.id)
        return JSONResponse(content={"success": True})

    async def discontinue_package(
        self,
        admin: AdminUser,
        name: str,
        discontinue_request: DiscontinueRequest | None,
    ) -> Response:
        replaced_by = discontinue_request.replaced_by if discontinue_request else None
        await self.context.admin.discontinue(name, replaced_by=replaced_by, actor_id=admin.id)
        return JSONResponse(content={"success": True})

    async def reactivate_package(self, admin: AdminUser, name: str) -> Response:
        await self.context.admin.reactivate(name, actor_id=admin.id)
        return JSONResponse(content={"success": True})

    async def clear_cache(self, admin: AdminUser) -> Response:
        removed = await self.context.admin.clear_cache(actor_id=admin.id)
        return JSONResponse(content={"success": True, "removedArchives": removed})

    async def list_activity(self, admin: AdminUser, limit: int, package: str | None) -> Response:
        entries = await self.context.admin.activity(limit=limit, package_name=package)
        return JSONResponse(content={"activity": [entry.to_dict() for entry in entries]})
