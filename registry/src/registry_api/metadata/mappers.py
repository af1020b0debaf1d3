"""Record to snapshot conversions."""

from __future__ import annotations

from registry_api.db.models import (
    ActivityLogRecord,
    AdminUserRecord,
    AuthTokenRecord,
    PackageRecord,
    PackageVersionRecord,
    StorageConfigRecord,
    UploadSessionRecord,
    UserRecord,
    UserSessionRecord,
)
from registry_api.domain.models import (
    ActivityEntry,
    AdminUser,
    AuthToken,
    Package,
    PackageVersion,
    StorageConfig,
    UploadSession,
    User,
    UserSession,
)


def package_snapshot(record: PackageRecord) -> Package:
    return Package(
        name=record.name,
        owner_id=record.owner_id,
        is_discontinued=bool(record.is_discontinued),
        replaced_by=record.replaced_by,
        is_upstream_cache=bool(record.is_upstream_cache),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def version_snapshot(record: PackageVersionRecord) -> PackageVersion:
    return PackageVersion(
        package_name=record.package_name,
        version=record.version,
        pubspec=dict(record.pubspec or {}),
        archive_key=record.archive_key,
        archive_sha256=record.archive_sha256,
        archive_size=record.archive_size,
        published_at=record.published_at,
        is_retracted=bool(record.is_retracted),
        retracted_at=record.retracted_at,
        retraction_message=record.retraction_message,
    )


def token_snapshot(record: AuthTokenRecord) -> AuthToken:
    return AuthToken(
        token_hash=record.token_hash,
        user_id=record.user_id,
        label=record.label,
        scopes=tuple(record.scopes or ()),
        created_at=record.created_at,
        last_used_at=record.last_used_at,
        expires_at=record.expires_at,
    )


def upload_session_snapshot(record: UploadSessionRecord) -> UploadSession:
    return UploadSession(
        id=record.id,
        user_id=record.user_id,
        created_at=record.created_at,
        expires_at=record.expires_at,
        completed=bool(record.completed),
        completed_at=record.completed_at,
        staged_key=record.staged_key,
        archive_sha256=record.archive_sha256,
        archive_size=record.archive_size,
        uploaded_at=record.uploaded_at,
        package_name=record.package_name,
        version=record.version,
        rejected_at=record.rejected_at,
    )


def user_snapshot(record: UserRecord) -> User:
    return User(
        id=record.id,
        email=record.email,
        name=record.name,
        is_active=bool(record.is_active),
        created_at=record.created_at,
        last_login_at=record.last_login_at,
    )


def admin_user_snapshot(record: AdminUserRecord) -> AdminUser:
    return AdminUser(
        id=record.id,
        username=record.username,
        name=record.name,
        is_active=bool(record.is_active),
        created_at=record.created_at,
        last_login_at=record.last_login_at,
    )


def user_session_snapshot(record: UserSessionRecord) -> UserSession:
    return UserSession(
        session_hash=record.session_hash,
        user_id=record.user_id,
        is_admin=bool(record.is_admin),
        created_at=record.created_at,
        expires_at=record.expires_at,
    )


def storage_config_snapshot(record: StorageConfigRecord) -> StorageConfig:
    return StorageConfig(
        variant=record.variant,
        backend=record.backend,
        local_path=record.local_path,
        s3_endpoint=record.s3_endpoint,
        s3_region=record.s3_region,
        s3_bucket=record.s3_bucket,
        s3_access_key=record.s3_access_key,
        s3_secret_key=record.s3_secret_key_encrypted,
        s3_force_path_style=bool(record.s3_force_path_style),
        updated_at=record.updated_at,
    )


def activity_snapshot(record: ActivityLogRecord) -> ActivityEntry:
    return ActivityEntry(
        id=record.id,
        created_at=record.created_at,
        kind=record.kind,
        actor_id=record.actor_id,
        package_name=record.package_name,
        version=record.version,
        details=dict(record.details or {}),
    )
