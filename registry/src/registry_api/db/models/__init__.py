"""Database model package."""

from .activity import ActivityLogRecord
from .package import PackageRecord, PackageVersionRecord
from .storage_config import StorageConfigRecord
from .token import AuthTokenRecord
from .upload_session import UploadSessionRecord
from .user import AdminUserRecord, UserRecord, UserSessionRecord

__all__ = [
    "ActivityLogRecord",
    "AdminUserRecord",
    "AuthTokenRecord",
    "PackageRecord",
    "PackageVersionRecord",
    "StorageConfigRecord",
    "UploadSessionRecord",
    "UserRecord",
    "UserSessionRecord",
]
