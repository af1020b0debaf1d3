"""Repository layer for data access."""

from .activity import ActivityRepository
from .backup import BackupRepository
from .packages import PackageRepository
from .storage_config import StorageConfigRepository
from .tokens import TokenRepository
from .upload_sessions import UploadSessionRepository
from .users import AdminUserRepository, UserRepository, UserSessionRepository

__all__ = [
    "ActivityRepository",
    "AdminUserRepository",
    "BackupRepository",
    "PackageRepository",
    "StorageConfigRepository",
    "TokenRepository",
    "UploadSessionRepository",
    "UserRepository",
    "UserSessionRepository",
]
