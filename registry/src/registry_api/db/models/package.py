"""ORM models for packages and their immutable versions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base
from ..types import UTCDateTime, utcnow


class PackageRecord(Base):
    """One package name; created implicitly by the first successful publish."""

    __tablename__ = "packages"
    __table_args__ = (
        Index("ix_packages_owner", "owner_id"),
        Index("ix_packages_upstream_cache", "is_upstream_cache"),
    )

    name: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_discontinued: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    replaced_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_upstream_cache: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class PackageVersionRecord(Base):
    __tablename__ = "package_versions"
    __table_args__ = (
        UniqueConstraint("package_name", "version", name="uq_package_versions_name_version"),
        Index("ix_package_versions_published_at", "published_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_name: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("packages.name", ondelete="CASCADE"),
        nullable=False,
    )
    version: Mapped[str] = mapped_column(String(64), nullable=False)
    pubspec: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    archive_key: Mapped[str] = mapped_column(String(512), nullable=False)
    archive_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    archive_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    published_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    is_retracted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retracted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    retraction_message: Mapped[str | None] = mapped_column(Text, nullable=True)
