"""ORM model for the active and pending blob backend selection."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base
from ..types import UTCDateTime, utcnow


class StorageConfigRecord(Base):
    __tablename__ = "storage_config"

    variant: Mapped[str] = mapped_column(String(16), primary_key=True)
    backend: Mapped[str] = mapped_column(String(16), nullable=False)
    local_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    s3_endpoint: Mapped[str | None] = mapped_column(String(512), nullable=True)
    s3_region: Mapped[str | None] = mapped_column(String(64), nullable=True)
    s3_bucket: Mapped[str | None] = mapped_column(String(255), nullable=True)
    s3_access_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    s3_secret_key_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    s3_force_path_style: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
