"""Track the staged archive and uploader on upload sessions."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20260309_0003"
down_revision = "20260302_0002"
branch_labels = None
depends_on = None

_COLUMNS = (
    ("user_id", sa.String(length=64)),
    ("staged_key", sa.String(length=512)),
    ("archive_sha256", sa.String(length=64)),
    ("archive_size", sa.BigInteger()),
    ("uploaded_at", sa.DateTime(timezone=True)),
    ("package_name", sa.String(length=128)),
    ("version", sa.String(length=64)),
)


def upgrade() -> None:
    for name, column_type in _COLUMNS:
        op.add_column("upload_sessions", sa.Column(name, column_type, nullable=True))
    op.add_column("package_versions", sa.Column("archive_size", sa.BigInteger(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("package_versions") as batch:
        batch.drop_column("archive_size")
    with op.batch_alter_table("upload_sessions") as batch:
        for name, _ in reversed(_COLUMNS):
            batch.drop_column(name)
