"""Add active/pending blob backend configuration."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20260330_0006"
down_revision = "20260323_0005"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "storage_config",
        sa.Column("variant", sa.String(length=16), primary_key=True),
        sa.Column("backend", sa.String(length=16), nullable=False),
        sa.Column("local_path", sa.Text(), nullable=True),
        sa.Column("s3_endpoint", sa.String(length=512), nullable=True),
        sa.Column("s3_region", sa.String(length=64), nullable=True),
        sa.Column("s3_bucket", sa.String(length=255), nullable=True),
        sa.Column("s3_access_key", sa.String(length=255), nullable=True),
        sa.Column("s3_secret_key_encrypted", sa.Text(), nullable=True),
        sa.Column("s3_force_path_style", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("storage_config")
