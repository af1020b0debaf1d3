"""Add version retraction fields and the upstream-cache package flag."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20260316_0004"
down_revision = "20260309_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "package_versions",
        sa.Column("is_retracted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.add_column("package_versions", sa.Column("retracted_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("package_versions", sa.Column("retraction_message", sa.Text(), nullable=True))
    op.add_column(
        "packages",
        sa.Column("is_upstream_cache", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_packages_upstream_cache", "packages", ["is_upstream_cache"])


def downgrade() -> None:
    op.drop_index("ix_packages_upstream_cache", table_name="packages")
    with op.batch_alter_table("packages") as batch:
        batch.drop_column("is_upstream_cache")
    with op.batch_alter_table("package_versions") as batch:
        batch.drop_column("retraction_message")
        batch.drop_column("retracted_at")
        batch.drop_column("is_retracted")
