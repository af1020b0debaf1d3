"""Record when finalize rejected an upload session's archive."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20260406_0007"
down_revision = "20260330_0006"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("upload_sessions", sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("upload_sessions") as batch:
        batch.drop_column("rejected_at")
