"""Initial schema: upload job queue

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    # Check if the table already exists and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    if "upload_jobs" in inspector.get_table_names():
        return

    op.create_table(
        "upload_jobs",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("credentials", JSONType, nullable=False),
        sa.Column("images", JSONType, nullable=False),
        sa.Column("settings", JSONType, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("progress", sa.Text, nullable=False, server_default=""),
        sa.Column("log", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed', 'cancelled')",
            name="ck_upload_jobs_status",
        ),
    )
    op.create_index("idx_upload_jobs_status_created", "upload_jobs", ["status", "created_at"])
    op.create_index("idx_upload_jobs_owner_created", "upload_jobs", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_upload_jobs_owner_created", table_name="upload_jobs")
    op.drop_index("idx_upload_jobs_status_created", table_name="upload_jobs")
    op.drop_table("upload_jobs")
