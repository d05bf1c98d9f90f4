"""create upload_records table

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "upload_records",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.String(length=512), nullable=True),
        sa.Column("filename", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_upload_records_owner_id", "upload_records", ["owner_id"], unique=False)
    op.create_index("ix_upload_records_status", "upload_records", ["status"], unique=False)
    op.create_index("ix_upload_records_created_at", "upload_records", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_upload_records_created_at", table_name="upload_records")
    op.drop_index("ix_upload_records_status", table_name="upload_records")
    op.drop_index("ix_upload_records_owner_id", table_name="upload_records")
    op.drop_table("upload_records")
