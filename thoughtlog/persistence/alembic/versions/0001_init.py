"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-01 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

# All *_at columns are integer Unix epoch seconds in UTC.
EPOCH_NOW = sa.text("(extract(epoch from now()))::bigint")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("uid", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.Column("last_seen_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
    )

    op.create_table(
        "thoughts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("uid", sa.String(), sa.ForeignKey("users.uid"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.Column("updated_at", sa.BigInteger(), nullable=True),
        sa.Column("deleted_at", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("error", sa.Text(), nullable=True),
    )
    # Keyset listing order is (created_at DESC, id DESC) per owner.
    op.create_index(
        "ix_thoughts_uid_created_at_id",
        "thoughts",
        ["uid", sa.text("created_at DESC"), sa.text("id DESC")],
    )
    op.create_index("ix_thoughts_uid_deleted_at", "thoughts", ["uid", "deleted_at"])

    op.create_table(
        "tags",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("uid", sa.String(), sa.ForeignKey("users.uid"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.Column("last_used_at", sa.BigInteger(), nullable=True),
        sa.UniqueConstraint("uid", "name", name="uq_tags_uid_name"),
    )
    op.create_index(
        "ix_tags_uid_last_used_at_id",
        "tags",
        ["uid", sa.text("last_used_at DESC"), sa.text("id DESC")],
    )

    op.create_table(
        "thought_tags",
        sa.Column(
            "thought_id",
            sa.BigInteger(),
            sa.ForeignKey("thoughts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            sa.BigInteger(),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
    )
    op.create_index("ix_thought_tags_tag_id", "thought_tags", ["tag_id"])

    op.create_table(
        "analysis_jobs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "thought_id",
            sa.BigInteger(),
            sa.ForeignKey("thoughts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("uid", sa.String(), sa.ForeignKey("users.uid"), nullable=False),
        sa.Column("step", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.Column("updated_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_stack", sa.Text(), nullable=True),
        sa.Column("error_details", postgresql.JSONB(), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
    )
    op.create_index("ix_analysis_jobs_status_created_at", "analysis_jobs", ["status", "created_at"])
    op.create_index("ix_analysis_jobs_thought_id", "analysis_jobs", ["thought_id"])


def downgrade() -> None:
    op.drop_index("ix_analysis_jobs_thought_id", table_name="analysis_jobs")
    op.drop_index("ix_analysis_jobs_status_created_at", table_name="analysis_jobs")
    op.drop_table("analysis_jobs")
    op.drop_index("ix_thought_tags_tag_id", table_name="thought_tags")
    op.drop_table("thought_tags")
    op.drop_index("ix_tags_uid_last_used_at_id", table_name="tags")
    op.drop_table("tags")
    op.drop_index("ix_thoughts_uid_deleted_at", table_name="thoughts")
    op.drop_index("ix_thoughts_uid_created_at_id", table_name="thoughts")
    op.drop_table("thoughts")
    op.drop_table("users")
