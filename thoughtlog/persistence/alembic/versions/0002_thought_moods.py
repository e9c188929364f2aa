"""thought moods

Revision ID: 0002_thought_moods
Revises: 0001_init
Create Date: 2026-10-08 14:30:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_thought_moods"
down_revision = "0001_init"
branch_labels = None
depends_on = None

EPOCH_NOW = sa.text("(extract(epoch from now()))::bigint")


def upgrade() -> None:
    op.create_table(
        "thought_moods",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "thought_id",
            sa.BigInteger(),
            sa.ForeignKey("thoughts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("uid", sa.String(), sa.ForeignKey("users.uid"), nullable=False),
        sa.Column("mood_score", sa.Integer(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=False),
        sa.Column("model", sa.String(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.Column("updated_at", sa.BigInteger(), nullable=False, server_default=EPOCH_NOW),
        sa.UniqueConstraint("thought_id", name="uq_thought_moods_thought_id"),
        # Closed score range 1..5.
        sa.CheckConstraint("mood_score >= 1 AND mood_score <= 5", name="chk_mood_score_range"),
    )
    op.create_index("ix_thought_moods_uid_thought_id", "thought_moods", ["uid", "thought_id"])


def downgrade() -> None:
    op.drop_index("ix_thought_moods_uid_thought_id", table_name="thought_moods")
    op.drop_table("thought_moods")
