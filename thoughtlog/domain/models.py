from __future__ import annotations

import time
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLite only auto-increments INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer(), "sqlite")
JsonType = JSON().with_variant(JSONB(), "postgresql")

MOOD_SCORE_MIN = 1
MOOD_SCORE_MAX = 5


def epoch_now() -> int:
    # All *_at columns are integer Unix epoch seconds in UTC.
    return int(time.time())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String, primary_key=True)
    # Profile fields are denormalized from the identity token on every request.
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
    last_seen_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)


class Thought(Base):
    __tablename__ = "thoughts"
    __table_args__ = (
        Index("ix_thoughts_uid_created_at_id", "uid", "created_at", "id"),
        Index("ix_thoughts_uid_deleted_at", "uid", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String, ForeignKey("users.uid"))
    body: Mapped[str] = mapped_column(Text)
    created_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
    # Set only on edit.
    updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Soft delete keeps the row addressable for in-flight jobs.
    deleted_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Free-form diagnostics; job rows are authoritative for analysis state.
    status: Mapped[str] = mapped_column(String, default="active")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (
        UniqueConstraint("uid", "name", name="uq_tags_uid_name"),
        Index("ix_tags_uid_last_used_at_id", "uid", "last_used_at", "id"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String, ForeignKey("users.uid"))
    # Case-sensitive token matching ^[A-Za-z0-9_-]+$.
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
    # Bumped on each (re)association; tags are never deleted.
    last_used_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class ThoughtTag(Base):
    __tablename__ = "thought_tags"
    __table_args__ = (Index("ix_thought_tags_tag_id", "tag_id"),)

    thought_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("thoughts.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)


class AnalysisJob(Base):
    __tablename__ = "analysis_jobs"
    __table_args__ = (
        Index("ix_analysis_jobs_status_created_at", "status", "created_at"),
        Index("ix_analysis_jobs_thought_id", "thought_id"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    thought_id: Mapped[int] = mapped_column(IdType, ForeignKey("thoughts.id", ondelete="CASCADE"))
    uid: Mapped[str] = mapped_column(String, ForeignKey("users.uid"))
    # Immutable after creation: tagging | mood | future steps.
    step: Mapped[str] = mapped_column(String)
    # queued | processing | done | error
    status: Mapped[str] = mapped_column(String, default="queued")
    # Incremented once per delivery attempt, never reset.
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
    updated_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_stack: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)


class ThoughtMood(Base):
    __tablename__ = "thought_moods"
    __table_args__ = (
        UniqueConstraint("thought_id", name="uq_thought_moods_thought_id"),
        Index("ix_thought_moods_uid_thought_id", "uid", "thought_id"),
        CheckConstraint(
            f"mood_score >= {MOOD_SCORE_MIN} AND mood_score <= {MOOD_SCORE_MAX}",
            name="chk_mood_score_range",
        ),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    thought_id: Mapped[int] = mapped_column(IdType, ForeignKey("thoughts.id", ondelete="CASCADE"))
    uid: Mapped[str] = mapped_column(String, ForeignKey("users.uid"))
    mood_score: Mapped[int] = mapped_column(Integer)
    explanation: Mapped[str] = mapped_column(Text)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
    updated_at: Mapped[int] = mapped_column(BigInteger, default=epoch_now)
