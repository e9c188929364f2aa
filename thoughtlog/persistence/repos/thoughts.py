from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import Select, distinct, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.core.errors import ThoughtNotFoundError
from thoughtlog.domain.models import Tag, Thought, ThoughtMood, ThoughtTag, epoch_now
from thoughtlog.persistence.guards import owner_predicate
from thoughtlog.persistence.keyset import KeysetPosition, keyset_after


SECONDS_PER_DAY = 86400
_EPOCH = date(1970, 1, 1)


@dataclass(frozen=True)
class DayCount:
    day: date
    count: int
    mean_mood: float | None


def unique_tag_names(tag_names: list[str]) -> list[str]:
    # Preserve first-seen order; duplicates would break the HAVING count.
    return list(dict.fromkeys(name for name in tag_names if name))


def _visible(uid: str):
    # Listings only ever show the owner's non-deleted thoughts.
    return (owner_predicate(Thought, uid), Thought.deleted_at.is_(None))


def _ordered_page(stmt: Select, *, limit: int, after: KeysetPosition | None) -> Select:
    if after is not None:
        stmt = stmt.where(keyset_after(Thought.created_at, Thought.id, after))
    return stmt.order_by(Thought.created_at.desc(), Thought.id.desc()).limit(limit)


def tag_intersection_ids(uid: str, tag_names: list[str]) -> Select:
    # Thought ids carrying every requested tag name (logical AND), scoped to the owner's tags.
    names = unique_tag_names(tag_names)
    return (
        select(ThoughtTag.thought_id)
        .join(Tag, Tag.id == ThoughtTag.tag_id)
        .where(owner_predicate(Tag, uid), Tag.name.in_(names))
        .group_by(ThoughtTag.thought_id)
        .having(func.count(distinct(Tag.name)) == len(names))
    )


async def create_thought(
    session: AsyncSession,
    *,
    uid: str,
    body: str,
    created_at: int | None = None,
) -> Thought:
    thought = Thought(uid=uid, body=body, created_at=created_at if created_at is not None else epoch_now())
    session.add(thought)
    await session.flush()
    return thought


async def get_thought(session: AsyncSession, uid: str, thought_id: int) -> Thought:
    # Soft-deleted rows are returned so job processing can detect deletion.
    result = await session.execute(
        select(Thought).where(Thought.id == thought_id, owner_predicate(Thought, uid))
    )
    thought = result.scalar_one_or_none()
    if thought is None:
        raise ThoughtNotFoundError(f"Thought {thought_id} not found")
    return thought


async def update_thought_body(session: AsyncSession, *, uid: str, thought_id: int, body: str) -> Thought:
    result = await session.execute(
        update(Thought)
        .where(Thought.id == thought_id, *_visible(uid))
        .values(body=body, updated_at=epoch_now(), error=None)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise ThoughtNotFoundError(f"Thought {thought_id} not found")
    thought = await get_thought(session, uid, thought_id)
    await session.refresh(thought)
    return thought


async def soft_delete_thought(session: AsyncSession, *, uid: str, thought_id: int) -> bool:
    result = await session.execute(
        update(Thought)
        .where(Thought.id == thought_id, *_visible(uid))
        .values(deleted_at=epoch_now())
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


async def list_thoughts(
    session: AsyncSession,
    uid: str,
    *,
    limit: int,
    after: KeysetPosition | None = None,
) -> list[Thought]:
    stmt = _ordered_page(select(Thought).where(*_visible(uid)), limit=limit, after=after)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_thoughts_by_tag_names(
    session: AsyncSession,
    uid: str,
    tag_names: list[str],
    *,
    limit: int,
    after: KeysetPosition | None = None,
) -> list[Thought]:
    names = unique_tag_names(tag_names)
    if not names:
        return []
    stmt = (
        select(Thought)
        .join(ThoughtTag, ThoughtTag.thought_id == Thought.id)
        .join(Tag, Tag.id == ThoughtTag.tag_id)
        .where(*_visible(uid), owner_predicate(Tag, uid), Tag.name.in_(names))
        .group_by(Thought.id)
        .having(func.count(distinct(Tag.name)) == len(names))
    )
    result = await session.execute(_ordered_page(stmt, limit=limit, after=after))
    return list(result.scalars().all())


async def list_thoughts_in_range(
    session: AsyncSession,
    uid: str,
    *,
    start: int,
    end: int,
    limit: int,
    after: KeysetPosition | None = None,
    tag_names: list[str] | None = None,
) -> list[Thought]:
    # Half-open [start, end) on created_at.
    stmt = select(Thought).where(
        *_visible(uid),
        Thought.created_at >= start,
        Thought.created_at < end,
    )
    if tag_names and unique_tag_names(tag_names):
        stmt = stmt.where(Thought.id.in_(tag_intersection_ids(uid, tag_names)))
    result = await session.execute(_ordered_page(stmt, limit=limit, after=after))
    return list(result.scalars().all())


async def count_thoughts_by_local_day(
    session: AsyncSession,
    uid: str,
    *,
    start: int,
    end: int,
    tz_offset_seconds: int,
    tag_names: list[str] | None = None,
) -> list[DayCount]:
    # Local day index = floor((utc - offset) / 86400), with UTC = local + offset.
    local_day = (Thought.created_at - literal(int(tz_offset_seconds))) // SECONDS_PER_DAY
    inner = (
        select(
            Thought.id.label("thought_id"),
            local_day.label("local_day"),
            ThoughtMood.mood_score.label("mood_score"),
        )
        .outerjoin(
            ThoughtMood,
            (ThoughtMood.thought_id == Thought.id) & (ThoughtMood.uid == Thought.uid),
        )
        .where(
            *_visible(uid),
            Thought.created_at >= start,
            Thought.created_at < end,
        )
    )
    if tag_names and unique_tag_names(tag_names):
        inner = inner.where(Thought.id.in_(tag_intersection_ids(uid, tag_names)))
    buckets = inner.subquery()
    stmt = (
        select(
            buckets.c.local_day,
            func.count(buckets.c.thought_id),
            func.avg(buckets.c.mood_score),
        )
        .group_by(buckets.c.local_day)
        .order_by(buckets.c.local_day)
    )
    result = await session.execute(stmt)
    return [
        DayCount(
            day=_EPOCH + timedelta(days=int(day_index)),
            count=int(count),
            mean_mood=float(mean) if mean is not None else None,
        )
        for day_index, count, mean in result.all()
    ]
