from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.domain.models import Tag, Thought, ThoughtTag, epoch_now
from thoughtlog.persistence.db import dialect_insert
from thoughtlog.persistence.guards import owner_predicate
from thoughtlog.persistence.keyset import KeysetPosition, keyset_after


@dataclass(frozen=True)
class TagStats:
    id: int
    name: str
    created_at: int
    last_used_at: int | None
    thought_count: int
    most_recent_thought_at: int | None


async def get_thought_tag_names(session: AsyncSession, uid: str, thought_id: int) -> list[str]:
    result = await session.execute(
        select(Tag.name)
        .join(ThoughtTag, ThoughtTag.tag_id == Tag.id)
        .where(owner_predicate(Tag, uid), ThoughtTag.thought_id == thought_id)
        .order_by(Tag.name)
    )
    return list(result.scalars().all())


async def get_tag_names_for_thought_ids(
    session: AsyncSession, uid: str, thought_ids: list[int]
) -> dict[int, list[str]]:
    names: dict[int, list[str]] = {thought_id: [] for thought_id in thought_ids}
    if not thought_ids:
        return names
    result = await session.execute(
        select(ThoughtTag.thought_id, Tag.name)
        .join(Tag, Tag.id == ThoughtTag.tag_id)
        .where(owner_predicate(Tag, uid), ThoughtTag.thought_id.in_(thought_ids))
        .order_by(ThoughtTag.thought_id, Tag.name)
    )
    for thought_id, name in result.all():
        names.setdefault(thought_id, []).append(name)
    return names


async def list_recent_user_tag_names(session: AsyncSession, uid: str, *, limit: int = 200) -> list[str]:
    # Vocabulary hint for the tagger prompt, most recently used first.
    result = await session.execute(
        select(Tag.name)
        .where(owner_predicate(Tag, uid))
        .order_by(func.coalesce(Tag.last_used_at, 0).desc(), Tag.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def upsert_tags(session: AsyncSession, uid: str, names: list[str]) -> dict[str, int]:
    """Ensure a tag row exists per name for the owner and return name -> id."""
    names = list(dict.fromkeys(names))
    if not names:
        return {}
    now = epoch_now()
    stmt = dialect_insert(session, Tag).values(
        [{"uid": uid, "name": name, "created_at": now} for name in names]
    )
    await session.execute(stmt.on_conflict_do_nothing(index_elements=[Tag.uid, Tag.name]))
    result = await session.execute(
        select(Tag.name, Tag.id).where(owner_predicate(Tag, uid), Tag.name.in_(names))
    )
    return {name: tag_id for name, tag_id in result.all()}


async def set_thought_tags(
    session: AsyncSession,
    *,
    uid: str,
    thought_id: int,
    tag_names: list[str],
) -> list[str]:
    """Replace the thought's tag set with ``tag_names`` and return the new set.

    Applies the symmetric difference against the current associations. Every
    tag the thought ends up carrying gets ``last_used_at`` bumped. The read and
    the writes are not isolated from a concurrent replacement of the same
    thought; the last writer's diff wins.
    """
    desired = list(dict.fromkeys(tag_names))
    current = set(await get_thought_tag_names(session, uid, thought_id))
    tag_ids = await upsert_tags(session, uid, desired)

    to_add = [name for name in desired if name not in current and name in tag_ids]
    to_remove = [name for name in current if name not in desired]

    now = epoch_now()
    if to_add:
        stmt = dialect_insert(session, ThoughtTag).values(
            [{"thought_id": thought_id, "tag_id": tag_ids[name], "created_at": now} for name in to_add]
        )
        await session.execute(
            stmt.on_conflict_do_nothing(index_elements=[ThoughtTag.thought_id, ThoughtTag.tag_id])
        )
    if to_remove:
        remove_ids = select(Tag.id).where(owner_predicate(Tag, uid), Tag.name.in_(to_remove))
        await session.execute(
            delete(ThoughtTag)
            .where(ThoughtTag.thought_id == thought_id, ThoughtTag.tag_id.in_(remove_ids))
            .execution_options(synchronize_session=False)
        )
    if tag_ids:
        await session.execute(
            update(Tag)
            .where(owner_predicate(Tag, uid), Tag.id.in_(list(tag_ids.values())))
            .values(last_used_at=now)
            .execution_options(synchronize_session=False)
        )
    return sorted(desired)


async def list_user_tags_with_stats(
    session: AsyncSession,
    uid: str,
    *,
    limit: int,
    after: KeysetPosition | None = None,
) -> list[TagStats]:
    # Usage only counts non-deleted thoughts; unused tags still appear with zero.
    last_used = func.coalesce(Tag.last_used_at, 0)
    stmt = (
        select(
            Tag.id,
            Tag.name,
            Tag.created_at,
            Tag.last_used_at,
            func.count(Thought.id),
            func.max(Thought.created_at),
        )
        .outerjoin(ThoughtTag, ThoughtTag.tag_id == Tag.id)
        .outerjoin(
            Thought,
            (Thought.id == ThoughtTag.thought_id)
            & (Thought.uid == Tag.uid)
            & Thought.deleted_at.is_(None),
        )
        .where(owner_predicate(Tag, uid))
        .group_by(Tag.id, Tag.name, Tag.created_at, Tag.last_used_at)
    )
    if after is not None:
        stmt = stmt.where(keyset_after(last_used, Tag.id, after))
    stmt = stmt.order_by(last_used.desc(), Tag.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return [
        TagStats(
            id=tag_id,
            name=name,
            created_at=created_at,
            last_used_at=last_used_at,
            thought_count=int(thought_count),
            most_recent_thought_at=most_recent_thought_at,
        )
        for tag_id, name, created_at, last_used_at, thought_count, most_recent_thought_at in result.all()
    ]
