from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.domain.models import ThoughtMood, epoch_now
from thoughtlog.persistence.db import dialect_insert
from thoughtlog.persistence.guards import owner_predicate, require_uid


async def upsert_mood(
    session: AsyncSession,
    *,
    uid: str,
    thought_id: int,
    mood_score: int,
    explanation: str,
    model: str | None,
) -> None:
    # One row per thought; every successful mood job overwrites it.
    require_uid(uid)
    now = epoch_now()
    stmt = dialect_insert(session, ThoughtMood).values(
        uid=uid,
        thought_id=thought_id,
        mood_score=mood_score,
        explanation=explanation,
        model=model,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ThoughtMood.thought_id],
        set_={
            "uid": stmt.excluded.uid,
            "mood_score": stmt.excluded.mood_score,
            "explanation": stmt.excluded.explanation,
            "model": stmt.excluded.model,
            "updated_at": now,
        },
    )
    await session.execute(stmt)


async def get_moods_for_thought_ids(
    session: AsyncSession, uid: str, thought_ids: list[int]
) -> dict[int, ThoughtMood]:
    if not thought_ids:
        return {}
    result = await session.execute(
        select(ThoughtMood)
        .where(owner_predicate(ThoughtMood, uid), ThoughtMood.thought_id.in_(thought_ids))
        .execution_options(populate_existing=True)
    )
    return {mood.thought_id: mood for mood in result.scalars().all()}
