from __future__ import annotations

from thoughtlog.domain.models import AnalysisJob, Thought, ThoughtMood
from thoughtlog.persistence.db import SessionLocal
from thoughtlog.persistence.repos import tags as tags_repo
from thoughtlog.persistence.repos.users import ensure_user


async def seed_user(uid: str) -> None:
    async with SessionLocal() as session:
        await ensure_user(session, uid=uid, email=f"{uid}@example.com", display_name=uid, photo_url=None)
        await session.commit()


async def seed_thought(
    uid: str,
    body: str,
    *,
    created_at: int,
    tags: list[str] | None = None,
    mood_score: int | None = None,
    deleted_at: int | None = None,
) -> int:
    async with SessionLocal() as session:
        thought = Thought(uid=uid, body=body, created_at=created_at, deleted_at=deleted_at)
        session.add(thought)
        await session.flush()
        if tags:
            await tags_repo.set_thought_tags(session, uid=uid, thought_id=thought.id, tag_names=tags)
        if mood_score is not None:
            session.add(
                ThoughtMood(
                    uid=uid,
                    thought_id=thought.id,
                    mood_score=mood_score,
                    explanation="seeded",
                    model="seed",
                )
            )
        await session.commit()
        return thought.id


async def seed_job(
    uid: str,
    thought_id: int,
    *,
    step: str,
    status: str = "queued",
    updated_at: int | None = None,
) -> int:
    async with SessionLocal() as session:
        job = AnalysisJob(uid=uid, thought_id=thought_id, step=step, status=status)
        if updated_at is not None:
            job.created_at = updated_at
            job.updated_at = updated_at
        session.add(job)
        await session.commit()
        return job.id


async def load_job_row(job_id: int) -> AnalysisJob | None:
    async with SessionLocal() as session:
        return await session.get(AnalysisJob, job_id)
