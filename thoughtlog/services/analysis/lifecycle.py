from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.domain.models import AnalysisJob, Thought
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.persistence.repos.thoughts import get_thought


@dataclass
class JobRun:
    # Per-delivery state shared between a processor and the consumer's error path.
    job_id: int
    attempt_recorded: bool = False


async def begin_job(session: AsyncSession, job: AnalysisJob, run: JobRun) -> bool:
    """Claim the job and count the attempt; False means a no-op delivery."""
    if job.status == jobs_repo.JOB_DONE:
        return False
    if not await jobs_repo.mark_processing(session, job.id):
        return False
    await jobs_repo.increment_attempts(session, job.id)
    run.attempt_recorded = True
    # Commit so readers observe processing while the AI call is in flight.
    await session.commit()
    return True


async def load_live_thought(session: AsyncSession, job: AnalysisJob) -> Thought | None:
    # Deletion racing with delivery is expected; the job completes as skipped.
    thought = await get_thought(session, job.uid, job.thought_id)
    if thought.deleted_at is not None:
        await jobs_repo.mark_done(session, job.id, {"skipped": "thought_deleted"})
        await session.commit()
        return None
    return thought
