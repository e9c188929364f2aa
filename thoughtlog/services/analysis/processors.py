from __future__ import annotations

import logging
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.domain.models import AnalysisJob
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.providers.ai.base import AIClient
from thoughtlog.services.analysis import mood, tagging
from thoughtlog.services.analysis.lifecycle import JobRun


logger = logging.getLogger(__name__)

Processor = Callable[..., Awaitable[None]]

# Steps created for every thought write, in enqueue order.
ANALYSIS_STEPS: tuple[str, ...] = (tagging.STEP, mood.STEP)

PROCESSORS: dict[str, Processor] = {
    tagging.STEP: tagging.process_tagging_job,
    mood.STEP: mood.process_mood_job,
}


async def process_job(
    session: AsyncSession,
    job_id: int,
    *,
    ai_client: AIClient,
    run: JobRun,
) -> AnalysisJob:
    """Load a job and run the processor registered for its step.

    Failures propagate; the consumer owns error recording and redelivery.
    """
    job = await jobs_repo.load_job(session, job_id)
    processor = PROCESSORS.get(job.step)
    if processor is None:
        # Unknown steps complete as a no-op so older workers tolerate newer producers.
        if job.status != jobs_repo.JOB_DONE:
            logger.warning("analysis_job_unknown_step job_id=%s step=%s", job.id, job.step)
            await jobs_repo.mark_done(session, job.id, {"skipped": "unknown_step", "step": job.step})
            await session.commit()
        return job
    await processor(session, job, ai_client=ai_client, run=run)
    return job
