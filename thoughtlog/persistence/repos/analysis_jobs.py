from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.core.errors import JobNotFoundError
from thoughtlog.domain.models import AnalysisJob, epoch_now
from thoughtlog.persistence.guards import owner_predicate, require_uid


JOB_QUEUED = "queued"
JOB_PROCESSING = "processing"
JOB_DONE = "done"
JOB_ERROR = "error"


@dataclass(frozen=True)
class JobStatusCounts:
    total: int
    queued: int
    processing: int
    done: int
    error: int
    last_updated_at: int | None


async def create_job(session: AsyncSession, *, uid: str, thought_id: int, step: str) -> AnalysisJob:
    # The caller hands the id to the queue after committing.
    require_uid(uid)
    now = epoch_now()
    job = AnalysisJob(
        uid=uid,
        thought_id=thought_id,
        step=step,
        status=JOB_QUEUED,
        attempts=0,
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    await session.flush()
    return job


async def load_job(session: AsyncSession, job_id: int) -> AnalysisJob:
    # Lookup by primary key only; the job row carries its owner for every later read.
    result = await session.execute(
        select(AnalysisJob).where(AnalysisJob.id == job_id).execution_options(populate_existing=True)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    return job


async def mark_processing(session: AsyncSession, job_id: int) -> bool:
    """Claim the job for processing.

    Conditional on ``status != 'done'``; the affected-row count is the only
    signal to proceed. A lagging or duplicate delivery of a completed job gets
    ``False``. Two deliveries racing on a queued row can both win.
    """
    result = await session.execute(
        update(AnalysisJob)
        .where(AnalysisJob.id == job_id, AnalysisJob.status != JOB_DONE)
        .values(status=JOB_PROCESSING, updated_at=epoch_now())
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


async def increment_attempts(session: AsyncSession, job_id: int) -> None:
    await session.execute(
        update(AnalysisJob)
        .where(AnalysisJob.id == job_id)
        .values(attempts=AnalysisJob.attempts + 1, updated_at=epoch_now())
        .execution_options(synchronize_session=False)
    )


async def mark_done(session: AsyncSession, job_id: int, result: dict[str, Any]) -> None:
    await session.execute(
        update(AnalysisJob)
        .where(AnalysisJob.id == job_id)
        .values(
            status=JOB_DONE,
            error=None,
            error_stack=None,
            error_details=None,
            result=result,
            updated_at=epoch_now(),
        )
        .execution_options(synchronize_session=False)
    )


async def mark_error(
    session: AsyncSession,
    job_id: int,
    *,
    message: str,
    stack: str | None,
    details: dict[str, Any] | None,
    attempts_delta: int,
) -> None:
    # Done is terminal: a late failure report from a duplicate delivery is dropped.
    await session.execute(
        update(AnalysisJob)
        .where(AnalysisJob.id == job_id, AnalysisJob.status != JOB_DONE)
        .values(
            status=JOB_ERROR,
            error=message,
            error_stack=stack,
            error_details=details,
            attempts=AnalysisJob.attempts + max(0, int(attempts_delta)),
            updated_at=epoch_now(),
        )
        .execution_options(synchronize_session=False)
    )


async def list_jobs_for_thought(session: AsyncSession, uid: str, thought_id: int) -> list[AnalysisJob]:
    result = await session.execute(
        select(AnalysisJob)
        .where(owner_predicate(AnalysisJob, uid), AnalysisJob.thought_id == thought_id)
        .order_by(AnalysisJob.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_stale_queued_jobs(session: AsyncSession, *, older_than: int, limit: int) -> list[AnalysisJob]:
    # Operator sweep: queued rows whose message may never have been sent.
    result = await session.execute(
        select(AnalysisJob)
        .where(AnalysisJob.status == JOB_QUEUED, AnalysisJob.updated_at < older_than)
        .order_by(AnalysisJob.created_at, AnalysisJob.id)
        .limit(limit)
    )
    return list(result.scalars().all())


def _status_count(status: str):
    return func.sum(case((AnalysisJob.status == status, 1), else_=0))


async def summarize_for_thought_ids(
    session: AsyncSession, uid: str, thought_ids: list[int]
) -> dict[int, JobStatusCounts]:
    # One grouped read; thoughts without jobs are absent from the mapping.
    if not thought_ids:
        return {}
    stmt = (
        select(
            AnalysisJob.thought_id,
            func.count(AnalysisJob.id),
            _status_count(JOB_QUEUED),
            _status_count(JOB_PROCESSING),
            _status_count(JOB_DONE),
            _status_count(JOB_ERROR),
            func.max(AnalysisJob.updated_at),
        )
        .where(owner_predicate(AnalysisJob, uid), AnalysisJob.thought_id.in_(thought_ids))
        .group_by(AnalysisJob.thought_id)
    )
    result = await session.execute(stmt)
    return {
        thought_id: JobStatusCounts(
            total=int(total or 0),
            queued=int(queued or 0),
            processing=int(processing or 0),
            done=int(done or 0),
            error=int(error or 0),
            last_updated_at=int(last_updated_at) if last_updated_at is not None else None,
        )
        for thought_id, total, queued, processing, done, error, last_updated_at in result.all()
    }
