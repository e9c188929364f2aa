from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Any

from arq import Retry, create_pool
from arq.connections import RedisSettings
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.core.config import get_settings
from thoughtlog.core.errors import NotFoundError
from thoughtlog.domain.models import epoch_now
from thoughtlog.persistence.db import SessionLocal
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.providers.ai.base import AIClient
from thoughtlog.providers.ai.factory import get_ai_client
from thoughtlog.services.analysis.lifecycle import JobRun
from thoughtlog.services.analysis.processors import ANALYSIS_STEPS, process_job


logger = logging.getLogger(__name__)

JOB_FUNCTION = "process_analysis_job"
# Keep heartbeat key stable for operator lookups.
WORKER_HEARTBEAT_KEY = "thoughtlog:worker:heartbeat"

_redis_pool = None
_redis_pool_loop = None
_redis_lock = asyncio.Lock()


class AnalysisJobMessage(BaseModel):
    # Wire shape of a queued message: {"jobId": <int>}.
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    job_id: StrictInt = Field(alias="jobId")


def parse_job_message(message: Any) -> int | None:
    # Malformed messages are acknowledged and dropped, never retried.
    if not isinstance(message, dict):
        return None
    try:
        return AnalysisJobMessage.model_validate(message).job_id
    except ValidationError:
        return None


def _inline_mode() -> bool:
    return get_settings().analysis_execution_mode.lower() == "inline"


async def get_redis_pool():
    # Cache the Redis pool to avoid reconnecting on every enqueue.
    global _redis_pool, _redis_pool_loop
    current_loop = asyncio.get_running_loop()
    if _redis_pool is not None and _redis_pool_loop == current_loop:
        return _redis_pool
    if _redis_pool is not None and _redis_pool_loop != current_loop:
        # Drop loop-bound pools to avoid cross-loop errors in tests.
        _redis_pool = None
    async with _redis_lock:
        if _redis_pool is None:
            settings = get_settings()
            _redis_pool = await create_pool(
                RedisSettings.from_dsn(settings.redis_url),
                default_queue_name=settings.analysis_queue_name,
            )
            _redis_pool_loop = current_loop
    return _redis_pool


async def set_worker_heartbeat(*, timestamp: int | None = None) -> None:
    if _inline_mode():
        # Inline mode does not run a worker.
        return
    redis = await get_redis_pool()
    await redis.set(WORKER_HEARTBEAT_KEY, str(timestamp if timestamp is not None else epoch_now()))


async def get_worker_heartbeat() -> int | None:
    # None when the heartbeat is missing or Redis is unavailable.
    if _inline_mode():
        return None
    try:
        redis = await get_redis_pool()
        raw_value = await redis.get(WORKER_HEARTBEAT_KEY)
    except Exception:  # noqa: BLE001 - operators handle degraded Redis
        return None
    if not raw_value:
        return None
    value = raw_value.decode("utf-8") if isinstance(raw_value, (bytes, bytearray)) else str(raw_value)
    try:
        return int(value)
    except ValueError:
        return None


async def create_analysis_jobs(session: AsyncSession, *, uid: str, thought_id: int) -> list[int]:
    # One job per step; the caller commits before dispatching.
    job_ids = []
    for step in ANALYSIS_STEPS:
        job = await jobs_repo.create_job(session, uid=uid, thought_id=thought_id, step=step)
        job_ids.append(job.id)
    return job_ids


async def enqueue_analysis_job(job_id: int) -> None:
    settings = get_settings()
    if _inline_mode():
        await _run_inline_job(job_id)
        return
    redis = await get_redis_pool()
    await redis.enqueue_job(JOB_FUNCTION, {"jobId": job_id}, _queue_name=settings.analysis_queue_name)


async def dispatch_analysis_jobs(job_ids: list[int]) -> None:
    """Hand committed job ids to the queue.

    A failed send leaves the row queued; readers tolerate that and
    scripts/requeue_stuck_jobs.py recovers it.
    """
    for job_id in job_ids:
        try:
            await enqueue_analysis_job(job_id)
        except Exception:  # noqa: BLE001 - the job row is already durable
            logger.exception("analysis_enqueue_failed job_id=%s", job_id)


async def _run_inline_job(job_id: int) -> None:
    # Inline mode records failures on the job row but has nothing to redeliver with.
    ai_client = get_ai_client()
    try:
        await handle_job_message({"jobId": job_id}, ai_client=ai_client)
    except Retry:
        logger.warning("analysis_inline_job_failed job_id=%s", job_id)
    finally:
        await ai_client.aclose()


def _error_payload(exc: BaseException) -> dict[str, Any]:
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return {
        "name": type(exc).__name__,
        "message": str(exc) or type(exc).__name__,
        "stack": stack,
        "details": getattr(exc, "details", None),
    }


async def record_job_failure(job_id: int, exc: BaseException, run: JobRun) -> None:
    # Best effort: a failure here must not prevent the redelivery request.
    payload = _error_payload(exc)
    try:
        async with SessionLocal() as session:
            await jobs_repo.mark_error(
                session,
                job_id,
                message=payload["message"],
                stack=payload["stack"],
                details=payload,
                attempts_delta=0 if run.attempt_recorded else 1,
            )
            await session.commit()
    except Exception:  # noqa: BLE001 - diagnostics are best effort
        logger.exception("analysis_job_error_not_recorded job_id=%s", job_id)


async def handle_job_message(message: Any, *, ai_client: AIClient) -> str:
    """Process one delivered message and return how it was acknowledged.

    Returns ``dropped`` for malformed messages, ``not_found`` when the job or
    its thought is gone, ``processed`` otherwise. Any other failure is
    recorded on the job row and re-raised as ``arq.Retry`` with the fixed
    redelivery delay.
    """
    job_id = parse_job_message(message)
    if job_id is None:
        logger.warning("analysis_message_dropped message=%r", message)
        return "dropped"

    run = JobRun(job_id=job_id)
    try:
        async with SessionLocal() as session:
            await process_job(session, job_id, ai_client=ai_client, run=run)
    except NotFoundError as exc:
        logger.warning("analysis_job_not_found job_id=%s error=%s", job_id, exc)
        await record_job_failure(job_id, exc, run)
        return "not_found"
    except Exception as exc:  # noqa: BLE001 - single catch point for processor failures
        logger.exception("analysis_job_failed job_id=%s", job_id)
        await record_job_failure(job_id, exc, run)
        raise Retry(defer=get_settings().analysis_retry_delay_s) from exc
    return "processed"
