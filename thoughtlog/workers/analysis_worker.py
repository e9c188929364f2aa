from __future__ import annotations

import asyncio
import logging

from arq.connections import RedisSettings

from thoughtlog.core.config import get_settings
from thoughtlog.core.logging import configure_logging
from thoughtlog.providers.ai.factory import get_ai_client
from thoughtlog.services.analysis.queue import handle_job_message, set_worker_heartbeat


logger = logging.getLogger(__name__)


async def process_analysis_job(ctx, message: dict) -> str:
    # Returning acknowledges; arq.Retry from the handler asks for redelivery.
    logger.debug("analysis_job_delivery job_try=%s message=%r", ctx.get("job_try"), message)
    return await handle_job_message(message, ai_client=ctx["ai_client"])


async def _heartbeat_loop() -> None:
    # Emit heartbeats on a fixed interval for operator health checks.
    settings = get_settings()
    while True:
        try:
            await set_worker_heartbeat()
        except Exception:  # noqa: BLE001 - keep the loop alive while Redis recovers
            logger.exception("worker heartbeat failed")
        await asyncio.sleep(settings.worker_heartbeat_interval_s)


async def _startup(ctx) -> None:
    configure_logging()
    # One AI client per worker process so connections are pooled across jobs.
    ctx["ai_client"] = get_ai_client()
    ctx["heartbeat_task"] = asyncio.create_task(_heartbeat_loop())


async def _shutdown(ctx) -> None:
    task = ctx.get("heartbeat_task")
    if task:
        task.cancel()
    ai_client = ctx.get("ai_client")
    if ai_client is not None:
        await ai_client.aclose()


class WorkerSettings:
    # Keep worker configuration as class attributes for arq CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.analysis_queue_name
    # Retries are unbounded in the pipeline; this is the substrate's own ceiling.
    max_tries = max(1, int(settings.analysis_queue_max_tries))
    functions = [process_analysis_job]
    on_startup = _startup
    on_shutdown = _shutdown
