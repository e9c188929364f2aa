from __future__ import annotations

import argparse
import asyncio

from thoughtlog.core.config import get_settings
from thoughtlog.core.logging import configure_logging
from thoughtlog.domain.models import epoch_now
from thoughtlog.persistence.db import SessionLocal
from thoughtlog.persistence.repos.analysis_jobs import list_stale_queued_jobs
from thoughtlog.services.analysis.queue import enqueue_analysis_job, get_worker_heartbeat


async def _run_requeue(older_than_s: int, limit: int, dry_run: bool) -> None:
    # Re-send queued jobs whose original message was lost between commit and enqueue.
    now = epoch_now()
    heartbeat = await get_worker_heartbeat()
    if heartbeat is None:
        print("worker_heartbeat=missing")
    else:
        print(f"worker_heartbeat_age_s={now - heartbeat}")

    async with SessionLocal() as session:
        jobs = await list_stale_queued_jobs(session, older_than=now - older_than_s, limit=limit)
    print(f"stale_queued_jobs={len(jobs)}")
    if dry_run:
        for job in jobs:
            print(f"would_requeue job_id={job.id} step={job.step} thought_id={job.thought_id}")
        return

    requeued = 0
    for job in jobs:
        # Duplicate deliveries are harmless: done jobs are never reprocessed.
        await enqueue_analysis_job(job.id)
        requeued += 1
    print(f"requeued_jobs={requeued}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-enqueue analysis jobs stuck in queued")
    parser.add_argument("--older-than-s", type=int, default=None)
    parser.add_argument("--limit", type=int, default=500)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    older_than = args.older_than_s if args.older_than_s is not None else settings.analysis_stuck_after_s
    asyncio.run(_run_requeue(older_than, max(1, args.limit), args.dry_run))


if __name__ == "__main__":
    main()
