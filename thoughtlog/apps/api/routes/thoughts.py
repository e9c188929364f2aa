from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.apps.api.deps import Principal, get_current_principal, get_db
from thoughtlog.apps.api.errors import bad_request
from thoughtlog.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from thoughtlog.apps.api.pagination import clamp_limit, decode_page_cursor, paginate
from thoughtlog.apps.api.response import SuccessEnvelope, success_response
from thoughtlog.core.errors import ThoughtNotFoundError
from thoughtlog.domain.models import Thought
from thoughtlog.persistence.keyset import KeysetPosition
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.persistence.repos import moods as moods_repo
from thoughtlog.persistence.repos import tags as tags_repo
from thoughtlog.persistence.repos import thoughts as thoughts_repo
from thoughtlog.services.analysis.queue import create_analysis_jobs, dispatch_analysis_jobs
from thoughtlog.services.analysis.status import summarize_jobs
from thoughtlog.services.calendar import (
    CalendarInputError,
    parse_iso_date,
    parse_iso_month,
    parse_tz_offset_minutes,
    utc_range_for_local_day,
    utc_range_for_local_month,
)
from thoughtlog.services.cursors import THOUGHTS_SCOPE, THOUGHTS_SORT


logger = logging.getLogger(__name__)

router = APIRouter(tags=["thoughts"], responses=DEFAULT_ERROR_RESPONSES)

MAX_STATUS_IDS = 200


class ThoughtWriteRequest(BaseModel):
    body: Any = None


class MoodOut(BaseModel):
    score: int
    explanation: str
    model: str | None = None
    updated_at: int | None = None


class AnalysisOut(BaseModel):
    status: str
    total: int
    queued: int
    processing: int
    done: int
    error: int
    last_updated_at: int | None = None


class ThoughtOut(BaseModel):
    id: int
    body: str
    created_at: int
    updated_at: int | None = None
    status: str | None = None
    error: str | None = None
    tags: list[str]
    mood: MoodOut | None = None
    analysis: AnalysisOut | None = None


class ThoughtPage(BaseModel):
    thoughts: list[ThoughtOut]
    next_cursor: str | None = None


class JobOut(BaseModel):
    id: int
    step: str
    status: str


class ThoughtWriteResponse(BaseModel):
    thought: ThoughtOut
    jobs: list[JobOut]


class ThoughtResponse(BaseModel):
    thought: ThoughtOut


class StatusResponse(BaseModel):
    summaries: dict[str, AnalysisOut | None]


class DayCountsResponse(BaseModel):
    counts: dict[str, int]
    mood: dict[str, float | None]


class DeleteResponse(BaseModel):
    ok: bool


def _require_body(payload: ThoughtWriteRequest) -> str:
    if not isinstance(payload.body, str) or not payload.body.strip():
        raise bad_request("BODY_REQUIRED", "body is required")
    return payload.body


def parse_tags_param(raw: str | None) -> list[str]:
    if not raw:
        return []
    return thoughts_repo.unique_tag_names([part.strip() for part in raw.split(",")])


def parse_ids_param(raw: str | None) -> list[int]:
    # Skip anything that is not a positive integer; keep request order.
    ids: list[int] = []
    for part in (raw or "").split(","):
        part = part.strip()
        if part.isdigit() and int(part) > 0 and int(part) not in ids:
            ids.append(int(part))
    return ids


def _position(thought: Thought) -> KeysetPosition:
    return KeysetPosition(value=thought.created_at, id=thought.id)


async def serialize_thoughts(session: AsyncSession, uid: str, thoughts: list[Thought]) -> list[dict[str, Any]]:
    """Attach tags, mood and analysis summary with one batched read each."""
    ids = [thought.id for thought in thoughts]
    tag_map = await tags_repo.get_tag_names_for_thought_ids(session, uid, ids)
    mood_map = await moods_repo.get_moods_for_thought_ids(session, uid, ids)
    counts_map = await jobs_repo.summarize_for_thought_ids(session, uid, ids)
    payloads = []
    for thought in thoughts:
        mood = mood_map.get(thought.id)
        summary = summarize_jobs(counts_map[thought.id]) if thought.id in counts_map else None
        payloads.append(
            ThoughtOut(
                id=thought.id,
                body=thought.body,
                created_at=thought.created_at,
                updated_at=thought.updated_at,
                status=thought.status,
                error=thought.error,
                tags=tag_map.get(thought.id, []),
                mood=(
                    MoodOut(
                        score=mood.mood_score,
                        explanation=mood.explanation,
                        model=mood.model,
                        updated_at=mood.updated_at,
                    )
                    if mood is not None
                    else None
                ),
                analysis=AnalysisOut(**summary.to_dict()) if summary is not None else None,
            ).model_dump()
        )
    return payloads


async def _page_response(
    request: Request,
    session: AsyncSession,
    principal: Principal,
    rows: list[Thought],
    *,
    limit: int,
    context: str,
) -> dict:
    items, next_cursor = paginate(
        rows,
        limit=limit,
        position_of=_position,
        scope=THOUGHTS_SCOPE,
        uid=principal.uid,
        sort=THOUGHTS_SORT,
        context=context,
    )
    data = {
        "thoughts": await serialize_thoughts(session, principal.uid, items),
        "next_cursor": next_cursor,
    }
    return success_response(request=request, data=data)


async def _write_response(
    request: Request, session: AsyncSession, principal: Principal, thought: Thought, job_ids: list[int]
) -> dict:
    jobs = await jobs_repo.list_jobs_for_thought(session, principal.uid, thought.id)
    by_id = {job.id: job for job in jobs}
    data = {
        "thought": (await serialize_thoughts(session, principal.uid, [thought]))[0],
        "jobs": [
            JobOut(id=job_id, step=by_id[job_id].step, status=by_id[job_id].status).model_dump()
            for job_id in job_ids
            if job_id in by_id
        ],
    }
    return success_response(request=request, data=data)


@router.post("/thoughts", response_model=SuccessEnvelope[ThoughtWriteResponse])
async def create_thought(
    request: Request,
    payload: ThoughtWriteRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    body = _require_body(payload)
    thought = await thoughts_repo.create_thought(db, uid=principal.uid, body=body)
    job_ids = await create_analysis_jobs(db, uid=principal.uid, thought_id=thought.id)
    # Jobs must be durable before any worker can receive their ids.
    await db.commit()
    await dispatch_analysis_jobs(job_ids)
    logger.info("thought_created thought_id=%s jobs=%s", thought.id, job_ids)
    return await _write_response(request, db, principal, thought, job_ids)


@router.get("/thoughts", response_model=SuccessEnvelope[ThoughtPage])
async def list_thoughts(
    request: Request,
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page_size = clamp_limit(limit, default=50)
    after = decode_page_cursor(cursor, scope=THOUGHTS_SCOPE, uid=principal.uid, sort=THOUGHTS_SORT)
    rows = await thoughts_repo.list_thoughts(db, principal.uid, limit=page_size + 1, after=after)
    return await _page_response(request, db, principal, rows, limit=page_size, context="")


@router.get("/thoughts/analysis-status", response_model=SuccessEnvelope[StatusResponse])
async def analysis_status(
    request: Request,
    ids: str | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    thought_ids = parse_ids_param(ids)
    if len(thought_ids) > MAX_STATUS_IDS:
        raise bad_request("TOO_MANY_IDS", f"Too many ids (max {MAX_STATUS_IDS})")
    counts_map = await jobs_repo.summarize_for_thought_ids(db, principal.uid, thought_ids)
    summaries: dict[str, Any] = {}
    for thought_id in thought_ids:
        summary = summarize_jobs(counts_map[thought_id]) if thought_id in counts_map else None
        summaries[str(thought_id)] = summary.to_dict() if summary is not None else None
    return success_response(request=request, data={"summaries": summaries})


@router.get("/thoughts/by-tags", response_model=SuccessEnvelope[ThoughtPage])
async def list_thoughts_by_tags(
    request: Request,
    tags: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    tag_names = parse_tags_param(tags)
    if not tag_names:
        raise bad_request("TAGS_REQUIRED", "tags is required")
    context = "tags:" + ",".join(sorted(tag_names))
    page_size = clamp_limit(limit, default=50)
    after = decode_page_cursor(
        cursor, scope=THOUGHTS_SCOPE, uid=principal.uid, sort=THOUGHTS_SORT, context=context
    )
    rows = await thoughts_repo.list_thoughts_by_tag_names(
        db, principal.uid, tag_names, limit=page_size + 1, after=after
    )
    return await _page_response(request, db, principal, rows, limit=page_size, context=context)


@router.get("/thoughts/by-day", response_model=SuccessEnvelope[ThoughtPage])
async def list_thoughts_by_day(
    request: Request,
    date: str | None = Query(default=None),
    tz_offset_min: str | None = Query(default=None),
    tags: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    try:
        day = parse_iso_date(date or "")
    except CalendarInputError as exc:
        raise bad_request("INVALID_DATE", "date is required (YYYY-MM-DD)") from exc
    offset = parse_tz_offset_minutes(tz_offset_min)
    tag_names = parse_tags_param(tags)
    context = f"day:{day.isoformat()}:{offset}:" + ",".join(sorted(tag_names))
    page_size = clamp_limit(limit, default=200)
    after = decode_page_cursor(
        cursor, scope=THOUGHTS_SCOPE, uid=principal.uid, sort=THOUGHTS_SORT, context=context
    )
    window = utc_range_for_local_day(day, offset)
    rows = await thoughts_repo.list_thoughts_in_range(
        db,
        principal.uid,
        start=window.start,
        end=window.end,
        limit=page_size + 1,
        after=after,
        tag_names=tag_names or None,
    )
    return await _page_response(request, db, principal, rows, limit=page_size, context=context)


@router.get("/thoughts/day-counts", response_model=SuccessEnvelope[DayCountsResponse])
async def day_counts(
    request: Request,
    month: str | None = Query(default=None),
    tz_offset_min: str | None = Query(default=None),
    tags: str | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    try:
        year, month_number = parse_iso_month(month or "")
    except CalendarInputError as exc:
        raise bad_request("INVALID_MONTH", "month is required (YYYY-MM)") from exc
    offset = parse_tz_offset_minutes(tz_offset_min)
    tag_names = parse_tags_param(tags)
    window = utc_range_for_local_month(year, month_number, offset)
    rows = await thoughts_repo.count_thoughts_by_local_day(
        db,
        principal.uid,
        start=window.start,
        end=window.end,
        tz_offset_seconds=offset * 60,
        tag_names=tag_names or None,
    )
    data = {
        "counts": {row.day.isoformat(): row.count for row in rows},
        "mood": {row.day.isoformat(): row.mean_mood for row in rows},
    }
    return success_response(request=request, data=data)


@router.get("/thoughts/{thought_id}", response_model=SuccessEnvelope[ThoughtResponse])
async def get_thought(
    request: Request,
    thought_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    thought = await thoughts_repo.get_thought(db, principal.uid, thought_id)
    if thought.deleted_at is not None:
        raise ThoughtNotFoundError(f"Thought {thought_id} not found")
    data = {"thought": (await serialize_thoughts(db, principal.uid, [thought]))[0]}
    return success_response(request=request, data=data)


@router.patch("/thoughts/{thought_id}", response_model=SuccessEnvelope[ThoughtWriteResponse])
async def update_thought(
    request: Request,
    thought_id: int,
    payload: ThoughtWriteRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    body = _require_body(payload)
    thought = await thoughts_repo.update_thought_body(db, uid=principal.uid, thought_id=thought_id, body=body)
    # Fresh job rows per edit; earlier rows stay as the audit trail.
    job_ids = await create_analysis_jobs(db, uid=principal.uid, thought_id=thought.id)
    await db.commit()
    await dispatch_analysis_jobs(job_ids)
    logger.info("thought_updated thought_id=%s jobs=%s", thought.id, job_ids)
    return await _write_response(request, db, principal, thought, job_ids)


@router.delete("/thoughts/{thought_id}", response_model=SuccessEnvelope[DeleteResponse])
async def delete_thought(
    request: Request,
    thought_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Idempotent: deleting a missing or already deleted thought still succeeds.
    deleted = await thoughts_repo.soft_delete_thought(db, uid=principal.uid, thought_id=thought_id)
    await db.commit()
    if deleted:
        logger.info("thought_deleted thought_id=%s", thought_id)
    return success_response(request=request, data={"ok": True})
