from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.apps.api.deps import Principal, get_current_principal, get_db
from thoughtlog.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from thoughtlog.apps.api.pagination import clamp_limit, decode_page_cursor, paginate
from thoughtlog.apps.api.response import SuccessEnvelope, success_response
from thoughtlog.persistence.keyset import KeysetPosition
from thoughtlog.persistence.repos.tags import TagStats, list_user_tags_with_stats
from thoughtlog.services.cursors import TAGS_SCOPE, TAGS_SORT

router = APIRouter(tags=["tags"], responses=DEFAULT_ERROR_RESPONSES)


class TagOut(BaseModel):
    id: int
    name: str
    created_at: int
    last_used_at: int | None = None
    thought_count: int
    most_recent_thought_at: int | None = None


class TagPage(BaseModel):
    tags: list[TagOut]
    next_cursor: str | None = None


def _position(tag: TagStats) -> KeysetPosition:
    # Never-used tags sort as last_used_at = 0.
    return KeysetPosition(value=tag.last_used_at or 0, id=tag.id)


@router.get("/tags", response_model=SuccessEnvelope[TagPage])
async def list_tags(
    request: Request,
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page_size = clamp_limit(limit, default=100)
    after = decode_page_cursor(cursor, scope=TAGS_SCOPE, uid=principal.uid, sort=TAGS_SORT)
    rows = await list_user_tags_with_stats(db, principal.uid, limit=page_size + 1, after=after)
    items, next_cursor = paginate(
        rows,
        limit=page_size,
        position_of=_position,
        scope=TAGS_SCOPE,
        uid=principal.uid,
        sort=TAGS_SORT,
    )
    data = TagPage(
        tags=[
            TagOut(
                id=tag.id,
                name=tag.name,
                created_at=tag.created_at,
                last_used_at=tag.last_used_at,
                thought_count=tag.thought_count,
                most_recent_thought_at=tag.most_recent_thought_at,
            )
            for tag in items
        ],
        next_cursor=next_cursor,
    )
    return success_response(request=request, data=data)
