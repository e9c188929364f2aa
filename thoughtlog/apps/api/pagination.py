from __future__ import annotations

from typing import Callable, Sequence, TypeVar

from fastapi import HTTPException

from thoughtlog.apps.api.errors import bad_request
from thoughtlog.core.config import get_settings
from thoughtlog.persistence.keyset import KeysetPosition
from thoughtlog.services.cursors import CursorError, build_cursor, parse_cursor


T = TypeVar("T")

MAX_PAGE_SIZE = 200


def clamp_limit(raw: int | None, *, default: int, maximum: int = MAX_PAGE_SIZE) -> int:
    # Out-of-range limits are clamped rather than rejected.
    if raw is None:
        return default
    return max(1, min(maximum, raw))


def _invalid_cursor_error() -> HTTPException:
    return bad_request("INVALID_CURSOR", "Cursor is invalid or expired")


def decode_page_cursor(
    cursor: str | None,
    *,
    scope: str,
    uid: str,
    sort: str,
    context: str = "",
) -> KeysetPosition | None:
    if not cursor:
        return None
    try:
        return parse_cursor(
            cursor,
            scope=scope,
            uid=uid,
            sort=sort,
            secret=get_settings().cursor_secret,
            context=context,
        )
    except CursorError as exc:
        raise _invalid_cursor_error() from exc


def paginate(
    rows: Sequence[T],
    *,
    limit: int,
    position_of: Callable[[T], KeysetPosition],
    scope: str,
    uid: str,
    sort: str,
    context: str = "",
) -> tuple[list[T], str | None]:
    """Trim a ``limit + 1`` fetch to one page and sign the next cursor.

    The cursor is None on the last page.
    """
    items = list(rows[:limit])
    if len(rows) <= limit or not items:
        return items, None
    next_cursor = build_cursor(
        scope=scope,
        uid=uid,
        sort=sort,
        position=position_of(items[-1]),
        secret=get_settings().cursor_secret,
        context=context,
    )
    return items, next_cursor
