from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any


MAX_TZ_OFFSET_MINUTES = 14 * 60
SECONDS_PER_DAY = 86400

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


class CalendarInputError(ValueError):
    # Raise for dates or months that are malformed or do not exist.
    pass


@dataclass(frozen=True)
class UtcRange:
    # Half-open [start, end) in epoch seconds.
    start: int
    end: int


def parse_tz_offset_minutes(raw: Any) -> int:
    """Parse a signed minute offset where UTC = local + offset.

    Non-numeric, non-finite or non-integer input means no offset; anything
    else is clamped to +/-14 hours.
    """
    if raw is None or isinstance(raw, bool):
        return 0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value) or not value.is_integer():
        return 0
    return max(-MAX_TZ_OFFSET_MINUTES, min(MAX_TZ_OFFSET_MINUTES, int(value)))


def parse_iso_date(raw: str) -> date:
    match = _DATE_RE.match(raw or "")
    if match is None:
        raise CalendarInputError("date must be YYYY-MM-DD")
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise CalendarInputError(f"{raw} is not a calendar date") from exc


def parse_iso_month(raw: str) -> tuple[int, int]:
    match = _MONTH_RE.match(raw or "")
    if match is None:
        raise CalendarInputError("month must be YYYY-MM")
    year, month = (int(part) for part in match.groups())
    if not 1 <= month <= 12 or not 1 <= year < 9999:
        raise CalendarInputError(f"{raw} is not a calendar month")
    return year, month


def _utc_midnight(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())


def utc_range_for_local_day(day: date, tz_offset_minutes: int) -> UtcRange:
    # Offsets changing inside the range (DST) are not modelled.
    start = _utc_midnight(day) + tz_offset_minutes * 60
    return UtcRange(start=start, end=start + SECONDS_PER_DAY)


def utc_range_for_local_month(year: int, month: int, tz_offset_minutes: int) -> UtcRange:
    first = date(year, month, 1)
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    offset_s = tz_offset_minutes * 60
    return UtcRange(start=_utc_midnight(first) + offset_s, end=_utc_midnight(following) + offset_s)
