from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from thoughtlog.services.calendar import (
    CalendarInputError,
    parse_iso_date,
    parse_iso_month,
    parse_tz_offset_minutes,
    utc_range_for_local_day,
    utc_range_for_local_month,
)


def _epoch(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, 0),
        ("", 0),
        ("abc", 0),
        ("12.5", 0),
        ("nan", 0),
        ("inf", 0),
        (True, 0),
        ("-60", -60),
        ("300", 300),
        (240.0, 240),
        ("10000", 840),
        ("-10000", -840),
    ],
)
def test_parse_tz_offset_minutes(raw: object, expected: int) -> None:
    assert parse_tz_offset_minutes(raw) == expected


def test_local_day_range_applies_offset() -> None:
    # UTC+1 local midnight is 23:00 UTC the previous day.
    window = utc_range_for_local_day(date(2024, 3, 10), -60)
    assert window.start == _epoch(2024, 3, 9, 23, 0)
    assert window.end - window.start == 86400


def test_local_day_range_west_of_utc() -> None:
    window = utc_range_for_local_day(date(2024, 3, 10), 300)
    assert window.start == _epoch(2024, 3, 10, 5, 0)


def test_local_month_range_spans_calendar_month() -> None:
    window = utc_range_for_local_month(2024, 2, 0)
    assert window.start == _epoch(2024, 2, 1)
    assert window.end == _epoch(2024, 3, 1)

    december = utc_range_for_local_month(2023, 12, 120)
    assert december.start == _epoch(2023, 12, 1, 2, 0)
    assert december.end == _epoch(2024, 1, 1, 2, 0)


def test_parse_iso_date() -> None:
    assert parse_iso_date("2024-02-29") == date(2024, 2, 29)
    for raw in ["2023-02-29", "2024-13-01", "2024-1-01", "20240101", ""]:
        with pytest.raises(CalendarInputError):
            parse_iso_date(raw)


def test_parse_iso_month() -> None:
    assert parse_iso_month("2024-12") == (2024, 12)
    for raw in ["2024-00", "2024-13", "0000-01", "9999-01", "2024-1", "2024-01-01"]:
        with pytest.raises(CalendarInputError):
            parse_iso_month(raw)
