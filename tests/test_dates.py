"""Tests for local calendar utilities."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from task_planner.errors import InvalidDate
from task_planner.scheduling.dates import (
    FixedClock,
    add_months,
    date_part,
    format_calendar_date,
    format_local_datetime,
    month_grid_start,
    normalize_to_midnight,
    parse_calendar_date,
    parse_calendar_date_or_none,
    parse_local_datetime,
    resolve_timezone,
    today,
    week_start,
)


def test_today_uses_local_components() -> None:
    """Late evening west of UTC is still the local day, not tomorrow in UTC."""
    moment = datetime(2025, 1, 15, 23, 30, tzinfo=ZoneInfo("America/New_York"))
    assert today(FixedClock(moment)) == "2025-01-15"


def test_today_after_midnight_east_of_utc() -> None:
    moment = datetime(2025, 1, 16, 0, 30, tzinfo=timezone(timedelta(hours=9)))
    assert today(FixedClock(moment)) == "2025-01-16"


def test_parse_calendar_date_accepts_date_and_timestamp() -> None:
    assert parse_calendar_date("2025-03-09") == date(2025, 3, 9)
    assert parse_calendar_date("2025-03-09T23:59:00") == date(2025, 3, 9)
    # The offset is ignored: the date part is what the user entered
    assert parse_calendar_date("2025-03-09T23:00:00-08:00") == date(2025, 3, 9)
    assert parse_calendar_date(datetime(2025, 3, 9, 22, 0)) == date(2025, 3, 9)


@pytest.mark.parametrize("value", ["", "tomorrow", "2025-13-01", "2025-02-30", "15/01/2025", None])
def test_parse_calendar_date_rejects_malformed(value: object) -> None:
    with pytest.raises(InvalidDate):
        parse_calendar_date(value)


def test_parse_calendar_date_or_none() -> None:
    assert parse_calendar_date_or_none(None) is None
    assert parse_calendar_date_or_none("not a date") is None
    assert parse_calendar_date_or_none("2025-01-02") == date(2025, 1, 2)


def test_date_part() -> None:
    assert date_part("2025-01-02T10:00:00") == "2025-01-02"
    assert date_part(None) is None


def test_parse_local_datetime() -> None:
    assert parse_local_datetime("2025-01-15T14:30:00") == datetime(2025, 1, 15, 14, 30)
    assert parse_local_datetime("2025-01-15 14:30") == datetime(2025, 1, 15, 14, 30)
    assert parse_local_datetime("2025-01-15") is None
    assert parse_local_datetime(None) is None


def test_normalize_to_midnight_keeps_local_day() -> None:
    tz = ZoneInfo("Europe/Berlin")
    moment = datetime(2025, 6, 1, 0, 15, tzinfo=tz)
    midnight = normalize_to_midnight(moment)
    assert midnight == datetime(2025, 6, 1, 0, 0, tzinfo=tz)


def test_formatting_never_goes_through_utc() -> None:
    moment = datetime(2025, 1, 15, 23, 5, 9, tzinfo=timezone(timedelta(hours=-8)))
    assert format_calendar_date(moment) == "2025-01-15"
    assert format_local_datetime(moment) == "2025-01-15T23:05:09"


def test_add_months_clamps_to_month_end() -> None:
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)
    assert add_months(date(2025, 3, 31), -1) == date(2025, 2, 28)


def test_week_start_is_sunday() -> None:
    assert week_start(date(2025, 1, 15)) == date(2025, 1, 12)
    assert week_start(date(2025, 1, 12)) == date(2025, 1, 12)
    assert week_start(date(2025, 1, 18)) == date(2025, 1, 12)


def test_month_grid_start() -> None:
    # February 2025 starts on a Saturday
    assert month_grid_start(date(2025, 2, 14)) == date(2025, 1, 26)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        (None, None),
        ("local", None),
        ("UTC", timezone.utc),
        ("+02:00", timezone(timedelta(hours=2))),
        ("-0530", timezone(-timedelta(hours=5, minutes=30))),
    ],
)
def test_resolve_timezone(name: str | None, expected: object) -> None:
    assert resolve_timezone(name) == expected


def test_resolve_timezone_iana_and_invalid() -> None:
    assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
    with pytest.raises(ValueError):
        resolve_timezone("Mars/Olympus_Mons")
