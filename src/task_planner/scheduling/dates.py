"""Local calendar utilities.

Every "today" and date-bucketing computation works on the viewer's local
wall-clock components. Nothing here reads the system clock directly: callers
pass a ``Clock`` (or an explicit date) so results are deterministic.
"""

import calendar
import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from task_planner.errors import InvalidDate

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[T ](\d{2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)
_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


class Clock(Protocol):
    """Source of the current local time."""

    def now(self) -> datetime:
        """Return the current time in the viewer's timezone."""
        ...


class SystemClock:
    """Clock backed by the host clock, pinned to a timezone."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        """Initialize clock; ``None`` means the host's local timezone."""
        self._tz = tz

    def now(self) -> datetime:
        """Return the current wall-clock time."""
        if self._tz is None:
            return datetime.now().astimezone()
        return datetime.now(self._tz)


class FixedClock:
    """Clock frozen at a given moment (tests, replays)."""

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = moment

    def advance(self, **kwargs: float) -> None:
        """Move the clock forward by ``timedelta(**kwargs)``."""
        self._moment = self._moment + timedelta(**kwargs)


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Resolve a configured timezone name.

    Supported forms:
      - None / "" / "local" / "system" -> None (host local timezone)
      - "UTC" / "Z" / "GMT" -> UTC
      - fixed offsets: "+02:00", "+0200", "-05:00"
      - IANA names, e.g. "Europe/Berlin"

    Raises:
        ValueError: If the identifier cannot be resolved
    """
    if name is None:
        return None
    value = str(name).strip()
    if not value or value.lower() in {"local", "system"}:
        return None
    if value.lower() in {"utc", "z", "gmt"}:
        return timezone.utc

    match = _OFFSET_RE.match(value)
    if match:
        sign_s, hh_s, mm_s = match.groups()
        hours, minutes = int(hh_s), int(mm_s)
        if hours > 23 or minutes > 59:
            raise ValueError(f"Invalid timezone offset: {value!r}")
        sign = 1 if sign_s == "+" else -1
        return timezone(sign * timedelta(hours=hours, minutes=minutes))

    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Invalid timezone identifier: {value!r}") from e


def today(clock: Clock) -> str:
    """Return today's date as YYYY-MM-DD from local year/month/day components."""
    now = clock.now()
    return f"{now.year:04d}-{now.month:02d}-{now.day:02d}"


def parse_calendar_date(value: Any) -> date:
    """Parse a calendar date from YYYY-MM-DD or the date part of a timestamp.

    ``date``/``datetime`` objects (as produced by YAML loaders) are accepted
    as-is. Any time or offset component is ignored: the date part is the
    local calendar day the user entered.

    Raises:
        InvalidDate: If the value is not a well-formed calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDate(value)

    match = _DATE_RE.match(value.strip())
    if not match:
        raise InvalidDate(value)
    year, month, day = (int(g) for g in match.group(1, 2, 3))
    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidDate(value) from e


def parse_calendar_date_or_none(value: Any) -> date | None:
    """Parse a calendar date, treating missing or malformed input as "no date"."""
    if value is None or value == "":
        return None
    try:
        return parse_calendar_date(value)
    except InvalidDate:
        logger.debug(f"[Dates] Treating unparseable date as no date: {value!r}")
        return None


def date_part(value: Any) -> str | None:
    """Return the YYYY-MM-DD part of a date/timestamp string, or None."""
    parsed = parse_calendar_date_or_none(value)
    return format_calendar_date(parsed) if parsed else None


def parse_local_datetime(value: Any) -> datetime | None:
    """Parse a local wall-clock timestamp that carries a time component.

    Returns a naive datetime, or None for date-only or malformed values.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        return None
    match = _DATE_RE.match(value.strip())
    if not match or match.group(4) is None:
        return None
    try:
        return datetime(
            int(match.group(1)),
            int(match.group(2)),
            int(match.group(3)),
            int(match.group(4)),
            int(match.group(5)),
            int(match.group(6) or 0),
        )
    except ValueError:
        return None


def normalize_to_midnight(moment: datetime) -> datetime:
    """Return the same local calendar day with the time zeroed."""
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def format_calendar_date(value: date) -> str:
    """Format a date as YYYY-MM-DD using local components."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def format_local_datetime(moment: datetime) -> str:
    """Format as YYYY-MM-DDTHH:MM:SS from local components, never via UTC."""
    return (
        f"{format_calendar_date(moment)}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def add_months(value: date, months: int) -> date:
    """Add calendar months, clamping to the last day of shorter months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def months_between(start: date, end: date) -> int:
    """Whole calendar-month difference ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def days_between(start: date, end: date) -> int:
    """Signed number of days from ``start`` to ``end``."""
    return (end - start).days


def week_start(value: date) -> date:
    """Sunday on or before ``value``."""
    # date.weekday(): Monday=0 ... Sunday=6
    return value - timedelta(days=(value.weekday() + 1) % 7)


def month_grid_start(value: date) -> date:
    """Sunday on or before the first day of ``value``'s month."""
    return week_start(value.replace(day=1))
