"""One-off temporal classifier.

Decides whether a non-recurring task belongs to a given day and in which
state. Every view goes through ``classify_for_day`` so day, week, month and
timeline never disagree.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from task_planner.models import Task
from task_planner.scheduling.dates import (
    add_days,
    days_between,
    format_calendar_date,
    parse_calendar_date_or_none,
)


class DayReason(str, Enum):
    """Which rule placed a one-off task on a day."""

    DUE = "due"
    COMPLETED_ON_DAY = "completed_on_day"
    UNDATED = "undated"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class DayPlacement:
    """Result of classifying one task for one day."""

    reason: DayReason
    is_completed: bool

    @property
    def is_overdue(self) -> bool:
        return self.reason is DayReason.OVERDUE


def classify_for_day(task: Task, day: date, today: date) -> DayPlacement | None:
    """Place a one-off task on ``day`` or return None when it does not belong.

    Rules, first match wins:
      1. due on ``day`` -> shown with the task's own completed flag
      2. completed on ``day`` -> shown as completed, whatever the due date
      3. no due date -> only on today, while open or if completed today
      4. due before ``day``, still open, ``day`` is today -> overdue rollover

    A malformed due date counts as no due date.
    """
    if task.is_recurring:
        return None

    due = parse_calendar_date_or_none(task.due_date)
    completed_on = parse_calendar_date_or_none(task.completed_at) if task.completed else None
    is_today = day == today

    if due is not None and due == day:
        return DayPlacement(DayReason.DUE, task.completed)
    if task.completed and completed_on == day:
        return DayPlacement(DayReason.COMPLETED_ON_DAY, True)
    if due is None:
        if is_today and (not task.completed or completed_on == day):
            return DayPlacement(DayReason.UNDATED, task.completed)
        return None
    if due < day and not task.completed and is_today:
        return DayPlacement(DayReason.OVERDUE, False)
    return None


def is_overdue(task: Task, today: date) -> bool:
    """Open one-off task whose due date has passed."""
    if task.is_recurring or task.completed:
        return False
    due = parse_calendar_date_or_none(task.due_date)
    return due is not None and due < today


@dataclass(frozen=True)
class DueBucket:
    """Relative due-date group used by the day view."""

    key: str
    label: str


NO_DATE_BUCKET = DueBucket("no-date", "No Due Date")


def due_bucket(value: str | date | None, today: date) -> DueBucket:
    """Bucket a due date relative to ``today``.

    Overdue, today, tomorrow, one group per weekday for the following week,
    then one group per later date.
    """
    due = parse_calendar_date_or_none(value)
    if due is None:
        return NO_DATE_BUCKET

    diff = days_between(today, due)
    if diff < 0:
        return DueBucket("overdue", "Overdue")
    if diff == 0:
        return DueBucket("today", "Due Today")
    if diff == 1:
        return DueBucket("tomorrow", "Due Tomorrow")
    key = f"due-{format_calendar_date(due)}"
    if diff <= 7:
        return DueBucket(key, f"Due {due.strftime('%A')}")
    return DueBucket(key, f"Due {due.strftime('%b')} {due.day}")


def timeline_bucket(effective: date, today: date) -> str:
    """Timeline bucket name for an effective date."""
    if effective < today:
        return "overdue"
    if effective == today:
        return "today"
    if effective == add_days(today, 1):
        return "tomorrow"
    if effective <= add_days(today, 7):
        return "upcoming"
    return "later"
