"""Tests for the one-off temporal classifier."""

from datetime import date

import pytest

from conftest import MakeTask
from task_planner.scheduling.classifier import (
    NO_DATE_BUCKET,
    DayReason,
    classify_for_day,
    due_bucket,
    is_overdue,
    timeline_bucket,
)


def test_overdue_task_rolls_over_to_today(make_task: MakeTask) -> None:
    task = make_task("File taxes", due_date="2025-06-01")
    today = date(2025, 6, 5)

    placement = classify_for_day(task, today, today)

    assert placement is not None
    assert placement.reason is DayReason.OVERDUE
    assert placement.is_overdue
    assert not placement.is_completed
    assert is_overdue(task, today)


def test_overdue_task_does_not_roll_into_other_days(make_task: MakeTask) -> None:
    task = make_task("File taxes", due_date="2025-06-01")
    today = date(2025, 6, 5)
    assert classify_for_day(task, date(2025, 6, 4), today) is None
    assert classify_for_day(task, date(2025, 6, 6), today) is None
    # Its own due date still shows it
    assert classify_for_day(task, date(2025, 6, 1), today).reason is DayReason.DUE


def test_undated_task_completed_today(make_task: MakeTask) -> None:
    task = make_task("Call mom", completed=True, completed_at="2025-08-01T10:00:00")

    placement = classify_for_day(task, date(2025, 8, 1), date(2025, 8, 1))
    assert placement is not None
    assert placement.is_completed

    # The next day it is neither today's task nor overdue
    tomorrow = date(2025, 8, 2)
    assert classify_for_day(task, tomorrow, tomorrow) is None
    assert not is_overdue(task, tomorrow)


def test_open_undated_task_lives_on_today_only(make_task: MakeTask) -> None:
    task = make_task("Someday")
    today = date(2025, 1, 15)
    placement = classify_for_day(task, today, today)
    assert placement is not None and placement.reason is DayReason.UNDATED
    assert classify_for_day(task, date(2025, 1, 16), today) is None
    assert classify_for_day(task, date(2025, 1, 14), today) is None


def test_due_date_wins_over_completion_date(make_task: MakeTask) -> None:
    task = make_task(
        "Report", due_date="2025-01-20", completed=True, completed_at="2025-01-14T09:00:00"
    )
    today = date(2025, 1, 15)

    on_due = classify_for_day(task, date(2025, 1, 20), today)
    assert on_due is not None
    assert on_due.reason is DayReason.DUE and on_due.is_completed

    on_completion = classify_for_day(task, date(2025, 1, 14), today)
    assert on_completion is not None
    assert on_completion.reason is DayReason.COMPLETED_ON_DAY


def test_completed_overdue_task_is_not_overdue(make_task: MakeTask) -> None:
    task = make_task(
        "Late", due_date="2025-01-10", completed=True, completed_at="2025-01-12T09:00:00"
    )
    today = date(2025, 1, 15)
    assert classify_for_day(task, today, today) is None
    assert not is_overdue(task, today)


def test_timestamp_due_date_uses_date_part(make_task: MakeTask) -> None:
    task = make_task("Dentist", due_date="2025-01-15T23:30:00")
    today = date(2025, 1, 15)
    assert classify_for_day(task, today, today).reason is DayReason.DUE


def test_malformed_due_date_counts_as_undated(make_task: MakeTask) -> None:
    task = make_task("Mystery", due_date="next tuesday")
    today = date(2025, 1, 15)
    assert classify_for_day(task, today, today).reason is DayReason.UNDATED


def test_recurring_tasks_are_not_classified(make_task: MakeTask) -> None:
    task = make_task("Daily", due_date="2025-01-01", recurrence="daily")
    today = date(2025, 1, 15)
    assert classify_for_day(task, today, today) is None
    assert not is_overdue(task, today)


@pytest.mark.parametrize(
    ("due", "key", "label"),
    [
        ("2025-01-10", "overdue", "Overdue"),
        ("2025-01-15", "today", "Due Today"),
        ("2025-01-16", "tomorrow", "Due Tomorrow"),
        ("2025-01-20", "due-2025-01-20", "Due Monday"),
        ("2025-01-22", "due-2025-01-22", "Due Wednesday"),
        ("2025-02-03", "due-2025-02-03", "Due Feb 3"),
    ],
)
def test_due_bucket(due: str, key: str, label: str) -> None:
    bucket = due_bucket(due, date(2025, 1, 15))
    assert (bucket.key, bucket.label) == (key, label)


def test_due_bucket_without_date() -> None:
    assert due_bucket(None, date(2025, 1, 15)) is NO_DATE_BUCKET


@pytest.mark.parametrize(
    ("effective", "bucket"),
    [
        (date(2025, 1, 14), "overdue"),
        (date(2025, 1, 15), "today"),
        (date(2025, 1, 16), "tomorrow"),
        (date(2025, 1, 22), "upcoming"),
        (date(2025, 1, 23), "later"),
    ],
)
def test_timeline_bucket(effective: date, bucket: str) -> None:
    assert timeline_bucket(effective, date(2025, 1, 15)) == bucket
