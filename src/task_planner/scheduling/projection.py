"""View projection layer.

Turns tasks + completion records into the lists each view renders. All
builders are pure functions of (tasks, records, date, options); "today" is
always passed in explicitly.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from task_planner.errors import AmbiguousRecurrenceAnchor
from task_planner.models import CompletionRecord, Task
from task_planner.scheduling.classifier import (
    DayReason,
    classify_for_day,
    due_bucket,
    timeline_bucket,
)
from task_planner.scheduling.dates import (
    add_days,
    date_part,
    format_calendar_date,
    month_grid_start,
    parse_calendar_date,
    week_start,
)
from task_planner.scheduling.ledger import is_completed
from task_planner.scheduling.recurrence import expand, latest_occurrence_on_or_before

logger = logging.getLogger(__name__)

SortBy = Literal["type", "priority", "due"]
SortOrder = Literal["asc", "desc"]
StatusFilter = Literal["all", "active", "completed"]

PRIORITY_SCORE = {"high": 3, "medium": 2, "low": 1}
TIMELINE_BUCKETS = ("overdue", "today", "tomorrow", "upcoming", "later")
MONTH_GRID_DAYS = 42

_UNDATED = "9999-12-31"


@dataclass(frozen=True)
class Occurrence:
    """One task on one calendar date."""

    task: Task
    instance_date: str
    is_recurring: bool
    is_completed: bool
    reason: str  # "recurring" or a DayReason value

    @property
    def is_overdue(self) -> bool:
        return self.reason == DayReason.OVERDUE.value

    @property
    def effective_date(self) -> str | None:
        """Date used for due-based ordering: instance date for recurring tasks."""
        if self.is_recurring:
            return self.instance_date
        return date_part(self.task.due_date)


def task_sort_key(task: Task, effective_date: str | None = None) -> tuple[int, str, str, str]:
    """Shared deterministic order: priority desc, due asc (undated last), creation asc.

    Inside a single priority group this reduces to due date then creation,
    which is the tie-break used when the view is already sorted by priority.
    """
    due = effective_date if effective_date is not None else date_part(task.due_date)
    return (
        -PRIORITY_SCORE.get(task.priority, PRIORITY_SCORE["medium"]),
        due or _UNDATED,
        task.created_at or "",
        task.id,
    )


def occurrence_sort_key(occurrence: Occurrence) -> tuple[int, str, str, str]:
    return task_sort_key(occurrence.task, occurrence.effective_date)


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Sort tasks with the shared tie-break."""
    return sorted(tasks, key=task_sort_key)


@dataclass(frozen=True)
class TaskFilter:
    """Category filter on tasks and status filter on occurrences."""

    status: StatusFilter = "all"
    category_id: str | None = None

    def apply(self, tasks: Iterable[Task]) -> list[Task]:
        if self.category_id is None:
            return list(tasks)
        return [t for t in tasks if t.category_id == self.category_id]

    def keep(self, completed: bool) -> bool:
        if self.status == "active":
            return not completed
        if self.status == "completed":
            return completed
        return True


def _recurring_dates(task: Task, start: date, end: date) -> list[str]:
    try:
        return expand(task, start, end)
    except AmbiguousRecurrenceAnchor:
        # Logged by the expander; never expand from an arbitrary epoch
        return []


def day_occurrences(
    tasks: Iterable[Task], records: Sequence[CompletionRecord], day: date, today: date
) -> list[Occurrence]:
    """All occurrences (recurring + one-off) placed on ``day``.

    Every view builds its per-day content from this function.
    """
    day_str = format_calendar_date(day)
    result: list[Occurrence] = []
    for task in tasks:
        if task.is_recurring:
            if _recurring_dates(task, day, day):
                result.append(
                    Occurrence(
                        task=task,
                        instance_date=day_str,
                        is_recurring=True,
                        is_completed=is_completed(task.id, day_str, records),
                        reason="recurring",
                    )
                )
            continue

        placement = classify_for_day(task, day, today)
        if placement is not None:
            result.append(
                Occurrence(
                    task=task,
                    instance_date=day_str,
                    is_recurring=False,
                    is_completed=placement.is_completed,
                    reason=placement.reason.value,
                )
            )
    return result


# --- Day view -------------------------------------------------------------


@dataclass
class OccurrenceGroup:
    key: str
    label: str
    occurrences: list[Occurrence] = field(default_factory=list)


@dataclass
class DayView:
    date: str
    is_today: bool
    is_past: bool
    sort_by: SortBy
    order: SortOrder
    groups: list[OccurrenceGroup]
    total: int
    completed: int


_TYPE_GROUPS = (("tasks", "Tasks"), ("recurring", "Recurring"))
_PRIORITY_GROUPS = (
    ("high", "High Priority"),
    ("medium", "Normal Priority"),
    ("low", "Low Priority"),
)


def _group_by_type(occurrences: list[Occurrence]) -> list[OccurrenceGroup]:
    groups = []
    for key, label in _TYPE_GROUPS:
        members = [o for o in occurrences if o.is_recurring == (key == "recurring")]
        if members:
            groups.append(OccurrenceGroup(key, label, members))
    return groups


def _group_by_priority(occurrences: list[Occurrence]) -> list[OccurrenceGroup]:
    groups = []
    for key, label in _PRIORITY_GROUPS:
        members = [o for o in occurrences if (o.task.priority or "medium") == key]
        if members:
            groups.append(OccurrenceGroup(key, label, members))
    return groups


def _group_by_due(occurrences: list[Occurrence], today: date) -> list[OccurrenceGroup]:
    by_date = sorted(
        occurrences, key=lambda o: ((o.effective_date or _UNDATED),) + occurrence_sort_key(o)
    )
    groups: dict[str, OccurrenceGroup] = {}
    for occurrence in by_date:
        bucket = due_bucket(occurrence.effective_date, today)
        group = groups.setdefault(bucket.key, OccurrenceGroup(bucket.key, bucket.label))
        group.occurrences.append(occurrence)
    return list(groups.values())


def build_day_view(
    tasks: Iterable[Task],
    records: Sequence[CompletionRecord],
    day: date,
    today: date,
    sort_by: SortBy = "type",
    order: SortOrder = "asc",
    task_filter: TaskFilter | None = None,
) -> DayView:
    """Group the day's occurrences by type, priority or due bucket.

    Args:
        tasks: Owner's tasks
        records: Completion ledger records
        day: Selected day
        today: Viewer's local today
        sort_by: Grouping key
        order: "asc" keeps the natural group order, "desc" reverses it
        task_filter: Optional category/status filter

    Returns:
        DayView with non-empty groups only
    """
    task_filter = task_filter or TaskFilter()
    occurrences = [
        o
        for o in day_occurrences(task_filter.apply(tasks), records, day, today)
        if task_filter.keep(o.is_completed)
    ]
    occurrences.sort(key=occurrence_sort_key)

    if sort_by == "priority":
        groups = _group_by_priority(occurrences)
    elif sort_by == "due":
        groups = _group_by_due(occurrences, today)
    else:
        groups = _group_by_type(occurrences)

    if order == "desc":
        groups.reverse()

    return DayView(
        date=format_calendar_date(day),
        is_today=day == today,
        is_past=day < today,
        sort_by=sort_by,
        order=order,
        groups=groups,
        total=len(occurrences),
        completed=sum(1 for o in occurrences if o.is_completed),
    )


# --- Week view ------------------------------------------------------------


@dataclass
class WeekDay:
    date: str
    weekday: str
    day_num: int
    is_today: bool
    is_past: bool


@dataclass
class GridCell:
    date: str
    scheduled: bool
    completed: bool = False


@dataclass
class RecurringRow:
    task: Task
    cells: list[GridCell]


@dataclass
class DayTaskList:
    date: str
    label: str
    occurrences: list[Occurrence]


@dataclass
class WeekView:
    start: str
    end: str
    days: list[WeekDay]
    recurring_rows: list[RecurringRow]
    one_off_days: list[DayTaskList]


def build_week_view(
    tasks: Iterable[Task],
    records: Sequence[CompletionRecord],
    selected: date,
    today: date,
    hide_recurring: bool = False,
    task_filter: TaskFilter | None = None,
) -> WeekView:
    """Sunday-start week: recurring completion grid plus one-off tasks per day."""
    task_filter = task_filter or TaskFilter()
    tasks = task_filter.apply(tasks)
    start = week_start(selected)
    dates = [add_days(start, i) for i in range(7)]
    end = dates[-1]

    days = [
        WeekDay(
            date=format_calendar_date(d),
            weekday=d.strftime("%a"),
            day_num=d.day,
            is_today=d == today,
            is_past=d < today,
        )
        for d in dates
    ]

    rows: list[RecurringRow] = []
    if not hide_recurring:
        for task in sort_tasks(t for t in tasks if t.is_recurring):
            scheduled = set(_recurring_dates(task, start, end))
            if not scheduled:
                continue
            cells = []
            for day in days:
                if day.date in scheduled:
                    done = is_completed(task.id, day.date, records)
                    cells.append(GridCell(day.date, True, done))
                else:
                    cells.append(GridCell(day.date, False))
            rows.append(RecurringRow(task, cells))

    one_off = [t for t in tasks if not t.is_recurring]
    lists: list[DayTaskList] = []
    for day, week_day in zip(dates, days):
        occurrences = [
            o
            for o in day_occurrences(one_off, records, day, today)
            if task_filter.keep(o.is_completed)
        ]
        if not occurrences:
            continue
        occurrences.sort(key=occurrence_sort_key)
        label = f"{week_day.weekday} {week_day.day_num}"
        if week_day.is_today:
            label = f"Today ({label})"
        elif week_day.is_past and any(not o.is_completed for o in occurrences):
            label = f"{label} - Overdue"
        lists.append(DayTaskList(week_day.date, label, occurrences))

    return WeekView(
        start=format_calendar_date(start),
        end=format_calendar_date(end),
        days=days,
        recurring_rows=rows,
        one_off_days=lists,
    )


# --- Month view -----------------------------------------------------------

HeatLevel = Literal["no-data", "0", "1-24", "25-49", "50-74", "75-99", "100"]


def heat_level(total: int, completed: int, is_future: bool) -> HeatLevel:
    """Heatmap bucket; future and empty days are "no data", never 0% failure."""
    if is_future or total == 0:
        return "no-data"
    if completed >= total:
        return "100"
    if completed == 0:
        return "0"
    percent = completed * 100 // total
    if percent < 25:
        return "1-24"
    if percent < 50:
        return "25-49"
    if percent < 75:
        return "50-74"
    return "75-99"


@dataclass
class MonthCell:
    date: str
    day_num: int
    is_current_month: bool
    is_today: bool
    is_future: bool
    total: int
    completed: int
    percent: int | None
    level: HeatLevel


@dataclass
class MonthView:
    year: int
    month: int
    cells: list[MonthCell]


def build_month_view(
    tasks: Iterable[Task],
    records: Sequence[CompletionRecord],
    selected: date,
    today: date,
    task_filter: TaskFilter | None = None,
) -> MonthView:
    """42-cell Sunday-start completion heatmap for ``selected``'s month.

    Only the category part of ``task_filter`` applies; cells always count every
    occurrence of the day, completed or not.
    """
    task_filter = task_filter or TaskFilter()
    tasks = task_filter.apply(tasks)
    start = month_grid_start(selected)

    cells: list[MonthCell] = []
    for i in range(MONTH_GRID_DAYS):
        day = add_days(start, i)
        occurrences = day_occurrences(tasks, records, day, today)
        total = len(occurrences)
        completed = sum(1 for o in occurrences if o.is_completed)
        is_future = day > today
        cells.append(
            MonthCell(
                date=format_calendar_date(day),
                day_num=day.day,
                is_current_month=day.month == selected.month,
                is_today=day == today,
                is_future=is_future,
                total=total,
                completed=completed,
                percent=None if is_future or total == 0 else completed * 100 // total,
                level=heat_level(total, completed, is_future),
            )
        )
    return MonthView(year=selected.year, month=selected.month, cells=cells)


# --- Timeline view --------------------------------------------------------


@dataclass(frozen=True)
class TimelineEntry:
    task: Task
    effective_date: str
    is_recurring: bool
    is_completed: bool


def _timeline_entry(
    task: Task, records: Sequence[CompletionRecord], today: date
) -> TimelineEntry | None:
    if task.is_recurring:
        try:
            latest = latest_occurrence_on_or_before(task, today)
        except AmbiguousRecurrenceAnchor:
            return None
        if latest is None:
            # Future instances are not pre-populated
            return None
        latest_str = format_calendar_date(latest)
        done = is_completed(task.id, latest_str, records)
        if latest < today and done:
            return None
        return TimelineEntry(task, latest_str, True, done)

    placement = classify_for_day(task, today, today)
    if placement is not None:
        effective = today
        if placement.reason is DayReason.OVERDUE:
            effective = parse_calendar_date(task.due_date)
        return TimelineEntry(task, format_calendar_date(effective), False, placement.is_completed)

    due = date_part(task.due_date)
    if due is not None and due > format_calendar_date(today) and not task.completed:
        return TimelineEntry(task, due, False, False)
    return None


def build_timeline(
    tasks: Iterable[Task],
    records: Sequence[CompletionRecord],
    today: date,
    task_filter: TaskFilter | None = None,
) -> dict[str, list[TimelineEntry]]:
    """Bucket tasks into overdue / today / tomorrow / upcoming / later.

    One-off tasks placed on today by the classifier land in today (or overdue
    for rollovers); other open one-off tasks use their future due date.
    Recurring tasks contribute only their latest occurrence on or before today.
    """
    task_filter = task_filter or TaskFilter()
    buckets: dict[str, list[TimelineEntry]] = {name: [] for name in TIMELINE_BUCKETS}
    for task in task_filter.apply(tasks):
        entry = _timeline_entry(task, records, today)
        if entry is None or not task_filter.keep(entry.is_completed):
            continue
        bucket = timeline_bucket(parse_calendar_date(entry.effective_date), today)
        buckets[bucket].append(entry)

    for entries in buckets.values():
        entries.sort(key=lambda e: (e.effective_date,) + task_sort_key(e.task, e.effective_date))
    return buckets


# --- Dashboard list -------------------------------------------------------


@dataclass
class Dashboard:
    tasks: list[Task]
    completed: int
    total: int


def is_history(task: Task, today: date) -> bool:
    """One-off task completed before today (derived history, never stored)."""
    if task.is_recurring or not task.completed:
        return False
    today_str = format_calendar_date(today)
    completed_on = date_part(task.completed_at)
    if completed_on is not None:
        return completed_on < today_str
    due = date_part(task.due_date)
    if due is not None:
        return due < today_str
    return True


def build_dashboard(
    tasks: Iterable[Task], today: date, task_filter: TaskFilter | None = None
) -> Dashboard:
    """Current tasks: not history, recurring tasks not anchored in the future."""
    task_filter = task_filter or TaskFilter()
    today_str = format_calendar_date(today)
    current = [
        t
        for t in tasks
        if not is_history(t, today)
        and not (t.is_recurring and (date_part(t.due_date) or "") > today_str)
    ]
    visible = [t for t in task_filter.apply(current) if task_filter.keep(t.completed)]
    return Dashboard(
        tasks=sort_tasks(visible),
        completed=sum(1 for t in current if t.completed and not t.is_recurring),
        total=len(current),
    )
