"""Completed-task history, derived from task state rather than stored."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from task_planner.models import Task
from task_planner.scheduling.dates import date_part
from task_planner.scheduling.projection import is_history


@dataclass
class HistoryGroup:
    date: str  # Completion date, or "unknown"
    tasks: list[Task]


def build_history(
    tasks: Iterable[Task],
    today: date,
    search: str | None = None,
    year: int | None = None,
    month: int | None = None,
    day: int | None = None,
) -> list[HistoryGroup]:
    """Group one-off tasks completed before today by completion date, newest first.

    Args:
        tasks: Owner's tasks
        today: Viewer's local today
        search: Case-insensitive title substring
        year: Keep only completions in this year
        month: Keep only completions in this month (1-12)
        day: Keep only completions on this day of month

    Returns:
        Groups sorted by date descending; tasks inside sorted by completion time descending
    """
    needle = search.strip().lower() if search else ""
    selected: list[Task] = []
    for task in tasks:
        if not is_history(task, today):
            continue
        if needle and needle not in task.title.lower():
            continue
        completed_on = date_part(task.completed_at)
        if year is not None or month is not None or day is not None:
            # Date filters need a known completion date
            if completed_on is None:
                continue
            y, m, d = (int(part) for part in completed_on.split("-"))
            if (year is not None and y != year) or (month is not None and m != month):
                continue
            if day is not None and d != day:
                continue
        selected.append(task)

    selected.sort(key=lambda t: t.completed_at or "", reverse=True)

    groups: dict[str, HistoryGroup] = {}
    for task in selected:
        key = date_part(task.completed_at) or "unknown"
        groups.setdefault(key, HistoryGroup(key, [])).tasks.append(task)
    # "unknown" sorts after digits, so push it to the end explicitly
    return sorted(groups.values(), key=lambda g: (g.date != "unknown", g.date), reverse=True)
