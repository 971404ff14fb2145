"""Recurrence expander: recurring task definition -> dated occurrences."""

import logging
from datetime import date

from task_planner.errors import AmbiguousRecurrenceAnchor
from task_planner.models import Task
from task_planner.scheduling.dates import (
    add_days,
    add_months,
    format_calendar_date,
    months_between,
    parse_calendar_date_or_none,
)

logger = logging.getLogger(__name__)

_STEP_DAYS = {"daily": 1, "weekly": 7}


def resolve_anchor(task: Task) -> date:
    """Resolve the first occurrence date of a recurring task.

    The due date wins; otherwise the creation date is used. Both are read as
    local calendar dates.

    Raises:
        AmbiguousRecurrenceAnchor: If neither date can be parsed
    """
    anchor = parse_calendar_date_or_none(task.due_date)
    if anchor is None:
        anchor = parse_calendar_date_or_none(task.created_at)
    if anchor is None:
        logger.error(
            f"[Recurrence] Task {task.id} has no usable due_date ({task.due_date!r}) "
            f"or created_at ({task.created_at!r})"
        )
        raise AmbiguousRecurrenceAnchor(task.id)
    return anchor


def occurrence_at(anchor: date, recurrence: str, index: int) -> date:
    """Return the ``index``-th occurrence counted from the anchor (index 0)."""
    if recurrence == "monthly":
        # Always offset from the anchor so a 31st anchor comes back after short months
        return add_months(anchor, index)
    return add_days(anchor, _STEP_DAYS[recurrence] * index)


def _first_index_on_or_after(anchor: date, recurrence: str, start: date) -> int:
    """Smallest step index whose occurrence is >= ``start``."""
    if start <= anchor:
        return 0
    if recurrence == "monthly":
        index = max(months_between(anchor, start) - 1, 0)
        while occurrence_at(anchor, recurrence, index) < start:
            index += 1
        return index
    step = _STEP_DAYS[recurrence]
    return -(-(start - anchor).days // step)


def expand(task: Task, start: date, end: date) -> list[str]:
    """Expand a recurring task into occurrence dates within [start, end].

    The window must be explicit and bounded; cost is proportional to the
    number of occurrences inside it, not to how far the anchor lies in the
    past.

    Args:
        task: Task to expand (non-recurring tasks yield nothing)
        start: First day of the window (inclusive)
        end: Last day of the window (inclusive)

    Returns:
        Ascending YYYY-MM-DD strings, never before the anchor

    Raises:
        AmbiguousRecurrenceAnchor: If the task's anchor cannot be resolved
    """
    if task.recurrence not in ("daily", "weekly", "monthly") or end < start:
        return []

    anchor = resolve_anchor(task)
    if anchor > end:
        return []

    occurrences: list[str] = []
    index = _first_index_on_or_after(anchor, task.recurrence, start)
    current = occurrence_at(anchor, task.recurrence, index)
    while current <= end:
        occurrences.append(format_calendar_date(current))
        index += 1
        current = occurrence_at(anchor, task.recurrence, index)
    return occurrences


def occurs_on(task: Task, day: date) -> bool:
    """Whether the task has an occurrence on ``day``."""
    return bool(expand(task, day, day))


def latest_occurrence_on_or_before(task: Task, day: date) -> date | None:
    """Most recent occurrence not after ``day``, or None before the anchor."""
    if task.recurrence not in ("daily", "weekly", "monthly"):
        return None
    anchor = resolve_anchor(task)
    if anchor > day:
        return None
    index = _first_index_on_or_after(anchor, task.recurrence, day)
    candidate = occurrence_at(anchor, task.recurrence, index)
    if candidate > day:
        candidate = occurrence_at(anchor, task.recurrence, index - 1)
    return candidate
