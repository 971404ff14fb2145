"""Missed-occurrence detection for recurring tasks."""

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol

import yaml

from task_planner.errors import AmbiguousRecurrenceAnchor
from task_planner.models import CompletionRecord, Task
from task_planner.scheduling.dates import (
    add_days,
    format_calendar_date,
    parse_calendar_date,
)
from task_planner.scheduling.ledger import is_completed
from task_planner.scheduling.recurrence import expand, resolve_anchor

logger = logging.getLogger(__name__)

MAX_LISTED_TITLES = 3


def find_missed(
    tasks: Iterable[Task], records: Sequence[CompletionRecord], today: str
) -> list[Task]:
    """Recurring tasks with an occurrence yesterday that was never completed.

    Pure function of its inputs: calling it twice with the same arguments
    returns the same list. Once-per-day gating is the caller's job.

    Args:
        tasks: All tasks of the owner
        records: Completion ledger records
        today: Local date (YYYY-MM-DD)

    Returns:
        Missed tasks, in input order
    """
    yesterday = add_days(parse_calendar_date(today), -1)
    yesterday_str = format_calendar_date(yesterday)

    missed: list[Task] = []
    for task in tasks:
        if not task.is_recurring:
            continue
        try:
            if resolve_anchor(task) > yesterday:
                continue
        except AmbiguousRecurrenceAnchor:
            continue
        if not expand(task, yesterday, yesterday):
            continue
        if not is_completed(task.id, yesterday_str, records):
            missed.append(task)
    return missed


def missed_notification(missed: Sequence[Task]) -> tuple[str, str] | None:
    """Build (title, body) for the missed-tasks notification, or None if nothing missed."""
    if not missed:
        return None
    if len(missed) == 1:
        return "Missed Task Yesterday", f'You missed: "{missed[0].title}"'

    listed = ", ".join(t.title for t in missed[:MAX_LISTED_TITLES])
    extra = len(missed) - MAX_LISTED_TITLES
    suffix = f" and {extra} more" if extra > 0 else ""
    return f"{len(missed)} Missed Tasks Yesterday", f"You missed: {listed}{suffix}"


class DailyCheckMarker(Protocol):
    """Persisted "last checked" date per owner."""

    def last_checked(self, owner_id: str) -> str | None:
        ...

    def mark_checked(self, owner_id: str, day: str) -> None:
        ...


class MemoryCheckMarker:
    """Marker kept in process memory."""

    def __init__(self) -> None:
        self._marks: dict[str, str] = {}

    def last_checked(self, owner_id: str) -> str | None:
        return self._marks.get(owner_id)

    def mark_checked(self, owner_id: str, day: str) -> None:
        self._marks[owner_id] = day


class YamlCheckMarker:
    """Marker persisted to a small YAML file so restarts do not re-notify."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"[MissedCheck] Could not read marker file {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def last_checked(self, owner_id: str) -> str | None:
        return self._load().get(owner_id)

    def mark_checked(self, owner_id: str, day: str) -> None:
        marks = self._load()
        marks[owner_id] = day
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(yaml.safe_dump(marks, sort_keys=True), encoding="utf-8")
