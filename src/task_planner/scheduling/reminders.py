"""Due-time reminders with acknowledge and snooze."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from task_planner.errors import AmbiguousRecurrenceAnchor
from task_planner.models import CompletionRecord, Task
from task_planner.scheduling.dates import (
    format_calendar_date,
    format_local_datetime,
    parse_local_datetime,
)
from task_planner.scheduling.ledger import is_completed
from task_planner.scheduling.recurrence import occurs_on

logger = logging.getLogger(__name__)

AlertKind = Literal["reminder", "due"]


@dataclass(frozen=True)
class Alert:
    """A reminder raised for a task with a due time."""

    task_id: str
    title: str
    kind: AlertKind
    due_at: str  # Local YYYY-MM-DDTHH:MM:SS
    minutes_left: int

    @property
    def message(self) -> str:
        if self.kind == "due":
            return f"Task '{self.title}' is due in less than {max(self.minutes_left, 1)} minutes."
        return f"Task '{self.title}' is due in {self.minutes_left} minutes."


def due_moment(task: Task, records: Sequence[CompletionRecord], now: datetime) -> datetime | None:
    """Local due time relevant at ``now``, or None if the task has no pending due time.

    One-off tasks use their own timestamp. Recurring tasks with a time of day
    use today's occurrence, unless it is already in the ledger.
    """
    moment = parse_local_datetime(task.due_date)
    if moment is None:
        return None
    if not task.is_recurring:
        return None if task.completed else moment

    today = now.date()
    try:
        if not occurs_on(task, today):
            return None
    except AmbiguousRecurrenceAnchor:
        return None
    if is_completed(task.id, format_calendar_date(today), records):
        return None
    return datetime.combine(today, moment.time())


class ReminderTracker:
    """Remembers which alerts fired, were acknowledged or snoozed.

    ``check`` is cheap when nothing is due: tasks without a time component are
    skipped before any bookkeeping.
    """

    def __init__(self, due_soon_minutes: int = 15) -> None:
        """Initialize tracker.

        Args:
            due_soon_minutes: Window before the due time that raises a "due" alert
        """
        self._due_soon = timedelta(minutes=due_soon_minutes)
        self._fired: set[tuple[str, str, str]] = set()
        self._acknowledged: set[tuple[str, str]] = set()
        self._snoozed: dict[tuple[str, str], datetime] = {}
        self._active: dict[str, Alert] = {}

    def _kind(self, task: Task, due_at: datetime, now: datetime) -> AlertKind | None:
        remaining = due_at - now
        if remaining <= timedelta(0):
            return None
        if remaining <= self._due_soon:
            return "due"
        lead = task.reminder_minutes_before
        if lead and remaining <= timedelta(minutes=lead):
            return "reminder"
        return None

    def check(
        self, tasks: Iterable[Task], records: Sequence[CompletionRecord], now: datetime
    ) -> list[Alert]:
        """Return alerts that should be sent now (each fires once per due time and kind).

        Alerts whose task was completed, deleted or moved, or whose due time
        has passed, are dropped from the active list.
        """
        now = now.replace(tzinfo=None)
        fresh: list[Alert] = []
        pending: dict[str, str] = {}
        for task in tasks:
            due_at = due_moment(task, records, now)
            if due_at is None:
                continue
            key = (task.id, format_local_datetime(due_at))
            if due_at > now:
                pending[task.id] = key[1]
            if key in self._acknowledged:
                continue
            snoozed_until = self._snoozed.get(key)
            if snoozed_until is not None:
                if now < snoozed_until:
                    continue
                del self._snoozed[key]

            kind = self._kind(task, due_at, now)
            if kind is None or (*key, kind) in self._fired:
                continue

            self._fired.add((*key, kind))
            alert = Alert(
                task_id=task.id,
                title=task.title,
                kind=kind,
                due_at=key[1],
                minutes_left=int((due_at - now).total_seconds() // 60),
            )
            self._active[task.id] = alert
            fresh.append(alert)

        self._prune(pending, now)
        if fresh:
            logger.info(f"[Reminders] {len(fresh)} alert(s) due")
        return fresh

    def _prune(self, pending: dict[str, str], now: datetime) -> None:
        """Forget alerts and bookkeeping for due times that no longer lie ahead."""
        for task_id, alert in list(self._active.items()):
            if pending.get(task_id) != alert.due_at:
                del self._active[task_id]

        now_str = format_local_datetime(now)
        self._fired = {key for key in self._fired if key[1] > now_str}
        self._acknowledged = {key for key in self._acknowledged if key[1] > now_str}
        self._snoozed = {key: until for key, until in self._snoozed.items() if key[1] > now_str}

    def active_alerts(self) -> list[Alert]:
        """Alerts raised and not yet acknowledged or snoozed."""
        return list(self._active.values())

    def acknowledge(self, task_id: str) -> bool:
        """Silence the task's current alert for good (until its due time changes)."""
        alert = self._active.pop(task_id, None)
        if alert is None:
            return False
        self._acknowledged.add((alert.task_id, alert.due_at))
        logger.info(f"[Reminders] Acknowledged {task_id}")
        return True

    def snooze(self, task_id: str, minutes: int, now: datetime) -> bool:
        """Hide the task's current alert and raise it again after ``minutes``."""
        if minutes <= 0:
            raise ValueError("Snooze minutes must be positive")
        alert = self._active.pop(task_id, None)
        if alert is None:
            return False
        key = (alert.task_id, alert.due_at)
        self._snoozed[key] = now.replace(tzinfo=None) + timedelta(minutes=minutes)
        self._fired.discard((*key, alert.kind))
        logger.info(f"[Reminders] Snoozed {task_id} for {minutes} minutes")
        return True
