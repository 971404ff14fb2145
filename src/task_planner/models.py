"""Domain records for Task Planner."""

from dataclasses import dataclass, field
from typing import Literal

Priority = Literal["low", "medium", "high"]
Recurrence = Literal["daily", "weekly", "monthly"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high")
RECURRENCES: tuple[str, ...] = ("daily", "weekly", "monthly")
DEFAULT_CATEGORY_COLOR = "#8b5cf6"


@dataclass
class Task:
    """A unit of work, optionally recurring."""

    id: str
    owner_id: str
    title: str
    created_at: str  # Local timestamp: YYYY-MM-DDTHH:MM:SS
    due_date: str | None = None  # YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS (local wall-clock)
    priority: Priority = "medium"
    recurrence: Recurrence | None = None
    reminder_minutes_before: int | None = None
    category_id: str | None = None
    # Only meaningful for one-off tasks; recurring tasks use the completion ledger
    completed: bool = False
    completed_at: str | None = None

    @property
    def is_recurring(self) -> bool:
        """Whether the task follows a recurrence rule."""
        return self.recurrence is not None


@dataclass(frozen=True)
class CompletionRecord:
    """Marks one occurrence of a recurring task as done."""

    id: str
    task_id: str
    owner_id: str
    instance_date: str  # YYYY-MM-DD
    completed_at: str


@dataclass
class Category:
    """Label attached to tasks."""

    id: str
    owner_id: str
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    created_at: str | None = None


@dataclass
class OwnerSnapshot:
    """Everything the engine needs for one owner."""

    owner_id: str
    tasks: list[Task] = field(default_factory=list)
    completions: list[CompletionRecord] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
