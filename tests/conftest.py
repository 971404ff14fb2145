"""Test fixtures for TaskPlanner."""

import itertools
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pytest

from task_planner.models import CompletionRecord, Task
from task_planner.scheduling.dates import FixedClock
from task_planner.storage.store import InMemoryStore

# Wednesday
TODAY = date(2025, 1, 15)

MakeTask = Callable[..., Task]
MakeRecord = Callable[[str, str], CompletionRecord]


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at 09:00 local time on TODAY."""
    return FixedClock(datetime(2025, 1, 15, 9, 0, 0))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create temporary data directory for the YAML store."""
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture
def make_task() -> MakeTask:
    """Build tasks with unique ids and sensible defaults."""
    counter = itertools.count(1)

    def _make(title: str = "Task", **fields: Any) -> Task:
        n = next(counter)
        fields.setdefault("id", f"task-{n}")
        fields.setdefault("owner_id", "alice")
        fields.setdefault("created_at", f"2025-01-01T08:00:{n % 60:02d}")
        return Task(title=title, **fields)

    return _make


@pytest.fixture
def make_record() -> MakeRecord:
    """Build completion records for (task_id, instance_date)."""
    counter = itertools.count(1)

    def _make(task_id: str, instance_date: str) -> CompletionRecord:
        return CompletionRecord(
            id=f"rec-{next(counter)}",
            task_id=task_id,
            owner_id="alice",
            instance_date=instance_date,
            completed_at=f"{instance_date}T20:00:00",
        )

    return _make
