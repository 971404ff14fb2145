"""Tests for the owner-scoped task service."""

import asyncio

import pytest

from task_planner.errors import (
    NotFoundError,
    PersistenceFailure,
    StoreError,
    ValidationFailure,
)
from task_planner.models import Task
from task_planner.scheduling.dates import FixedClock
from task_planner.service import TaskService
from task_planner.snapshot_cache import SnapshotCache
from task_planner.storage.store import InMemoryStore


class FlakyStore(InMemoryStore):
    """Store whose task writes can fail per method; updates and deletes can be slowed down."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()
        self.delay = 0.0

    async def _before(self, method: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if method in self.failing:
            raise StoreError("offline")

    async def create_task(self, task: Task) -> Task:
        if "create_task" in self.failing:
            raise StoreError("offline")
        return await super().create_task(task)

    async def update_task(self, task: Task) -> Task:
        await self._before("update_task")
        return await super().update_task(task)

    async def delete_task(self, owner_id: str, task_id: str) -> None:
        await self._before("delete_task")
        await super().delete_task(owner_id, task_id)


@pytest.fixture
def flaky_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def service(flaky_store: FlakyStore, clock: FixedClock) -> TaskService:
    return TaskService("alice", flaky_store, SnapshotCache(flaky_store), clock)


def test_owner_is_required(store: InMemoryStore, clock: FixedClock) -> None:
    with pytest.raises(ValidationFailure):
        TaskService("", store, SnapshotCache(store), clock)


@pytest.mark.asyncio
async def test_create_task_lists_newest_first(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    first = await service.create_task("First")
    second = await service.create_task("  Second  ", priority="high")

    assert [t.id for t in await service.list_tasks()] == [second.id, first.id]
    assert second.title == "Second"
    assert second.created_at == "2025-01-15T09:00:00"
    assert len((await flaky_store.load_snapshot("alice")).tasks) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        {"title": "   "},
        {"title": "x", "priority": "urgent"},
        {"title": "x", "recurrence": "yearly"},
        {"title": "x", "due_date": "soon"},
        {"title": "x", "reminder_minutes_before": -5},
        {"title": "x", "category_id": "missing"},
    ],
)
async def test_create_task_validation(service: TaskService, fields: dict) -> None:
    with pytest.raises(ValidationFailure):
        await service.create_task(**fields)
    assert await service.list_tasks() == []


@pytest.mark.asyncio
async def test_failed_create_is_rolled_back(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    await service.create_task("Kept")
    flaky_store.failing = {"create_task"}

    with pytest.raises(PersistenceFailure):
        await service.create_task("Lost")

    assert [t.title for t in await service.list_tasks()] == ["Kept"]


@pytest.mark.asyncio
async def test_failed_update_restores_previous_task(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    task = await service.create_task("Original", due_date="2025-01-20")
    flaky_store.failing = {"update_task"}

    with pytest.raises(PersistenceFailure):
        await service.update_task(task.id, {"title": "Renamed"})

    assert (await service.get_task(task.id)).title == "Original"


@pytest.mark.asyncio
async def test_update_task(service: TaskService) -> None:
    task = await service.create_task("Report", due_date="2025-01-20")

    updated = await service.update_task(task.id, {"due_date": "", "priority": "low"})

    assert updated.due_date is None
    assert updated.priority == "low"
    with pytest.raises(ValidationFailure):
        await service.update_task(task.id, {"owner_id": "mallory"})
    with pytest.raises(NotFoundError):
        await service.update_task("missing", {"title": "x"})


@pytest.mark.asyncio
async def test_toggle_one_off_task(service: TaskService, clock: FixedClock) -> None:
    task = await service.create_task("Call mom")

    assert await service.toggle(task.id) is True
    done = await service.get_task(task.id)
    assert done.completed and done.completed_at == "2025-01-15T09:00:00"

    assert await service.toggle(task.id) is False
    reopened = await service.get_task(task.id)
    assert not reopened.completed and reopened.completed_at is None


@pytest.mark.asyncio
async def test_toggle_recurring_defaults_to_today(service: TaskService) -> None:
    habit = await service.create_task("Meditate", due_date="2025-01-01", recurrence="daily")

    assert await service.toggle(habit.id) is True
    assert await service.toggle(habit.id, "2025-01-14") is True

    ledger = await service.ledger()
    assert ledger.is_completed(habit.id, "2025-01-15")
    assert ledger.is_completed(habit.id, "2025-01-14")
    # The task row itself is never marked done
    assert not (await service.get_task(habit.id)).completed

    view = await service.day_view()
    assert [(o.task.id, o.is_completed) for g in view.groups for o in g.occurrences] == [
        (habit.id, True)
    ]
    assert await service.missed() == []


@pytest.mark.asyncio
async def test_toggle_recurring_rejects_bad_date(service: TaskService) -> None:
    habit = await service.create_task("Meditate", due_date="2025-01-01", recurrence="daily")
    with pytest.raises(ValidationFailure):
        await service.toggle(habit.id, "yesterday")


@pytest.mark.asyncio
async def test_delete_task_drops_completions(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    habit = await service.create_task("Meditate", due_date="2025-01-01", recurrence="daily")
    await service.toggle(habit.id)

    await service.delete_task(habit.id)

    assert await service.list_tasks() == []
    assert (await service.ledger()).records == []
    assert (await flaky_store.load_snapshot("alice")).completions == []


@pytest.mark.asyncio
async def test_failed_delete_restores_task_and_completions(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    habit = await service.create_task("Meditate", due_date="2025-01-01", recurrence="daily")
    await service.toggle(habit.id)
    flaky_store.failing = {"delete_task"}

    with pytest.raises(PersistenceFailure):
        await service.delete_task(habit.id)

    assert [t.id for t in await service.list_tasks()] == [habit.id]
    assert (await service.ledger()).is_completed(habit.id, "2025-01-15")


@pytest.mark.asyncio
async def test_update_racing_create_keeps_other_tasks(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    first = await service.create_task("A")
    await service.create_task("B")
    flaky_store.delay = 0.05

    await asyncio.gather(service.update_task(first.id, {"title": "A2"}), service.create_task("C"))

    assert [t.title for t in await service.list_tasks()] == ["C", "B", "A2"]
    stored = await flaky_store.load_snapshot("alice")
    assert sorted(t.title for t in stored.tasks) == ["A2", "B", "C"]


@pytest.mark.asyncio
async def test_failed_update_racing_create_restores_by_identity(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    first = await service.create_task("A")
    await service.create_task("B")
    flaky_store.delay = 0.05
    flaky_store.failing = {"update_task"}

    results = await asyncio.gather(
        service.update_task(first.id, {"title": "A2"}),
        service.create_task("C"),
        return_exceptions=True,
    )

    assert isinstance(results[0], PersistenceFailure)
    assert [t.title for t in await service.list_tasks()] == ["C", "B", "A"]


@pytest.mark.asyncio
async def test_failed_delete_racing_create_restores_position(
    service: TaskService, flaky_store: FlakyStore
) -> None:
    first = await service.create_task("A")
    await service.create_task("B")
    flaky_store.delay = 0.05
    flaky_store.failing = {"delete_task"}

    results = await asyncio.gather(
        service.delete_task(first.id), service.create_task("C"), return_exceptions=True
    )

    assert isinstance(results[0], PersistenceFailure)
    assert [t.title for t in await service.list_tasks()] == ["C", "B", "A"]


@pytest.mark.asyncio
async def test_categories(service: TaskService) -> None:
    work = await service.create_category("Work", "#ff0000")
    task = await service.create_task("Report", category_id=work.id)

    with pytest.raises(ValidationFailure):
        await service.create_category("work")

    renamed = await service.update_category(work.id, name="Office")
    assert (renamed.name, renamed.color) == ("Office", "#ff0000")

    await service.delete_category(work.id)
    assert await service.list_categories() == []
    assert (await service.get_task(task.id)).category_id is None


@pytest.mark.asyncio
async def test_history_and_dashboard(service: TaskService, clock: FixedClock) -> None:
    old = await service.create_task("Old")
    await service.toggle(old.id)
    clock.advance(days=1)
    await service.create_task("New")

    dashboard = await service.dashboard()
    assert [t.title for t in dashboard.tasks] == ["New"]

    groups = await service.history()
    assert [(g.date, [t.title for t in g.tasks]) for g in groups] == [("2025-01-15", ["Old"])]
