"""Task service: owner-scoped mutations and projections over the snapshot cache."""

import asyncio
import dataclasses
import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

from task_planner.errors import InvalidDate, NotFoundError, ValidationFailure
from task_planner.models import (
    DEFAULT_CATEGORY_COLOR,
    PRIORITIES,
    RECURRENCES,
    Category,
    CompletionRecord,
    OwnerSnapshot,
    Task,
)
from task_planner.scheduling.dates import (
    Clock,
    format_calendar_date,
    format_local_datetime,
    parse_calendar_date,
)
from task_planner.scheduling.history import HistoryGroup, build_history
from task_planner.scheduling.ledger import CompletionLedger
from task_planner.scheduling.missed import find_missed
from task_planner.scheduling.optimistic import apply_optimistically
from task_planner.scheduling.projection import (
    Dashboard,
    DayView,
    MonthView,
    SortBy,
    SortOrder,
    TaskFilter,
    TimelineEntry,
    WeekView,
    build_dashboard,
    build_day_view,
    build_month_view,
    build_timeline,
    build_week_view,
)

if TYPE_CHECKING:
    from task_planner.snapshot_cache import SnapshotCache
    from task_planner.storage.store import TaskStore

logger = logging.getLogger(__name__)

_TASK_FIELDS = {
    "title",
    "due_date",
    "priority",
    "recurrence",
    "reminder_minutes_before",
    "category_id",
}


def _swap(items: list[Any], old: Any, new: Any) -> None:
    """Replace ``old`` by identity; positions may have shifted since it was read."""
    items[:] = [new if item is old else item for item in items]


def _reinsert(items: list[Any], item: Any, successor: Any, position: int) -> None:
    """Put a removed item back in front of the item that used to follow it."""
    for index, other in enumerate(items):
        if other is successor:
            items.insert(index, item)
            return
    if successor is None:
        items.append(item)
    else:
        items.insert(min(position, len(items)), item)


class TaskService:
    """Operations for one owner.

    Local state (the cached snapshot) is updated optimistically; store
    failures roll it back and surface as ``PersistenceFailure``.
    """

    def __init__(
        self,
        owner_id: str,
        store: "TaskStore",
        cache: "SnapshotCache",
        clock: Clock,
        locks: dict[tuple[str, str], asyncio.Lock] | None = None,
    ) -> None:
        """Initialize service.

        Args:
            owner_id: Owner all operations are scoped to
            store: Persistence collaborator
            cache: Snapshot cache shared across requests
            clock: Viewer clock
            locks: Ledger toggle locks shared across service instances of this owner
        """
        if not owner_id:
            raise ValidationFailure("Owner id is required")
        self.owner_id = owner_id
        self._store = store
        self._cache = cache
        self._clock = clock
        self._locks = locks if locks is not None else {}

    def today(self) -> date:
        """Viewer's local calendar date."""
        return self._clock.now().date()

    async def snapshot(self) -> OwnerSnapshot:
        return await self._cache.get(self.owner_id)

    async def ledger(self) -> CompletionLedger:
        snapshot = await self.snapshot()
        return CompletionLedger(
            self.owner_id, self._store, self._clock, snapshot.completions, self._locks
        )

    # --- Tasks ------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        return list((await self.snapshot()).tasks)

    async def get_task(self, task_id: str) -> Task:
        for task in (await self.snapshot()).tasks:
            if task.id == task_id:
                return task
        raise NotFoundError(f"Task not found: {task_id}")

    async def create_task(
        self,
        title: str,
        due_date: str | None = None,
        priority: str = "medium",
        recurrence: str | None = None,
        reminder_minutes_before: int | None = None,
        category_id: str | None = None,
    ) -> Task:
        """Create a task; new tasks are listed first."""
        snapshot = await self.snapshot()
        task = Task(
            id=str(uuid.uuid4()),
            owner_id=self.owner_id,
            title=title,
            created_at=format_local_datetime(self._clock.now()),
            due_date=due_date or None,
            priority=priority or "medium",  # type: ignore[arg-type]
            recurrence=recurrence or None,  # type: ignore[arg-type]
            reminder_minutes_before=reminder_minutes_before,
            category_id=category_id or None,
        )
        self._validate_task(task, snapshot)

        def apply() -> None:
            snapshot.tasks.insert(0, task)

        def revert() -> None:
            snapshot.tasks[:] = [t for t in snapshot.tasks if t is not task]

        def reconcile(stored: Task) -> None:
            snapshot.tasks[:] = [stored if t is task else t for t in snapshot.tasks]

        stored = await apply_optimistically(
            f"create task {task.title!r}",
            apply,
            revert,
            lambda: self._store.create_task(task),
            reconcile,
        )
        logger.info(f"[TaskService] Created task {stored.id} for {self.owner_id}")
        return stored

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply field changes (title, due date, priority, recurrence, reminder, category)."""
        unknown = set(changes) - _TASK_FIELDS
        if unknown:
            raise ValidationFailure(f"Unknown task fields: {', '.join(sorted(unknown))}")

        snapshot = await self.snapshot()
        current = await self.get_task(task_id)
        updated = dataclasses.replace(current, **changes)
        if isinstance(updated.title, str):
            updated.title = updated.title.strip()
        updated.due_date = updated.due_date or None
        updated.recurrence = updated.recurrence or None
        updated.category_id = updated.category_id or None
        self._validate_task(updated, snapshot)
        return await self._replace_task(current, updated, f"update task {task_id}")

    async def delete_task(self, task_id: str) -> None:
        """Hard-delete a task; its completion records go with it."""
        snapshot = await self.snapshot()
        task = await self.get_task(task_id)
        position = snapshot.tasks.index(task)
        successor = snapshot.tasks[position + 1] if position + 1 < len(snapshot.tasks) else None
        ledger = await self.ledger()
        removed: list[CompletionRecord] = []

        def apply() -> None:
            snapshot.tasks[:] = [t for t in snapshot.tasks if t is not task]
            removed.extend(ledger.drop_task(task_id))

        def revert() -> None:
            _reinsert(snapshot.tasks, task, successor, position)
            ledger.restore(removed)

        await apply_optimistically(
            f"delete task {task_id}",
            apply,
            revert,
            lambda: self._store.delete_task(self.owner_id, task_id),
        )
        logger.info(f"[TaskService] Deleted task {task_id} ({len(removed)} completions)")

    async def toggle(self, task_id: str, instance_date: str | None = None) -> bool:
        """Toggle completion.

        Recurring tasks toggle one occurrence in the ledger (default: today);
        one-off tasks flip their own completed flag.

        Returns:
            New completion state
        """
        task = await self.get_task(task_id)
        if task.is_recurring:
            day = instance_date or format_calendar_date(self.today())
            try:
                parse_calendar_date(day)
            except InvalidDate as e:
                raise ValidationFailure(str(e)) from e
            ledger = await self.ledger()
            return await ledger.toggle(task_id, day)

        completed = not task.completed
        updated = dataclasses.replace(
            task,
            completed=completed,
            completed_at=format_local_datetime(self._clock.now()) if completed else None,
        )
        await self._replace_task(task, updated, f"toggle task {task_id}")
        return completed

    async def _replace_task(self, current: Task, updated: Task, description: str) -> Task:
        snapshot = await self.snapshot()

        def apply() -> None:
            _swap(snapshot.tasks, current, updated)

        def revert() -> None:
            _swap(snapshot.tasks, updated, current)

        def reconcile(stored: Task) -> None:
            _swap(snapshot.tasks, updated, stored)

        return await apply_optimistically(
            description, apply, revert, lambda: self._store.update_task(updated), reconcile
        )

    def _validate_task(self, task: Task, snapshot: OwnerSnapshot) -> None:
        if not isinstance(task.title, str) or not task.title.strip():
            raise ValidationFailure("Title must not be empty")
        task.title = task.title.strip()
        if task.priority not in PRIORITIES:
            raise ValidationFailure(f"Invalid priority: {task.priority!r}")
        if task.recurrence is not None and task.recurrence not in RECURRENCES:
            raise ValidationFailure(f"Invalid recurrence: {task.recurrence!r}")
        if task.due_date is not None:
            try:
                parse_calendar_date(task.due_date)
            except InvalidDate as e:
                raise ValidationFailure(str(e)) from e
        if task.reminder_minutes_before is not None and task.reminder_minutes_before < 0:
            raise ValidationFailure("Reminder minutes must not be negative")
        if task.category_id is not None and not any(
            c.id == task.category_id for c in snapshot.categories
        ):
            raise ValidationFailure(f"Unknown category: {task.category_id}")

    # --- Categories -------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        return list((await self.snapshot()).categories)

    async def _get_category(self, category_id: str) -> Category:
        for category in (await self.snapshot()).categories:
            if category.id == category_id:
                return category
        raise NotFoundError(f"Category not found: {category_id}")

    def _check_unique_name(self, snapshot: OwnerSnapshot, name: str, skip_id: str | None) -> str:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationFailure("Category name must not be empty")
        for category in snapshot.categories:
            if category.id != skip_id and category.name.lower() == cleaned.lower():
                raise ValidationFailure(f"Category already exists: {category.name}")
        return cleaned

    async def create_category(self, name: str, color: str | None = None) -> Category:
        snapshot = await self.snapshot()
        category = Category(
            id=str(uuid.uuid4()),
            owner_id=self.owner_id,
            name=self._check_unique_name(snapshot, name, None),
            color=color or DEFAULT_CATEGORY_COLOR,
            created_at=format_local_datetime(self._clock.now()),
        )

        def apply() -> None:
            snapshot.categories.append(category)

        def revert() -> None:
            snapshot.categories[:] = [c for c in snapshot.categories if c is not category]

        return await apply_optimistically(
            f"create category {category.name!r}",
            apply,
            revert,
            lambda: self._store.create_category(category),
        )

    async def update_category(
        self, category_id: str, name: str | None = None, color: str | None = None
    ) -> Category:
        snapshot = await self.snapshot()
        current = await self._get_category(category_id)
        updated = dataclasses.replace(
            current,
            name=(
                self._check_unique_name(snapshot, name, category_id)
                if name is not None
                else current.name
            ),
            color=color or current.color,
        )

        def apply() -> None:
            _swap(snapshot.categories, current, updated)

        def revert() -> None:
            _swap(snapshot.categories, updated, current)

        return await apply_optimistically(
            f"update category {category_id}",
            apply,
            revert,
            lambda: self._store.update_category(updated),
        )

    async def delete_category(self, category_id: str) -> None:
        """Delete a category; tasks referencing it keep existing without a category."""
        snapshot = await self.snapshot()
        category = await self._get_category(category_id)
        position = snapshot.categories.index(category)
        successor = (
            snapshot.categories[position + 1] if position + 1 < len(snapshot.categories) else None
        )
        affected = [t for t in snapshot.tasks if t.category_id == category_id]

        def apply() -> None:
            snapshot.categories[:] = [c for c in snapshot.categories if c is not category]
            for task in affected:
                task.category_id = None

        def revert() -> None:
            _reinsert(snapshot.categories, category, successor, position)
            for task in affected:
                task.category_id = category_id

        await apply_optimistically(
            f"delete category {category_id}",
            apply,
            revert,
            lambda: self._store.delete_category(self.owner_id, category_id),
        )

    # --- Projections ------------------------------------------------------

    async def day_view(
        self,
        day: date | None = None,
        sort_by: SortBy = "type",
        order: SortOrder = "asc",
        task_filter: TaskFilter | None = None,
    ) -> DayView:
        snapshot = await self.snapshot()
        today = self.today()
        return build_day_view(
            snapshot.tasks, snapshot.completions, day or today, today, sort_by, order, task_filter
        )

    async def week_view(
        self,
        day: date | None = None,
        hide_recurring: bool = False,
        task_filter: TaskFilter | None = None,
    ) -> WeekView:
        snapshot = await self.snapshot()
        today = self.today()
        return build_week_view(
            snapshot.tasks, snapshot.completions, day or today, today, hide_recurring, task_filter
        )

    async def month_view(
        self, day: date | None = None, task_filter: TaskFilter | None = None
    ) -> MonthView:
        snapshot = await self.snapshot()
        today = self.today()
        return build_month_view(
            snapshot.tasks, snapshot.completions, day or today, today, task_filter
        )

    async def timeline(
        self, task_filter: TaskFilter | None = None
    ) -> dict[str, list[TimelineEntry]]:
        snapshot = await self.snapshot()
        return build_timeline(snapshot.tasks, snapshot.completions, self.today(), task_filter)

    async def dashboard(self, task_filter: TaskFilter | None = None) -> Dashboard:
        snapshot = await self.snapshot()
        return build_dashboard(snapshot.tasks, self.today(), task_filter)

    async def history(self, **filters: Any) -> list[HistoryGroup]:
        snapshot = await self.snapshot()
        return build_history(snapshot.tasks, self.today(), **filters)

    async def missed(self) -> list[Task]:
        snapshot = await self.snapshot()
        return find_missed(
            snapshot.tasks, snapshot.completions, format_calendar_date(self.today())
        )
