"""Persistence collaborator protocol and in-memory implementation."""

import asyncio
import copy
import logging
from typing import Protocol

from task_planner.errors import DuplicateCompletion, NotFoundError
from task_planner.models import Category, CompletionRecord, OwnerSnapshot, Task

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Protocol for the external store holding tasks, completions and categories."""

    async def list_owners(self) -> list[str]:
        """List owner ids with stored data."""
        ...

    async def load_snapshot(self, owner_id: str) -> OwnerSnapshot:
        """Bulk read of everything belonging to one owner."""
        ...

    async def create_task(self, task: Task) -> Task:
        """Insert a task and return the stored version."""
        ...

    async def update_task(self, task: Task) -> Task:
        """Replace a task and return the stored version."""
        ...

    async def delete_task(self, owner_id: str, task_id: str) -> None:
        """Hard-delete a task and its completion records."""
        ...

    async def create_completion(self, record: CompletionRecord) -> CompletionRecord:
        """Insert a completion record.

        Raises:
            DuplicateCompletion: If (task_id, instance_date) already exists
        """
        ...

    async def delete_completion(self, owner_id: str, record_id: str) -> None:
        """Delete a completion record."""
        ...

    async def create_category(self, category: Category) -> Category:
        """Insert a category."""
        ...

    async def update_category(self, category: Category) -> Category:
        """Replace a category."""
        ...

    async def delete_category(self, owner_id: str, category_id: str) -> None:
        """Delete a category and null the reference on its tasks."""
        ...


class SnapshotStore:
    """Store operations over an ``OwnerSnapshot`` per owner.

    Subclasses decide where snapshots live by overriding ``_read`` and
    ``_write``. Mutations run under a per-owner lock so the uniqueness check on
    completions and the write are atomic.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    async def _read(self, owner_id: str) -> OwnerSnapshot:
        raise NotImplementedError

    async def _write(self, snapshot: OwnerSnapshot) -> None:
        raise NotImplementedError

    async def list_owners(self) -> list[str]:
        raise NotImplementedError

    def _lock(self, owner_id: str) -> asyncio.Lock:
        return self._locks.setdefault(owner_id, asyncio.Lock())

    async def load_snapshot(self, owner_id: str) -> OwnerSnapshot:
        return copy.deepcopy(await self._read(owner_id))

    async def create_task(self, task: Task) -> Task:
        async with self._lock(task.owner_id):
            snapshot = await self._read(task.owner_id)
            snapshot.tasks.append(copy.copy(task))
            await self._write(snapshot)
        return copy.copy(task)

    async def update_task(self, task: Task) -> Task:
        async with self._lock(task.owner_id):
            snapshot = await self._read(task.owner_id)
            for i, existing in enumerate(snapshot.tasks):
                if existing.id == task.id:
                    snapshot.tasks[i] = copy.copy(task)
                    break
            else:
                raise NotFoundError(f"Task not found: {task.id}")
            await self._write(snapshot)
        return copy.copy(task)

    async def delete_task(self, owner_id: str, task_id: str) -> None:
        async with self._lock(owner_id):
            snapshot = await self._read(owner_id)
            remaining = [t for t in snapshot.tasks if t.id != task_id]
            if len(remaining) == len(snapshot.tasks):
                raise NotFoundError(f"Task not found: {task_id}")
            snapshot.tasks = remaining
            # Cascade: completions belong to the task
            snapshot.completions = [c for c in snapshot.completions if c.task_id != task_id]
            await self._write(snapshot)

    async def create_completion(self, record: CompletionRecord) -> CompletionRecord:
        async with self._lock(record.owner_id):
            snapshot = await self._read(record.owner_id)
            if not any(t.id == record.task_id for t in snapshot.tasks):
                raise NotFoundError(f"Task not found: {record.task_id}")
            for existing in snapshot.completions:
                if (
                    existing.task_id == record.task_id
                    and existing.instance_date == record.instance_date
                ):
                    raise DuplicateCompletion(record.task_id, record.instance_date, existing)
            snapshot.completions.append(record)
            await self._write(snapshot)
        return record

    async def delete_completion(self, owner_id: str, record_id: str) -> None:
        async with self._lock(owner_id):
            snapshot = await self._read(owner_id)
            remaining = [c for c in snapshot.completions if c.id != record_id]
            if len(remaining) == len(snapshot.completions):
                # Already gone; deleting is idempotent
                logger.debug(f"[Store] Completion {record_id} already deleted")
                return
            snapshot.completions = remaining
            await self._write(snapshot)

    async def create_category(self, category: Category) -> Category:
        async with self._lock(category.owner_id):
            snapshot = await self._read(category.owner_id)
            snapshot.categories.append(copy.copy(category))
            await self._write(snapshot)
        return copy.copy(category)

    async def update_category(self, category: Category) -> Category:
        async with self._lock(category.owner_id):
            snapshot = await self._read(category.owner_id)
            for i, existing in enumerate(snapshot.categories):
                if existing.id == category.id:
                    snapshot.categories[i] = copy.copy(category)
                    break
            else:
                raise NotFoundError(f"Category not found: {category.id}")
            await self._write(snapshot)
        return copy.copy(category)

    async def delete_category(self, owner_id: str, category_id: str) -> None:
        async with self._lock(owner_id):
            snapshot = await self._read(owner_id)
            remaining = [c for c in snapshot.categories if c.id != category_id]
            if len(remaining) == len(snapshot.categories):
                raise NotFoundError(f"Category not found: {category_id}")
            snapshot.categories = remaining
            for task in snapshot.tasks:
                if task.category_id == category_id:
                    task.category_id = None
            await self._write(snapshot)


class InMemoryStore(SnapshotStore):
    """Process-local store, used in tests and as a scratch backend."""

    def __init__(self) -> None:
        super().__init__()
        self._snapshots: dict[str, OwnerSnapshot] = {}

    async def list_owners(self) -> list[str]:
        return sorted(self._snapshots)

    async def _read(self, owner_id: str) -> OwnerSnapshot:
        return self._snapshots.setdefault(owner_id, OwnerSnapshot(owner_id=owner_id))

    async def _write(self, snapshot: OwnerSnapshot) -> None:
        self._snapshots[snapshot.owner_id] = snapshot
