"""Completion ledger for recurring tasks (habit-tracker model).

Whether occurrence X of task T is done lives here, not on the task row, so
the same task can be completed on one date and open on another.
"""

import asyncio
import logging
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING

from task_planner.errors import DuplicateCompletion
from task_planner.models import CompletionRecord
from task_planner.scheduling.dates import (
    Clock,
    format_calendar_date,
    format_local_datetime,
    parse_calendar_date,
)
from task_planner.scheduling.optimistic import apply_optimistically

if TYPE_CHECKING:
    from task_planner.storage.store import TaskStore

logger = logging.getLogger(__name__)


def is_completed(task_id: str, instance_date: str, records: Iterable[CompletionRecord]) -> bool:
    """True iff a record matches both the task id and the instance date exactly."""
    return any(r.task_id == task_id and r.instance_date == instance_date for r in records)


class CompletionLedger:
    """Local view of one owner's completion records, kept in sync with the store."""

    def __init__(
        self,
        owner_id: str,
        store: "TaskStore",
        clock: Clock,
        records: list[CompletionRecord] | None = None,
        locks: dict[tuple[str, str], asyncio.Lock] | None = None,
    ) -> None:
        """Initialize ledger.

        Args:
            owner_id: Owner whose records this ledger holds
            store: Persistence collaborator
            clock: Source of completion timestamps
            records: Backing list, mutated in place (e.g. a cached snapshot's completions)
            locks: Per-(task, date) locks shared between ledger instances of the same owner
        """
        self.owner_id = owner_id
        self._store = store
        self._clock = clock
        self._records: list[CompletionRecord] = records if records is not None else []
        self._locks = locks if locks is not None else {}

    @property
    def records(self) -> list[CompletionRecord]:
        """Snapshot copy of the current records."""
        return list(self._records)

    def find(self, task_id: str, instance_date: str) -> CompletionRecord | None:
        for record in self._records:
            if record.task_id == task_id and record.instance_date == instance_date:
                return record
        return None

    def is_completed(self, task_id: str, instance_date: str) -> bool:
        return is_completed(task_id, instance_date, self._records)

    def drop_task(self, task_id: str) -> list[CompletionRecord]:
        """Remove a deleted task's records locally; returns what was removed."""
        removed = [r for r in self._records if r.task_id == task_id]
        self._records[:] = [r for r in self._records if r.task_id != task_id]
        return removed

    def restore(self, records: Iterable[CompletionRecord]) -> None:
        """Put back records removed by ``drop_task`` (rollback of a failed delete)."""
        for record in records:
            if self.find(record.task_id, record.instance_date) is None:
                self._records.append(record)

    async def toggle(self, task_id: str, instance_date: str) -> bool:
        """Flip the completion state of one occurrence.

        Toggles on the same (task, date) are serialized, so a superseding
        toggle always sees the outcome of the previous one.

        Args:
            task_id: Recurring task id
            instance_date: Occurrence date (YYYY-MM-DD, a timestamp's date part is used)

        Returns:
            The new state: True when the occurrence is now done

        Raises:
            InvalidDate: If ``instance_date`` is malformed
            PersistenceFailure: If the store rejected the change (local state rolled back)
        """
        day = format_calendar_date(parse_calendar_date(instance_date))
        lock = self._locks.setdefault((task_id, day), asyncio.Lock())
        async with lock:
            existing = self.find(task_id, day)
            if existing is None:
                await self._complete(task_id, day)
                return True
            await self._uncomplete(existing)
            return False

    async def _complete(self, task_id: str, day: str) -> None:
        optimistic = CompletionRecord(
            id=str(uuid.uuid4()),
            task_id=task_id,
            owner_id=self.owner_id,
            instance_date=day,
            completed_at=format_local_datetime(self._clock.now()),
        )

        def apply() -> None:
            self._records.append(optimistic)

        def revert() -> None:
            self._records[:] = [r for r in self._records if r is not optimistic]

        async def persist() -> CompletionRecord:
            try:
                return await self._store.create_completion(optimistic)
            except DuplicateCompletion as e:
                # Another writer completed it first: the occurrence is done either way
                logger.info(f"[Ledger] {task_id} @ {day} already completed in store")
                if isinstance(e.existing, CompletionRecord):
                    return e.existing
                return optimistic

        def reconcile(stored: CompletionRecord) -> None:
            self._records[:] = [stored if r is optimistic else r for r in self._records]

        await apply_optimistically(
            f"complete {task_id} @ {day}", apply, revert, persist, reconcile
        )
        logger.info(f"[Ledger] Completed {task_id} @ {day}")

    async def _uncomplete(self, existing: CompletionRecord) -> None:
        position = self._records.index(existing)

        def apply() -> None:
            self._records.remove(existing)

        def revert() -> None:
            self._records.insert(position, existing)

        async def persist() -> None:
            await self._store.delete_completion(self.owner_id, existing.id)

        await apply_optimistically(
            f"uncomplete {existing.task_id} @ {existing.instance_date}", apply, revert, persist
        )
        logger.info(f"[Ledger] Uncompleted {existing.task_id} @ {existing.instance_date}")
