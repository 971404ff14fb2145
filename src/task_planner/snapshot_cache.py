"""In-memory cache of owner snapshots loaded from the store."""

import logging
from typing import TYPE_CHECKING

from task_planner.models import OwnerSnapshot

if TYPE_CHECKING:
    from task_planner.storage.store import TaskStore

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Keeps each owner's tasks, completions and categories in memory.

    Views are re-projected from this cache on every request; the store is
    only read on first access, after invalidation, or on explicit reload.
    """

    def __init__(self, store: "TaskStore") -> None:
        """Initialize empty cache over ``store``."""
        self._store = store
        self._cache: dict[str, OwnerSnapshot] = {}

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self._cache

    async def known_owners(self) -> list[str]:
        """Owners in the store plus any loaded ones, whether currently cached or not."""
        return sorted(set(await self._store.list_owners()) | set(self._cache))

    async def get(self, owner_id: str) -> OwnerSnapshot:
        """Return the cached snapshot, loading it on first access."""
        snapshot = self._cache.get(owner_id)
        if snapshot is None:
            snapshot = await self.load(owner_id)
        return snapshot

    async def load(self, owner_id: str) -> OwnerSnapshot:
        """Load/reload an owner from the store.

        Idempotent - safe to call multiple times. The fresh snapshot replaces
        the cached one atomically.
        """
        snapshot = await self._store.load_snapshot(owner_id)
        self._cache[owner_id] = snapshot
        logger.info(
            f"[SnapshotCache] Loaded '{owner_id}': {len(snapshot.tasks)} tasks, "
            f"{len(snapshot.completions)} completions, {len(snapshot.categories)} categories"
        )
        return snapshot

    def invalidate(self, owner_id: str) -> None:
        """Drop an owner; the next ``get`` reloads from the store.

        Called by the file watcher when the owner's store file changes.
        """
        if self._cache.pop(owner_id, None) is not None:
            logger.debug(f"[SnapshotCache] Invalidated '{owner_id}'")
