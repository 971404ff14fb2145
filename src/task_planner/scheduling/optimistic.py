"""Optimistic mutation helper.

Local state is changed first so views update immediately; the store call
follows. If the store rejects the change, the captured inverse restores the
exact prior state and a ``PersistenceFailure`` is raised for the caller to
surface.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from task_planner.errors import PersistenceFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def apply_optimistically(
    description: str,
    apply: Callable[[], None],
    revert: Callable[[], None],
    persist: Callable[[], Awaitable[T]],
    reconcile: Callable[[T], None] | None = None,
) -> T:
    """Apply a local change, persist it, and roll back on failure.

    Args:
        description: Human readable label used in logs and error messages
        apply: Mutates local state
        revert: Restores local state to exactly what it was before ``apply``
        persist: Awaitable store call
        reconcile: Receives the store result (e.g. server-assigned ids)

    Returns:
        Whatever ``persist`` returned

    Raises:
        PersistenceFailure: If ``persist`` raised; local state is reverted first
    """
    apply()
    try:
        result = await persist()
    except Exception as e:
        revert()
        logger.error(f"[Optimistic] {description} failed, rolled back: {e}")
        raise PersistenceFailure(f"Could not save change ({description}): {e}") from e

    if reconcile is not None:
        reconcile(result)
    return result
