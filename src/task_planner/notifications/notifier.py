"""Notification collaborators and the periodic reminder / missed-task check."""

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Protocol

from task_planner.errors import StoreError
from task_planner.models import CompletionRecord, Task
from task_planner.scheduling.dates import Clock, today
from task_planner.scheduling.missed import DailyCheckMarker, find_missed, missed_notification
from task_planner.scheduling.reminders import ReminderTracker

if TYPE_CHECKING:
    from task_planner.snapshot_cache import SnapshotCache
    from task_planner.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    """Delivers a local notification (title + body) to an owner."""

    async def send(self, owner_id: str, title: str, body: str) -> None:
        ...


class NotificationPermission(Protocol):
    """Answers whether an owner allows notifications."""

    def is_allowed(self, owner_id: str) -> bool:
        ...


class WebSocketNotificationSender:
    """Pushes notifications to the owner's open WebSocket clients."""

    def __init__(self, connection_manager: "ConnectionManager") -> None:
        self._connections = connection_manager

    async def send(self, owner_id: str, title: str, body: str) -> None:
        logger.info(f"[Notify] {owner_id}: {title}")
        await self._connections.send_to_owner(
            owner_id, {"type": "notification", "title": title, "body": body}
        )


class PreferencePermission:
    """Global switch plus per-owner opt-out."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._owners: dict[str, bool] = {}

    def set_enabled(self, owner_id: str, enabled: bool) -> None:
        self._owners[owner_id] = enabled

    def is_allowed(self, owner_id: str) -> bool:
        return self._enabled and self._owners.get(owner_id, True)


class MissedTaskNotifier:
    """Sends the "you missed X yesterday" notification at most once per day."""

    def __init__(
        self,
        sender: NotificationSender,
        permission: NotificationPermission,
        marker: DailyCheckMarker,
    ) -> None:
        self._sender = sender
        self._permission = permission
        self._marker = marker

    async def check(
        self,
        owner_id: str,
        tasks: list[Task],
        records: list[CompletionRecord],
        today_str: str,
    ) -> list[Task] | None:
        """Run the daily check for one owner.

        Returns:
            Missed tasks when the check ran, None when it was skipped
        """
        if not self._permission.is_allowed(owner_id) or not tasks:
            return None
        if self._marker.last_checked(owner_id) == today_str:
            return None

        missed = find_missed(tasks, records, today_str)
        notification = missed_notification(missed)
        if notification is not None:
            await self._sender.send(owner_id, *notification)
            logger.info(f"[MissedCheck] {owner_id}: {len(missed)} missed task(s) yesterday")

        self._marker.mark_checked(owner_id, today_str)
        return missed


class ReminderLoop:
    """Repeating timer driving reminder and missed-task checks for every owner."""

    def __init__(
        self,
        cache: "SnapshotCache",
        clock: Clock,
        sender: NotificationSender,
        permission: NotificationPermission,
        missed_notifier: MissedTaskNotifier,
        interval: float = 60.0,
        due_soon_minutes: int = 15,
    ) -> None:
        self._cache = cache
        self._clock = clock
        self._sender = sender
        self._permission = permission
        self._missed = missed_notifier
        self._interval = interval
        self._due_soon_minutes = due_soon_minutes
        self._trackers: dict[str, ReminderTracker] = {}
        self._task: asyncio.Task[None] | None = None

    def tracker(self, owner_id: str) -> ReminderTracker:
        """Reminder state for an owner (created on first use)."""
        tracker = self._trackers.get(owner_id)
        if tracker is None:
            tracker = ReminderTracker(self._due_soon_minutes)
            self._trackers[owner_id] = tracker
        return tracker

    async def run_once(self) -> None:
        """One pass over every stored owner, reloading any that were invalidated."""
        now = self._clock.now()
        today_str = today(self._clock)
        for owner_id in await self._cache.known_owners():
            if not self._permission.is_allowed(owner_id):
                continue
            try:
                snapshot = await self._cache.get(owner_id)
            except StoreError as e:
                logger.warning(f"[ReminderLoop] Skipping {owner_id}: {e}")
                continue
            for alert in self.tracker(owner_id).check(snapshot.tasks, snapshot.completions, now):
                title = "Task Due!" if alert.kind == "due" else "Reminder"
                await self._sender.send(owner_id, title, alert.message)
            await self._missed.check(owner_id, snapshot.tasks, snapshot.completions, today_str)

    async def _run(self) -> None:
        logger.info(f"[ReminderLoop] Checking every {self._interval:g}s")
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[ReminderLoop] Check failed: {e}", exc_info=True)
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start the loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="reminder-loop")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("[ReminderLoop] Stopped")
