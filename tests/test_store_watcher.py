"""Integration tests for the data directory watcher."""

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from task_planner import factory
from task_planner.config import Config
from task_planner.notifications.notifier import (
    MissedTaskNotifier,
    PreferencePermission,
    ReminderLoop,
)
from task_planner.scheduling.dates import FixedClock
from task_planner.scheduling.missed import MemoryCheckMarker
from task_planner.storage.yaml_store import YamlFileStore

# Generous upper bound for watchdog to deliver an event
EVENT_TIMEOUT = 5.0


class RecordingSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, owner_id: str, title: str, body: str) -> None:
        self.sent.append((owner_id, title, body))


@pytest.fixture
def watched(data_dir: Path, clock: FixedClock, monkeypatch: pytest.MonkeyPatch) -> YamlFileStore:
    """Factory wired to a YAML store in ``data_dir`` with the watcher enabled."""
    store = YamlFileStore(data_dir)
    config = Config(data_dir=str(data_dir), timezone="UTC", watch_data_dir=True)
    monkeypatch.setattr("task_planner.factory._config", config)
    monkeypatch.setattr("task_planner.factory._clock", clock)
    monkeypatch.setattr("task_planner.factory._store", store)
    monkeypatch.setattr("task_planner.factory._snapshot_cache", None)
    monkeypatch.setattr("task_planner.factory._connection_manager", None)
    monkeypatch.setattr("task_planner.factory._permission", None)
    monkeypatch.setattr("task_planner.factory._reminder_loop", None)
    monkeypatch.setattr("task_planner.factory._watcher", None)
    monkeypatch.setattr("task_planner.factory._ledger_locks", {})
    return store


async def _wait_until(condition: Callable[[], bool], timeout: float = EVENT_TIMEOUT) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if condition():
            return True
        await asyncio.sleep(0.05)
    return condition()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_own_writes_keep_owner_cached_and_reminded(
    watched: YamlFileStore, clock: FixedClock
) -> None:
    factory.start_store_watcher()
    try:
        service = factory.get_task_service("alice")
        await service.create_task("Dentist", due_date="2025-01-15T09:10:00")
        # Let the watcher deliver the rename of the store file
        await asyncio.sleep(1.0)

        cache = factory.get_snapshot_cache()
        assert "alice" in cache

        sender = RecordingSender()
        permission = PreferencePermission()
        loop = ReminderLoop(
            cache=cache,
            clock=clock,
            sender=sender,
            permission=permission,
            missed_notifier=MissedTaskNotifier(sender, permission, MemoryCheckMarker()),
        )
        await loop.run_once()

        assert [(owner, title) for owner, title, _ in sender.sent] == [("alice", "Task Due!")]
    finally:
        factory.stop_store_watcher()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_external_edit_invalidates_owner(watched: YamlFileStore, data_dir: Path) -> None:
    factory.start_store_watcher()
    try:
        service = factory.get_task_service("alice")
        await service.create_task("Dentist")
        cache = factory.get_snapshot_cache()
        assert "alice" in cache

        # Another process rewrites the file
        (data_dir / "alice.yaml").write_text(
            "tasks:\n  - id: x\n    title: Edited elsewhere\n", encoding="utf-8"
        )

        assert await _wait_until(lambda: "alice" not in cache)
        assert [t.title for t in await service.list_tasks()] == ["Edited elsewhere"]
    finally:
        factory.stop_store_watcher()
