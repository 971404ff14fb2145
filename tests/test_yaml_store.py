"""Tests for the YAML file store."""

from pathlib import Path

import pytest

from conftest import MakeRecord, MakeTask
from task_planner.errors import DuplicateCompletion, NotFoundError, StoreError
from task_planner.models import Category
from task_planner.storage.store_watcher import owner_from_path
from task_planner.storage.yaml_store import YamlFileStore


@pytest.mark.asyncio
async def test_snapshot_round_trip(
    data_dir: Path, make_task: MakeTask, make_record: MakeRecord
) -> None:
    store = YamlFileStore(data_dir)
    await store.create_category(Category(id="c1", owner_id="alice", name="Work"))
    await store.create_task(make_task("Report", id="t1", due_date="2025-01-20", category_id="c1"))
    habit = make_task("Meditate", id="t2", due_date="2025-01-01", recurrence="daily")
    await store.create_task(habit)
    await store.create_completion(make_record("t2", "2025-01-14"))

    snapshot = await YamlFileStore(data_dir).load_snapshot("alice")

    assert [t.id for t in snapshot.tasks] == ["t1", "t2"]
    assert snapshot.tasks[0].due_date == "2025-01-20"
    assert snapshot.tasks[1].recurrence == "daily"
    assert [(c.task_id, c.instance_date) for c in snapshot.completions] == [("t2", "2025-01-14")]
    assert [c.name for c in snapshot.categories] == ["Work"]
    assert await store.list_owners() == ["alice"]


@pytest.mark.asyncio
async def test_duplicate_completion_is_rejected(
    data_dir: Path, make_task: MakeTask, make_record: MakeRecord
) -> None:
    store = YamlFileStore(data_dir)
    await store.create_task(make_task("Meditate", id="t1", recurrence="daily"))
    first = await store.create_completion(make_record("t1", "2025-01-14"))

    with pytest.raises(DuplicateCompletion) as excinfo:
        await store.create_completion(make_record("t1", "2025-01-14"))
    assert excinfo.value.existing == first


@pytest.mark.asyncio
async def test_delete_task_cascades_completions(
    data_dir: Path, make_task: MakeTask, make_record: MakeRecord
) -> None:
    store = YamlFileStore(data_dir)
    await store.create_task(make_task("Meditate", id="t1", recurrence="daily"))
    await store.create_completion(make_record("t1", "2025-01-14"))

    await store.delete_task("alice", "t1")

    snapshot = await store.load_snapshot("alice")
    assert snapshot.tasks == []
    assert snapshot.completions == []
    with pytest.raises(NotFoundError):
        await store.delete_task("alice", "t1")


@pytest.mark.asyncio
async def test_delete_category_keeps_tasks(data_dir: Path, make_task: MakeTask) -> None:
    store = YamlFileStore(data_dir)
    await store.create_category(Category(id="c1", owner_id="alice", name="Work"))
    await store.create_task(make_task("Report", id="t1", category_id="c1"))

    await store.delete_category("alice", "c1")

    snapshot = await store.load_snapshot("alice")
    assert snapshot.categories == []
    assert snapshot.tasks[0].category_id is None


@pytest.mark.asyncio
async def test_hand_edited_file_with_yaml_dates(data_dir: Path) -> None:
    """Unquoted dates load as date objects and come back as local strings."""
    (data_dir / "bob.yaml").write_text(
        """
tasks:
  - id: a
    title: Water plants
    created_at: 2025-01-01 08:00:00
    due_date: 2025-01-06
    recurrence: weekly
  - id: b
    title: "   "
  - id: c
    title: Odd priority
    priority: urgent
completions:
  - id: r1
    task_id: a
    instance_date: 2025-01-13
  - task_id: missing-id
""",
        encoding="utf-8",
    )

    snapshot = await YamlFileStore(data_dir).load_snapshot("bob")

    assert [t.id for t in snapshot.tasks] == ["a", "c"]
    assert snapshot.tasks[0].due_date == "2025-01-06"
    assert snapshot.tasks[0].created_at == "2025-01-01T08:00:00"
    assert snapshot.tasks[1].priority == "medium"
    assert [c.instance_date for c in snapshot.completions] == ["2025-01-13"]


@pytest.mark.asyncio
async def test_invalid_yaml_raises_store_error(data_dir: Path) -> None:
    (data_dir / "bob.yaml").write_text("tasks: [unclosed", encoding="utf-8")
    with pytest.raises(StoreError):
        await YamlFileStore(data_dir).load_snapshot("bob")


def test_path_for_rejects_traversal(data_dir: Path) -> None:
    store = YamlFileStore(data_dir)
    with pytest.raises(ValueError):
        store.path_for("../etc/passwd")
    with pytest.raises(ValueError):
        store.path_for(".hidden")


def test_owner_from_path() -> None:
    assert owner_from_path("/data/alice.yaml") == "alice"
    assert owner_from_path(b"/data/bob.yaml") == "bob"
    assert owner_from_path("/data/.alice.abc123.tmp") is None
    assert owner_from_path("/data/.missed-check.yaml") is None
    assert owner_from_path("/data/notes.txt") is None


@pytest.mark.asyncio
async def test_is_own_write_tracks_last_document(data_dir: Path, make_task: MakeTask) -> None:
    store = YamlFileStore(data_dir)
    assert not store.is_own_write("alice")

    await store.create_task(make_task("Report"))
    assert store.is_own_write("alice")

    # Edited by someone else
    (data_dir / "alice.yaml").write_text("tasks: []\n", encoding="utf-8")
    assert not store.is_own_write("alice")
