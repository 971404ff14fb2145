"""YAML file store: one document per owner under the data directory."""

import asyncio
import hashlib
import logging
import os
import tempfile
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from task_planner.errors import StoreError
from task_planner.models import (
    DEFAULT_CATEGORY_COLOR,
    PRIORITIES,
    RECURRENCES,
    Category,
    CompletionRecord,
    OwnerSnapshot,
    Task,
)
from task_planner.scheduling.dates import format_calendar_date, format_local_datetime
from task_planner.storage.store import SnapshotStore

logger = logging.getLogger(__name__)

STORE_SUFFIX = ".yaml"


class YamlFileStore(SnapshotStore):
    """Store persisting each owner's snapshot to ``<data_dir>/<owner_id>.yaml``."""

    def __init__(self, data_dir: str | Path) -> None:
        """Initialize store rooted at ``data_dir`` (created if missing)."""
        super().__init__()
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        # Digest of the last document this process wrote, per owner
        self._written: dict[str, str] = {}

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, owner_id: str) -> Path:
        """File holding ``owner_id``'s data."""
        if not owner_id or "/" in owner_id or "\\" in owner_id or owner_id.startswith("."):
            raise ValueError(f"Invalid owner id: {owner_id!r}")
        return self._data_dir / f"{owner_id}{STORE_SUFFIX}"

    def is_own_write(self, owner_id: str) -> bool:
        """True while the owner's file still holds exactly what this store last wrote.

        Lets the directory watcher tell the store's own atomic renames apart
        from external edits.
        """
        digest = self._written.get(owner_id)
        if digest is None:
            return False
        try:
            content = self.path_for(owner_id).read_bytes()
        except OSError:
            return False
        return hashlib.sha256(content).hexdigest() == digest

    async def list_owners(self) -> list[str]:
        return sorted(
            p.stem for p in self._data_dir.glob(f"*{STORE_SUFFIX}") if not p.name.startswith(".")
        )

    async def _read(self, owner_id: str) -> OwnerSnapshot:
        return await asyncio.to_thread(self._read_sync, owner_id)

    async def _write(self, snapshot: OwnerSnapshot) -> None:
        await asyncio.to_thread(self._write_sync, snapshot)

    def _read_sync(self, owner_id: str) -> OwnerSnapshot:
        file_path = self.path_for(owner_id)
        if not file_path.exists():
            return OwnerSnapshot(owner_id=owner_id)

        # Try UTF-8 first, fallback to latin-1 for hand-edited files
        try:
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            content = file_path.read_text(encoding="latin-1")

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise StoreError(f"Invalid YAML in {file_path.name}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Unexpected document in {file_path.name}")

        return self._parse_snapshot(owner_id, data)

    def _write_sync(self, snapshot: OwnerSnapshot) -> None:
        file_path = self.path_for(snapshot.owner_id)
        document = {
            "owner_id": snapshot.owner_id,
            "tasks": [asdict(t) for t in snapshot.tasks],
            "completions": [asdict(c) for c in snapshot.completions],
            "categories": [asdict(c) for c in snapshot.categories],
        }
        text = yaml.dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)
        data = text.encode("utf-8")

        # Write to a sibling temp file and rename so readers never see half a document
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self._data_dir, prefix=f".{snapshot.owner_id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            # Record before the rename so the watcher event never races ahead of it
            self._written[snapshot.owner_id] = hashlib.sha256(data).hexdigest()
            os.replace(tmp_name, file_path)
        except OSError as e:
            raise StoreError(f"Failed to write {file_path.name}: {e}") from e
        logger.debug(
            f"[YamlFileStore] Wrote {file_path.name} "
            f"({len(snapshot.tasks)} tasks, {len(snapshot.completions)} completions)"
        )

    def _parse_snapshot(self, owner_id: str, data: dict[str, Any]) -> OwnerSnapshot:
        snapshot = OwnerSnapshot(owner_id=owner_id)
        for raw in data.get("tasks") or []:
            try:
                snapshot.tasks.append(self._parse_task(owner_id, raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[YamlFileStore] Skipping malformed task in {owner_id}: {e}")
        for raw in data.get("completions") or []:
            try:
                snapshot.completions.append(
                    CompletionRecord(
                        id=str(raw["id"]),
                        task_id=str(raw["task_id"]),
                        owner_id=owner_id,
                        instance_date=self._date_to_string(raw["instance_date"]) or "",
                        completed_at=self._timestamp_to_string(raw.get("completed_at")) or "",
                    )
                )
            except (KeyError, TypeError) as e:
                logger.warning(f"[YamlFileStore] Skipping malformed completion in {owner_id}: {e}")
        for raw in data.get("categories") or []:
            try:
                snapshot.categories.append(
                    Category(
                        id=str(raw["id"]),
                        owner_id=owner_id,
                        name=str(raw["name"]),
                        color=str(raw.get("color") or DEFAULT_CATEGORY_COLOR),
                        created_at=self._timestamp_to_string(raw.get("created_at")),
                    )
                )
            except (KeyError, TypeError) as e:
                logger.warning(f"[YamlFileStore] Skipping malformed category in {owner_id}: {e}")
        return snapshot

    def _parse_task(self, owner_id: str, raw: dict[str, Any]) -> Task:
        title = str(raw["title"]).strip()
        if not title:
            raise ValueError(f"Task {raw.get('id')} has an empty title")

        priority = raw.get("priority") or "medium"
        if priority not in PRIORITIES:
            logger.warning(f"[YamlFileStore] Unknown priority {priority!r}, using medium")
            priority = "medium"

        recurrence = raw.get("recurrence") or None
        if recurrence is not None and recurrence not in RECURRENCES:
            logger.warning(f"[YamlFileStore] Unknown recurrence {recurrence!r}, ignoring")
            recurrence = None

        reminder = raw.get("reminder_minutes_before")
        return Task(
            id=str(raw["id"]),
            owner_id=owner_id,
            title=title,
            created_at=self._timestamp_to_string(raw.get("created_at")) or "",
            due_date=self._timestamp_to_string(raw.get("due_date")),
            priority=priority,
            recurrence=recurrence,
            reminder_minutes_before=int(reminder) if reminder is not None else None,
            category_id=raw.get("category_id"),
            completed=bool(raw.get("completed", False)),
            completed_at=self._timestamp_to_string(raw.get("completed_at")),
        )

    def _date_to_string(self, value: Any) -> str | None:
        """Convert YAML date objects back to YYYY-MM-DD strings."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return format_calendar_date(value)
        if isinstance(value, date):
            return value.isoformat()
        return str(value)

    def _timestamp_to_string(self, value: Any) -> str | None:
        """Keep timestamps as the local wall-clock strings they were written as."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return format_local_datetime(value)
        return self._date_to_string(value)
