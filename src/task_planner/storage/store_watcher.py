"""File system watcher for the YAML store directory."""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from threading import Thread

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from task_planner.storage.yaml_store import STORE_SUFFIX

logger = logging.getLogger(__name__)


class StoreWatcher:
    """Watches the data directory and reports which owner's file changed."""

    def __init__(self, data_dir: Path):
        """Initialize watcher.

        Args:
            data_dir: Directory holding ``<owner_id>.yaml`` files
        """
        self.data_dir = data_dir
        self._observer: BaseObserver | None = None
        self._thread: Thread | None = None
        self._callback: Callable[[str, str], None] | None = None

    def set_callback(self, callback: Callable[[str, str], None]) -> None:
        """Set callback for store file events.

        Args:
            callback: Function(event_type, owner_id) called on events
        """
        self._callback = callback

    def start(self, background: bool = True) -> None:
        """Start watching the data directory.

        Args:
            background: Run in background thread (daemon mode)
        """
        handler = _StoreEventHandler(self._callback)
        self._observer = Observer()
        self._observer.schedule(handler, str(self.data_dir), recursive=False)
        logger.info(f"[StoreWatcher] Watching {self.data_dir}")
        self._observer.start()

        if background:
            self._thread = Thread(target=self._run_loop, daemon=True)
            self._thread.start()
        else:
            self._run_loop()

    def _run_loop(self) -> None:
        """Keep observer running until stopped."""
        try:
            while self._observer and self._observer.is_alive():
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop watching and clean up resources."""
        if self._observer:
            logger.info("[StoreWatcher] Stopping")
            self._observer.stop()
            self._observer.join()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)


def owner_from_path(file_path: str | bytes) -> str | None:
    """Owner id for a store file path, None for anything else (temp files, markers)."""
    if isinstance(file_path, bytes):
        file_path = file_path.decode("utf-8")
    path = Path(file_path)
    if path.suffix != STORE_SUFFIX or path.name.startswith("."):
        return None
    return path.stem


class _StoreEventHandler(FileSystemEventHandler):
    """Internal handler translating file events into owner ids."""

    def __init__(self, callback: Callable[[str, str], None] | None):
        self.callback = callback

    def _handle_event(self, event_type: str, file_path: str | bytes) -> None:
        owner_id = owner_from_path(file_path)
        if not owner_id:
            return

        logger.debug(f"[StoreEventHandler] {event_type}: {owner_id}")

        if self.callback:
            try:
                self.callback(event_type, owner_id)
            except Exception as e:
                logger.error(f"[StoreEventHandler] Callback error: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_event("modified", event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_event("created", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_event("deleted", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Atomic writes land as a rename onto the store file."""
        if not event.is_directory:
            self._handle_event("moved", event.dest_path)
