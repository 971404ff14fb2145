"""Dependency injection factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from task_planner.config import Config
from task_planner.errors import StoreError
from task_planner.notifications.notifier import (
    MissedTaskNotifier,
    PreferencePermission,
    ReminderLoop,
    WebSocketNotificationSender,
)
from task_planner.scheduling.dates import Clock, SystemClock
from task_planner.scheduling.missed import YamlCheckMarker
from task_planner.service import TaskService
from task_planner.snapshot_cache import SnapshotCache
from task_planner.storage.store import TaskStore
from task_planner.storage.store_watcher import StoreWatcher
from task_planner.storage.yaml_store import YamlFileStore
from task_planner.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# Global singletons for dependency injection (overridable in tests)
_config: Config | None = None
_clock: Clock | None = None
_store: TaskStore | None = None
_snapshot_cache: SnapshotCache | None = None
_connection_manager: ConnectionManager | None = None
_permission: PreferencePermission | None = None
_reminder_loop: ReminderLoop | None = None
_watcher: StoreWatcher | None = None
_ledger_locks: dict[str, dict[tuple[str, str], asyncio.Lock]] = {}


def get_config() -> Config:
    """Get or create Config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_clock() -> Clock:
    """Get or create the viewer clock."""
    global _clock
    if _clock is None:
        _clock = SystemClock(get_config().get_tzinfo())
    return _clock


def get_store() -> TaskStore:
    """Get or create the task store."""
    global _store
    if _store is None:
        _store = YamlFileStore(get_config().data_dir)
    return _store


def get_snapshot_cache() -> SnapshotCache:
    """Get or create SnapshotCache singleton."""
    global _snapshot_cache
    if _snapshot_cache is None:
        _snapshot_cache = SnapshotCache(get_store())
    return _snapshot_cache


def get_connection_manager() -> ConnectionManager:
    """Get or create ConnectionManager singleton."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


def get_permission() -> PreferencePermission:
    """Get or create the notification permission switch."""
    global _permission
    if _permission is None:
        _permission = PreferencePermission(get_config().notifications_enabled)
    return _permission


def get_reminder_loop() -> ReminderLoop:
    """Get or create the reminder loop."""
    global _reminder_loop
    if _reminder_loop is None:
        config = get_config()
        sender = WebSocketNotificationSender(get_connection_manager())
        permission = get_permission()
        _reminder_loop = ReminderLoop(
            cache=get_snapshot_cache(),
            clock=get_clock(),
            sender=sender,
            permission=permission,
            missed_notifier=MissedTaskNotifier(
                sender, permission, YamlCheckMarker(config.marker_path)
            ),
            interval=config.reminder_check_interval,
            due_soon_minutes=config.due_soon_minutes,
        )
    return _reminder_loop


def get_task_service(owner_id: str) -> TaskService:
    """Create a TaskService scoped to ``owner_id``."""
    locks = _ledger_locks.setdefault(owner_id, {})
    return TaskService(owner_id, get_store(), get_snapshot_cache(), get_clock(), locks)


def start_store_watcher() -> None:
    """Watch the data directory so external edits reach the cache and clients."""
    global _watcher
    config = get_config()
    if not config.watch_data_dir:
        return

    data_dir = Path(config.data_dir)
    if not data_dir.exists():
        logger.warning(f"[Factory] Data dir not found: {data_dir}")
        return

    # Get the running event loop to schedule coroutines from the watcher thread
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.error("[Factory] No running event loop found")
        return

    store = get_store()
    cache = get_snapshot_cache()
    connection_manager = get_connection_manager()

    def callback(event_type: str, owner_id: str) -> None:
        if isinstance(store, YamlFileStore) and store.is_own_write(owner_id):
            logger.debug(f"[Factory] Ignoring own write to {owner_id}")
            return
        # Invalidate on the loop thread; the cache is not thread-safe
        loop.call_soon_threadsafe(cache.invalidate, owner_id)
        message = {"type": "store_changed", "event": event_type, "owner_id": owner_id}
        asyncio.run_coroutine_threadsafe(connection_manager.send_to_owner(owner_id, message), loop)

    try:
        _watcher = StoreWatcher(data_dir)
        _watcher.set_callback(callback)
        _watcher.start(background=True)
    except Exception as e:
        logger.error(f"[Factory] Failed to start store watcher: {e}", exc_info=True)
        _watcher = None


def stop_store_watcher() -> None:
    """Stop the data directory watcher."""
    global _watcher
    if _watcher is None:
        return
    try:
        _watcher.stop()
    except Exception as e:
        logger.error(f"[Factory] Failed to stop store watcher: {e}")
    _watcher = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    logger.info("[Lifespan] Loading snapshots...")
    cache = get_snapshot_cache()
    for owner_id in await get_store().list_owners():
        await cache.load(owner_id)

    logger.info("[Lifespan] Starting store watcher and reminder loop...")
    start_store_watcher()
    reminder_loop = get_reminder_loop()
    reminder_loop.start()
    try:
        yield
    finally:
        logger.info("[Lifespan] Stopping reminder loop and store watcher...")
        await reminder_loop.stop()
        stop_store_watcher()


def create_app() -> FastAPI:
    """Create FastAPI application (composition root)."""
    from task_planner.api.tasks import router as tasks_router
    from task_planner.api.tasks import to_http_error
    from task_planner.api.views import router as views_router
    from task_planner.api.websocket import router as ws_router

    app = FastAPI(
        title="TaskPlanner",
        description="Recurring task scheduling with day, week, month and timeline views",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error(f"[Factory] Store error on {request.url.path}: {exc}")
        error = to_http_error(exc)
        return JSONResponse(status_code=error.status_code, content={"detail": error.detail})

    app.include_router(tasks_router, prefix="/api")
    app.include_router(views_router, prefix="/api")
    app.include_router(ws_router)  # WebSocket at /ws

    return app

