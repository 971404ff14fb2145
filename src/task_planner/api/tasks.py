"""Task, category and reminder API endpoints."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query

from task_planner.api.models import (
    AlertResponse,
    CategoryRequest,
    CategoryResponse,
    CategoryUpdateRequest,
    CreateTaskRequest,
    NotificationSettingsRequest,
    SnoozeRequest,
    TaskResponse,
    ToggleResponse,
    UpdateTaskRequest,
)
from task_planner.errors import NotFoundError, PersistenceFailure, StoreError
from task_planner.factory import (
    get_clock,
    get_connection_manager,
    get_permission,
    get_reminder_loop,
    get_snapshot_cache,
    get_store,
    get_task_service,
)
from task_planner.scheduling.dates import date_part, format_calendar_date
from task_planner.service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter()

Owner = Annotated[str, Query(min_length=1, description="Owner id all data is scoped to")]


def to_http_error(e: Exception) -> HTTPException:
    """Map engine errors onto HTTP status codes."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PersistenceFailure):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, StoreError):
        # Unreadable store document
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ValueError):
        # ValidationFailure, InvalidDate
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def service_for(owner: str) -> TaskService:
    try:
        return get_task_service(owner)
    except ValueError as e:
        raise to_http_error(e) from e


async def _publish(owner: str, event: str, **payload: Any) -> None:
    """Tell the owner's other clients to re-project their views."""
    await get_connection_manager().send_to_owner(owner, {"type": event, **payload})


# --- Tasks ----------------------------------------------------------------


@router.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(owner: Owner) -> list[TaskResponse]:
    """List all tasks of an owner, newest first.

    Args:
        owner: Owner id

    Returns:
        Every task, recurring and one-off
    """
    service = service_for(owner)
    return [TaskResponse.from_task(t) for t in await service.list_tasks()]


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(owner: Owner, task_id: str) -> TaskResponse:
    service = service_for(owner)
    try:
        return TaskResponse.from_task(await service.get_task(task_id))
    except NotFoundError as e:
        raise to_http_error(e) from e


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(owner: Owner, request: CreateTaskRequest) -> TaskResponse:
    """Create a task.

    Args:
        owner: Owner id
        request: Task fields

    Returns:
        The stored task

    Raises:
        HTTPException: 400 on invalid input, 502 if the store rejected the write
    """
    service = service_for(owner)
    try:
        task = await service.create_task(**request.model_dump())
    except (ValueError, PersistenceFailure) as e:
        raise to_http_error(e) from e
    await _publish(owner, "task_created", task_id=task.id)
    return TaskResponse.from_task(task)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(owner: Owner, task_id: str, request: UpdateTaskRequest) -> TaskResponse:
    """Update the fields present in the request body."""
    service = service_for(owner)
    try:
        task = await service.update_task(task_id, request.model_dump(exclude_unset=True))
    except (NotFoundError, ValueError, PersistenceFailure) as e:
        raise to_http_error(e) from e
    await _publish(owner, "task_updated", task_id=task_id)
    return TaskResponse.from_task(task)


@router.delete("/tasks/{task_id}")
async def delete_task(owner: Owner, task_id: str) -> dict[str, str]:
    """Delete a task together with its completion records."""
    service = service_for(owner)
    try:
        await service.delete_task(task_id)
    except (NotFoundError, PersistenceFailure) as e:
        raise to_http_error(e) from e
    await _publish(owner, "task_deleted", task_id=task_id)
    return {"status": "success", "task_id": task_id}


@router.post("/tasks/{task_id}/toggle", response_model=ToggleResponse)
async def toggle_task(
    owner: Owner,
    task_id: str,
    instance_date: str | None = None,
) -> ToggleResponse:
    """Toggle completion of a task or of one occurrence of a recurring task.

    Args:
        owner: Owner id
        task_id: Task id
        instance_date: Occurrence date (YYYY-MM-DD) for recurring tasks; defaults to today

    Returns:
        The new completion state

    Raises:
        HTTPException: 404 unknown task, 400 bad date, 502 store failure (state rolled back)
    """
    service = service_for(owner)
    try:
        task = await service.get_task(task_id)
        completed = await service.toggle(task_id, instance_date)
    except (NotFoundError, ValueError, PersistenceFailure) as e:
        raise to_http_error(e) from e

    if task.is_recurring:
        instance_date = date_part(instance_date) or format_calendar_date(service.today())
    else:
        instance_date = None
    await _publish(
        owner, "task_toggled", task_id=task_id, instance_date=instance_date, completed=completed
    )
    return ToggleResponse(task_id=task_id, instance_date=instance_date, completed=completed)


# --- Categories -----------------------------------------------------------


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(owner: Owner) -> list[CategoryResponse]:
    service = service_for(owner)
    return [CategoryResponse.from_category(c) for c in await service.list_categories()]


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(owner: Owner, request: CategoryRequest) -> CategoryResponse:
    """Create a category; names are unique per owner, ignoring case."""
    service = service_for(owner)
    try:
        category = await service.create_category(request.name, request.color)
    except (ValueError, PersistenceFailure) as e:
        raise to_http_error(e) from e
    await _publish(owner, "category_created", category_id=category.id)
    return CategoryResponse.from_category(category)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    owner: Owner, category_id: str, request: CategoryUpdateRequest
) -> CategoryResponse:
    service = service_for(owner)
    try:
        category = await service.update_category(category_id, request.name, request.color)
    except (NotFoundError, ValueError, PersistenceFailure) as e:
        raise to_http_error(e) from e
    await _publish(owner, "category_updated", category_id=category_id)
    return CategoryResponse.from_category(category)


@router.delete("/categories/{category_id}")
async def delete_category(owner: Owner, category_id: str) -> dict[str, str]:
    """Delete a category; its tasks stay, uncategorized."""
    service = service_for(owner)
    try:
        await service.delete_category(category_id)
    except (NotFoundError, PersistenceFailure) as e:
        raise to_http_error(e) from e
    await _publish(owner, "category_deleted", category_id=category_id)
    return {"status": "success", "category_id": category_id}


# --- Reminders & notifications --------------------------------------------


@router.get("/reminders", response_model=list[AlertResponse])
async def list_reminders(owner: Owner) -> list[AlertResponse]:
    """Alerts raised for the owner and not yet acknowledged or snoozed."""
    tracker = get_reminder_loop().tracker(owner)
    return [AlertResponse.from_alert(a) for a in tracker.active_alerts()]


@router.post("/reminders/{task_id}/acknowledge")
async def acknowledge_reminder(owner: Owner, task_id: str) -> dict[str, str]:
    """Dismiss the task's current alert."""
    if not get_reminder_loop().tracker(owner).acknowledge(task_id):
        raise HTTPException(status_code=404, detail=f"No active reminder for task: {task_id}")
    return {"status": "success", "task_id": task_id}


@router.post("/reminders/{task_id}/snooze")
async def snooze_reminder(owner: Owner, task_id: str, request: SnoozeRequest) -> dict[str, Any]:
    """Hide the task's current alert and raise it again later."""
    tracker = get_reminder_loop().tracker(owner)
    if not tracker.snooze(task_id, request.minutes, get_clock().now()):
        raise HTTPException(status_code=404, detail=f"No active reminder for task: {task_id}")
    return {"status": "success", "task_id": task_id, "minutes": request.minutes}


@router.put("/notifications")
async def update_notifications(
    owner: Owner, request: NotificationSettingsRequest
) -> dict[str, Any]:
    """Allow or block reminder and missed-task notifications for an owner."""
    permission = get_permission()
    permission.set_enabled(owner, request.enabled)
    logger.info(f"[API] Notifications for {owner}: {'on' if request.enabled else 'off'}")
    return {"owner": owner, "enabled": permission.is_allowed(owner)}


# --- Cache ----------------------------------------------------------------


@router.post("/cache/reload")
async def reload_cache(owner: str | None = None) -> dict[str, list[str] | dict[str, int]]:
    """Force cache reload for debugging/recovery.

    Args:
        owner: Optional owner id to reload. If None, reloads every stored owner.

    Returns:
        {"reloaded": ["alice", "bob"], "counts": {"alice": 12, ...}}
    """
    cache = get_snapshot_cache()
    owners = [owner] if owner else await get_store().list_owners()

    reloaded = []
    counts = {}
    for owner_id in owners:
        try:
            snapshot = await cache.load(owner_id)
        except (ValueError, StoreError) as e:
            raise to_http_error(e) from e
        reloaded.append(owner_id)
        counts[owner_id] = len(snapshot.tasks)
        await _publish(owner_id, "store_changed", change="reloaded", owner_id=owner_id)

    return {"reloaded": reloaded, "counts": counts}
