"""Read-only view endpoints: day, week, month, timeline, dashboard, history."""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query

from task_planner.api.models import (
    DashboardResponse,
    DayViewResponse,
    HistoryGroupResponse,
    MissedResponse,
    MonthViewResponse,
    TaskResponse,
    TimelineResponse,
    WeekViewResponse,
)
from task_planner.api.tasks import Owner, service_for, to_http_error
from task_planner.errors import InvalidDate
from task_planner.scheduling.dates import add_days, format_calendar_date, parse_calendar_date
from task_planner.scheduling.projection import SortBy, SortOrder, StatusFilter, TaskFilter

logger = logging.getLogger(__name__)

router = APIRouter()


def _selected_day(value: str | None) -> date | None:
    """Parse the ``date`` query parameter; None means today."""
    if not value:
        return None
    try:
        return parse_calendar_date(value)
    except InvalidDate as e:
        raise to_http_error(e) from e


def _filter(status: StatusFilter, category: str | None) -> TaskFilter:
    return TaskFilter(status=status, category_id=category or None)


@router.get("/views/day", response_model=DayViewResponse)
async def day_view(
    owner: Owner,
    day: Annotated[str | None, Query(alias="date")] = None,
    sort_by: SortBy = "type",
    order: SortOrder = "asc",
    status: StatusFilter = "all",
    category: str | None = None,
) -> DayViewResponse:
    """Occurrences placed on one day, grouped by type, priority or due bucket.

    Args:
        owner: Owner id
        day: Selected day (YYYY-MM-DD); defaults to the viewer's today
        sort_by: "type", "priority" or "due"
        order: "asc" or "desc" group order
        status: "all", "active" or "completed"
        category: Category id filter

    Returns:
        Grouped occurrences with completion totals
    """
    service = service_for(owner)
    view = await service.day_view(_selected_day(day), sort_by, order, _filter(status, category))
    return DayViewResponse.from_view(view)


@router.get("/views/week", response_model=WeekViewResponse)
async def week_view(
    owner: Owner,
    day: Annotated[str | None, Query(alias="date")] = None,
    hide_recurring: bool = False,
    status: StatusFilter = "all",
    category: str | None = None,
) -> WeekViewResponse:
    """Sunday-start week containing ``date``: recurring grid plus one-off tasks per day."""
    service = service_for(owner)
    view = await service.week_view(
        _selected_day(day), hide_recurring, _filter(status, category)
    )
    return WeekViewResponse.from_view(view)


@router.get("/views/month", response_model=MonthViewResponse)
async def month_view(
    owner: Owner,
    day: Annotated[str | None, Query(alias="date")] = None,
    category: str | None = None,
) -> MonthViewResponse:
    """Completion heatmap for the month containing ``date``."""
    service = service_for(owner)
    view = await service.month_view(_selected_day(day), _filter("all", category))
    return MonthViewResponse.from_view(view)


@router.get("/views/timeline", response_model=TimelineResponse)
async def timeline_view(
    owner: Owner,
    status: StatusFilter = "all",
    category: str | None = None,
) -> TimelineResponse:
    """Tasks bucketed into overdue, today, tomorrow, upcoming and later."""
    service = service_for(owner)
    return TimelineResponse.from_buckets(await service.timeline(_filter(status, category)))


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    owner: Owner,
    status: StatusFilter = "all",
    category: str | None = None,
) -> DashboardResponse:
    """Current (non-history) tasks with completion counts."""
    service = service_for(owner)
    result = await service.dashboard(_filter(status, category))
    return DashboardResponse(
        tasks=[TaskResponse.from_task(t) for t in result.tasks],
        completed=result.completed,
        total=result.total,
    )


@router.get("/history", response_model=list[HistoryGroupResponse])
async def history(
    owner: Owner,
    search: str | None = None,
    year: int | None = None,
    month: int | None = Query(default=None, ge=1, le=12),
    day: int | None = Query(default=None, ge=1, le=31),
) -> list[HistoryGroupResponse]:
    """Completed one-off tasks grouped by completion date, newest first."""
    service = service_for(owner)
    groups = await service.history(search=search, year=year, month=month, day=day)
    return [HistoryGroupResponse.from_group(g) for g in groups]


@router.get("/missed", response_model=MissedResponse)
async def missed(owner: Owner) -> MissedResponse:
    """Recurring tasks whose occurrence yesterday was not completed."""
    service = service_for(owner)
    tasks = await service.missed()
    return MissedResponse(
        yesterday=format_calendar_date(add_days(service.today(), -1)),
        tasks=[TaskResponse.from_task(t) for t in tasks],
    )
