"""API models for TaskPlanner."""

from typing import Literal

from pydantic import BaseModel, Field

from task_planner.models import Category, CompletionRecord, Task
from task_planner.scheduling.history import HistoryGroup
from task_planner.scheduling.projection import (
    DayView,
    MonthView,
    Occurrence,
    TimelineEntry,
    WeekView,
)
from task_planner.scheduling.reminders import Alert

PriorityValue = Literal["low", "medium", "high"]
RecurrenceValue = Literal["daily", "weekly", "monthly"]


class TaskResponse(BaseModel):
    """API response model for tasks."""

    id: str
    owner_id: str
    title: str
    due_date: str | None
    priority: str
    recurrence: str | None
    reminder_minutes_before: int | None
    category_id: str | None
    created_at: str
    completed: bool
    completed_at: str | None

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            owner_id=task.owner_id,
            title=task.title,
            due_date=task.due_date,
            priority=task.priority,
            recurrence=task.recurrence,
            reminder_minutes_before=task.reminder_minutes_before,
            category_id=task.category_id,
            created_at=task.created_at,
            # Recurring tasks are never done as a whole
            completed=task.completed and not task.is_recurring,
            completed_at=None if task.is_recurring else task.completed_at,
        )


class CreateTaskRequest(BaseModel):
    """Request model for creating a task."""

    title: str = Field(min_length=1)
    due_date: str | None = None
    priority: PriorityValue = "medium"
    recurrence: RecurrenceValue | None = None
    reminder_minutes_before: int | None = Field(default=None, ge=0)
    category_id: str | None = None


class UpdateTaskRequest(BaseModel):
    """Request model for a partial task update; omitted fields stay unchanged."""

    title: str | None = Field(default=None, min_length=1)
    due_date: str | None = None
    priority: PriorityValue | None = None
    recurrence: RecurrenceValue | None = None
    reminder_minutes_before: int | None = Field(default=None, ge=0)
    category_id: str | None = None


class ToggleResponse(BaseModel):
    task_id: str
    instance_date: str | None
    completed: bool


class CompletionResponse(BaseModel):
    id: str
    task_id: str
    instance_date: str
    completed_at: str

    @classmethod
    def from_record(cls, record: CompletionRecord) -> "CompletionResponse":
        return cls(
            id=record.id,
            task_id=record.task_id,
            instance_date=record.instance_date,
            completed_at=record.completed_at,
        )


class CategoryRequest(BaseModel):
    name: str = Field(min_length=1)
    color: str | None = None


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    color: str | None = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    color: str

    @classmethod
    def from_category(cls, category: Category) -> "CategoryResponse":
        return cls(id=category.id, name=category.name, color=category.color)


class OccurrenceResponse(BaseModel):
    """One task on one date, as rendered by the views."""

    task: TaskResponse
    instance_date: str
    is_recurring: bool
    is_completed: bool
    is_overdue: bool
    reason: str

    @classmethod
    def from_occurrence(cls, occurrence: Occurrence) -> "OccurrenceResponse":
        return cls(
            task=TaskResponse.from_task(occurrence.task),
            instance_date=occurrence.instance_date,
            is_recurring=occurrence.is_recurring,
            is_completed=occurrence.is_completed,
            is_overdue=occurrence.is_overdue,
            reason=occurrence.reason,
        )


class OccurrenceGroupResponse(BaseModel):
    key: str
    label: str
    occurrences: list[OccurrenceResponse]


class DayViewResponse(BaseModel):
    date: str
    is_today: bool
    is_past: bool
    sort_by: str
    order: str
    groups: list[OccurrenceGroupResponse]
    total: int
    completed: int

    @classmethod
    def from_view(cls, view: DayView) -> "DayViewResponse":
        return cls(
            date=view.date,
            is_today=view.is_today,
            is_past=view.is_past,
            sort_by=view.sort_by,
            order=view.order,
            groups=[
                OccurrenceGroupResponse(
                    key=g.key,
                    label=g.label,
                    occurrences=[OccurrenceResponse.from_occurrence(o) for o in g.occurrences],
                )
                for g in view.groups
            ],
            total=view.total,
            completed=view.completed,
        )


class WeekDayResponse(BaseModel):
    date: str
    weekday: str
    day_num: int
    is_today: bool
    is_past: bool


class GridCellResponse(BaseModel):
    date: str
    scheduled: bool
    completed: bool


class RecurringRowResponse(BaseModel):
    task: TaskResponse
    cells: list[GridCellResponse]


class DayTaskListResponse(BaseModel):
    date: str
    label: str
    occurrences: list[OccurrenceResponse]


class WeekViewResponse(BaseModel):
    start: str
    end: str
    days: list[WeekDayResponse]
    recurring_rows: list[RecurringRowResponse]
    one_off_days: list[DayTaskListResponse]

    @classmethod
    def from_view(cls, view: WeekView) -> "WeekViewResponse":
        return cls(
            start=view.start,
            end=view.end,
            days=[
                WeekDayResponse(
                    date=d.date,
                    weekday=d.weekday,
                    day_num=d.day_num,
                    is_today=d.is_today,
                    is_past=d.is_past,
                )
                for d in view.days
            ],
            recurring_rows=[
                RecurringRowResponse(
                    task=TaskResponse.from_task(row.task),
                    cells=[
                        GridCellResponse(date=c.date, scheduled=c.scheduled, completed=c.completed)
                        for c in row.cells
                    ],
                )
                for row in view.recurring_rows
            ],
            one_off_days=[
                DayTaskListResponse(
                    date=day.date,
                    label=day.label,
                    occurrences=[OccurrenceResponse.from_occurrence(o) for o in day.occurrences],
                )
                for day in view.one_off_days
            ],
        )


class MonthCellResponse(BaseModel):
    date: str
    day_num: int
    is_current_month: bool
    is_today: bool
    is_future: bool
    total: int
    completed: int
    percent: int | None
    level: str


class MonthViewResponse(BaseModel):
    year: int
    month: int
    cells: list[MonthCellResponse]

    @classmethod
    def from_view(cls, view: MonthView) -> "MonthViewResponse":
        return cls(
            year=view.year,
            month=view.month,
            cells=[
                MonthCellResponse(
                    date=c.date,
                    day_num=c.day_num,
                    is_current_month=c.is_current_month,
                    is_today=c.is_today,
                    is_future=c.is_future,
                    total=c.total,
                    completed=c.completed,
                    percent=c.percent,
                    level=c.level,
                )
                for c in view.cells
            ],
        )


class TimelineEntryResponse(BaseModel):
    task: TaskResponse
    effective_date: str
    is_recurring: bool
    is_completed: bool

    @classmethod
    def from_entry(cls, entry: TimelineEntry) -> "TimelineEntryResponse":
        return cls(
            task=TaskResponse.from_task(entry.task),
            effective_date=entry.effective_date,
            is_recurring=entry.is_recurring,
            is_completed=entry.is_completed,
        )


class TimelineResponse(BaseModel):
    overdue: list[TimelineEntryResponse]
    today: list[TimelineEntryResponse]
    tomorrow: list[TimelineEntryResponse]
    upcoming: list[TimelineEntryResponse]
    later: list[TimelineEntryResponse]

    @classmethod
    def from_buckets(cls, buckets: dict[str, list[TimelineEntry]]) -> "TimelineResponse":
        return cls(
            **{
                name: [TimelineEntryResponse.from_entry(e) for e in entries]
                for name, entries in buckets.items()
            }
        )


class DashboardResponse(BaseModel):
    tasks: list[TaskResponse]
    completed: int
    total: int


class HistoryGroupResponse(BaseModel):
    date: str
    tasks: list[TaskResponse]

    @classmethod
    def from_group(cls, group: HistoryGroup) -> "HistoryGroupResponse":
        return cls(date=group.date, tasks=[TaskResponse.from_task(t) for t in group.tasks])


class MissedResponse(BaseModel):
    yesterday: str
    tasks: list[TaskResponse]


class AlertResponse(BaseModel):
    task_id: str
    title: str
    kind: str
    due_at: str
    minutes_left: int
    message: str

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        return cls(
            task_id=alert.task_id,
            title=alert.title,
            kind=alert.kind,
            due_at=alert.due_at,
            minutes_left=alert.minutes_left,
            message=alert.message,
        )


class SnoozeRequest(BaseModel):
    minutes: int = Field(default=5, gt=0)


class NotificationSettingsRequest(BaseModel):
    enabled: bool
