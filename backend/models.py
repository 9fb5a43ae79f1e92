from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional, Union, Annotated

TaskStatus = Literal["todo", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
PatternType = Literal["postpone", "deadlineWarning", "autoClient"]
PatternAutonomy = Literal["auto", "ask", "off"]

PATTERN_TYPES: tuple[str, ...] = ("postpone", "deadlineWarning", "autoClient")


def check_iso_date(value: Optional[str]) -> Optional[str]:
    """YYYY-MM-DD only."""
    if value is not None:
        date.fromisoformat(value)
    return value


def check_iso_date_or_datetime(value: Optional[str]) -> Optional[str]:
    """YYYY-MM-DD or a full ISO datetime."""
    if value is not None:
        try:
            date.fromisoformat(value)
        except ValueError:
            datetime.fromisoformat(value)
    return value


class MeetingTime(BaseModel):
    start: str  # HH:MM
    end: str  # HH:MM


class Subtask(BaseModel):
    id: str
    title: str
    is_completed: bool = False
    order: int = 0


class TimeEntry(BaseModel):
    id: str
    task_id: str
    start_time: str  # ISO datetime
    end_time: Optional[str] = None
    duration: Optional[int] = None  # seconds


class RecurrenceRule(BaseModel):
    type: Literal["none", "daily", "weekly", "monthly", "yearly", "custom"]
    interval: int = 1
    week_days: Optional[list[int]] = None  # 0=Sunday .. 6=Saturday
    month_day: Optional[int] = None
    end_date: Optional[str] = None
    custom_days: Optional[int] = None


class Task(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    scheduled_date: str  # ISO format: YYYY-MM-DD
    deadline: Optional[str] = None  # YYYY-MM-DD or ISO datetime
    client_id: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    subtasks: list[Subtask] = Field(default_factory=list)
    is_spontaneous: bool = False
    is_meeting: bool = False
    meeting_time: Optional[MeetingTime] = None
    recurrence: Optional[RecurrenceRule] = None
    time_entries: list[TimeEntry] = Field(default_factory=list)
    created_at: str  # ISO format datetime string
    completed_at: Optional[str] = None
    original_date: Optional[str] = None  # set on first postponement only
    postpone_count: int = 0
    is_optional: bool = False


class TaskCreate(BaseModel):
    title: str
    scheduled_date: str
    status: TaskStatus = "todo"
    priority: Optional[TaskPriority] = None
    description: Optional[str] = None
    deadline: Optional[str] = None
    client_id: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    subtasks: list[Subtask] = Field(default_factory=list)
    is_spontaneous: bool = False
    is_meeting: bool = False
    meeting_time: Optional[MeetingTime] = None
    recurrence: Optional[RecurrenceRule] = None
    is_optional: bool = False

    @field_validator("scheduled_date")
    @classmethod
    def scheduled_date_is_iso(cls, value):
        return check_iso_date(value)

    @field_validator("deadline")
    @classmethod
    def deadline_is_iso(cls, value):
        return check_iso_date_or_datetime(value)


class Client(BaseModel):
    id: str
    name: str
    color: str = "#6b7280"
    is_active: bool = True
    created_at: str


class TemplateSubtask(BaseModel):
    title: str


class TaskTemplate(BaseModel):
    id: str
    name: str
    title: str
    description: Optional[str] = None
    priority: TaskPriority = "medium"
    client_id: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    subtasks: list[TemplateSubtask] = Field(default_factory=list)
    is_meeting: bool = False
    created_at: str


class TemplateCreate(BaseModel):
    name: str
    title: str
    description: Optional[str] = None
    priority: TaskPriority = "medium"
    client_id: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    subtasks: list[TemplateSubtask] = Field(default_factory=list)
    is_meeting: bool = False


# Pattern intelligence

class PostponePayload(BaseModel):
    type: Literal["postpone"] = "postpone"
    task_id: str
    postpone_count: int
    original_date: str
    suggested_actions: list[Literal["markOptional", "reschedule", "deprioritize", "delete"]]


class DeadlinePayload(BaseModel):
    type: Literal["deadline"] = "deadline"
    task_id: str
    deadline: str
    days_remaining: int
    subtasks_completed: int
    subtasks_total: int
    has_time_tracked: bool


class AutoClientPayload(BaseModel):
    type: Literal["autoClient"] = "autoClient"
    task_id: str
    suggested_client_id: str
    suggested_client_name: str


PatternPayload = Annotated[
    Union[PostponePayload, DeadlinePayload, AutoClientPayload],
    Field(discriminator="type"),
]


class DetectedPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    pattern_type: PatternType
    task_ids: list[str]
    title: str
    description: str
    detected_at: str  # ISO datetime
    render_target: Literal["inline", "toast"]
    priority: Literal["low", "medium", "high"]
    payload: PatternPayload


class PatternPreference(BaseModel):
    pattern_type: PatternType
    autonomy: PatternAutonomy
    threshold: Optional[int] = None


class DismissedPattern(BaseModel):
    pattern_type: PatternType
    task_id: Optional[str] = None
    dismissed_at: str
    permanent: bool = False


class PatternState(BaseModel):
    """Persisted state of the pattern store, including the rate-limit counters."""
    preferences: list[PatternPreference]
    active_patterns: list[DetectedPattern] = Field(default_factory=list)
    dismissed_patterns: list[DismissedPattern] = Field(default_factory=list)
    suggestions_shown_today: int = 0
    last_suggestion_date: Optional[str] = None
    suggestions_shown_this_week: int = 0
    week_start_date: Optional[str] = None


# Request bodies

class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    scheduled_date: Optional[str] = None
    deadline: Optional[str] = None
    client_id: Optional[str] = None
    subtasks: Optional[list[Subtask]] = None
    time_entries: Optional[list[TimeEntry]] = None
    is_meeting: Optional[bool] = None
    meeting_time: Optional[MeetingTime] = None
    is_optional: Optional[bool] = None

    @field_validator("scheduled_date")
    @classmethod
    def scheduled_date_is_iso(cls, value):
        return check_iso_date(value)

    @field_validator("deadline")
    @classmethod
    def deadline_is_iso(cls, value):
        return check_iso_date_or_datetime(value)


class ClientCreate(BaseModel):
    name: str
    color: str = "#6b7280"
    is_active: bool = True


class WorkSessionCreate(BaseModel):
    work_date: str
    work_minutes: int = Field(ge=0)
    break_minutes: int = Field(default=0, ge=0)


class EndOfDayRequest(BaseModel):
    date: str


class PreferenceUpdate(BaseModel):
    autonomy: Optional[PatternAutonomy] = None
    threshold: Optional[int] = Field(default=None, ge=0)


class PatternsEnabledRequest(BaseModel):
    enabled: bool


class AcceptPatternRequest(BaseModel):
    # One of the card's suggested actions; None only acknowledges the pattern
    action: Optional[Literal["markOptional", "reschedule", "deprioritize", "delete", "acceptClient"]] = None
