"""
Intent types produced by the parser and consumed by the confirmation
builder and the executor.

Every intent is a frozen pydantic model tagged by ``type``. The only way to
change an intent after parsing is an explicit ``model_copy(update=...)``.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Literal, Optional, Union

from models import Client, MeetingTime, RecurrenceRule, Task, TaskPriority

TaskScope = Literal["last", "by_title", "by_id"]
MoveScope = Literal["all_open", "last", "by_title", "by_id"]

StatsQueryType = Literal[
    "today_summary",
    "weekly_work_time",
    "monthly_work_time",
    "completion_rate",
    "overdue_count",
    "tasks_today",
    "tasks_tomorrow",
    "tasks_week",
    "meetings_today",
    "overdue_tasks",
    "last_completed",
    "current_client",
    "client_list",
    "weekly_completion",
    "high_priority",
]

PatternQueryType = Literal["explain_pattern", "list_patterns", "pattern_settings"]
PatternActionType = Literal["mark_optional", "deprioritize", "accept_client"]


class _IntentBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence: float = Field(ge=0.0, le=1.0)


class CreateTaskIntent(_IntentBase):
    type: Literal["create_task"] = "create_task"
    title: str
    date: str
    priority: Optional[TaskPriority] = None
    is_meeting: bool = False
    meeting_time: Optional[MeetingTime] = None
    client_id: Optional[str] = None


class CreateRecurringTaskIntent(_IntentBase):
    type: Literal["create_recurring_task"] = "create_recurring_task"
    title: str
    date: str
    recurrence: RecurrenceRule
    is_meeting: bool = False


class MoveTasksIntent(_IntentBase):
    type: Literal["move_tasks"] = "move_tasks"
    scope: MoveScope
    to_date: str
    title_query: Optional[str] = None
    task_id: Optional[str] = None


class SetPriorityIntent(_IntentBase):
    type: Literal["set_priority"] = "set_priority"
    scope: TaskScope
    priority: TaskPriority
    title_query: Optional[str] = None
    task_id: Optional[str] = None


class DeleteTaskIntent(_IntentBase):
    type: Literal["delete_task"] = "delete_task"
    scope: TaskScope
    title_query: Optional[str] = None
    task_id: Optional[str] = None


class CreateTemplateIntent(_IntentBase):
    type: Literal["create_template"] = "create_template"
    scope: TaskScope
    title_query: Optional[str] = None
    task_id: Optional[str] = None


class StatsQueryIntent(_IntentBase):
    type: Literal["stats_query"] = "stats_query"
    query_type: StatsQueryType


class ExplainCapabilitiesIntent(_IntentBase):
    type: Literal["explain_capabilities"] = "explain_capabilities"
    expert_mode: bool = False


class PatternQueryIntent(_IntentBase):
    type: Literal["pattern_query"] = "pattern_query"
    query_type: PatternQueryType
    task_id: Optional[str] = None


class PatternActionIntent(_IntentBase):
    type: Literal["pattern_action"] = "pattern_action"
    action: PatternActionType
    task_id: Optional[str] = None
    pattern_id: Optional[str] = None


class UnknownIntent(_IntentBase):
    type: Literal["unknown"] = "unknown"
    raw_input: str = ""


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    intent: Intent


class SuggestIntent(_IntentBase):
    type: Literal["suggest"] = "suggest"
    suggestions: list[Suggestion] = Field(max_length=3)
    raw_input: str = ""


class DisambiguationCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_id: str
    title: str


class DisambiguateIntent(_IntentBase):
    type: Literal["disambiguate"] = "disambiguate"
    original_action: Literal["move", "delete", "priority", "template"]
    candidates: list[DisambiguationCandidate]
    # The unresolved intent, replayed with scope=by_id once a candidate is chosen
    action: TargetedIntent
    raw_input: str = ""


TargetedIntent = Annotated[
    Union[MoveTasksIntent, SetPriorityIntent, DeleteTaskIntent, CreateTemplateIntent],
    Field(discriminator="type"),
]

Intent = Annotated[
    Union[
        CreateTaskIntent,
        CreateRecurringTaskIntent,
        MoveTasksIntent,
        SetPriorityIntent,
        DeleteTaskIntent,
        StatsQueryIntent,
        CreateTemplateIntent,
        ExplainCapabilitiesIntent,
        PatternQueryIntent,
        PatternActionIntent,
        UnknownIntent,
        SuggestIntent,
        DisambiguateIntent,
    ],
    Field(discriminator="type"),
]

Suggestion.model_rebuild()
SuggestIntent.model_rebuild()
DisambiguateIntent.model_rebuild()

# Intent types that change the task store and therefore need confirmation
MUTATING_TYPES = frozenset({
    "create_task",
    "create_recurring_task",
    "move_tasks",
    "set_priority",
    "delete_task",
    "create_template",
    "pattern_action",
})

READ_ONLY_TYPES = frozenset({"stats_query", "explain_capabilities", "pattern_query"})

# Mutations whose target can be rewritten from the conversation context
TARGETED_TYPES = frozenset({"move_tasks", "delete_task", "set_priority", "create_template"})


def is_mutating(intent: Any) -> bool:
    return intent.type in MUTATING_TYPES


class ScoredCandidate(BaseModel):
    """A scorer's guess for one parse call. Never persisted."""
    model_config = ConfigDict(frozen=True)

    intent: Intent
    score: float = Field(ge=0.0, le=1.0)


class ConversationContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    recent_intents: list[Intent] = Field(default_factory=list, max_length=5)  # newest first
    last_referenced_task_id: Optional[str] = None
    last_referenced_client_id: Optional[str] = None


class ExecutionResult(BaseModel):
    success: bool
    message: str
    # Id of a task created by the intent, known only after execution
    task_id: Optional[str] = None


class ParseContext(BaseModel):
    """Read-only inputs for one parse call."""
    model_config = ConfigDict(frozen=True)

    today: str
    clients: list[Client] = Field(default_factory=list)
    expert_mode: bool = False
    conversation: ConversationContext = Field(default_factory=ConversationContext)
    # Open-task snapshot, used to detect ambiguous title references
    tasks: list[Task] = Field(default_factory=list)


# Request and response bodies of the assistant endpoints

class MessageRequest(BaseModel):
    text: str


class ExecuteRequest(BaseModel):
    intent: Intent
    confirmed: bool = False


class ChooseRequest(BaseModel):
    intent: Intent
    # Suggestion index (Suggest) or candidate task id (Disambiguate)
    choice: Union[int, str]


class AssistantReply(BaseModel):
    intent: Intent
    message: str
    confirmation: Optional[str] = None
    requires_confirmation: bool = False
    result: Optional[ExecutionResult] = None
