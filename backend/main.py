from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional

import structlog

import database
from config import load_settings
from confirmation import build_confirmation, is_refusal
from conversation import extract_task_id_from_intent, update_conversation_context
from executor import accept_suggestion, execute_intent
from intent_parser import parse_intent, resolve_choice
from intents import (
    READ_ONLY_TYPES,
    AssistantReply,
    ChooseRequest,
    ConversationContext,
    ExecuteRequest,
    ExecutionResult,
    MessageRequest,
    ParseContext,
    is_mutating,
)
from logging_config import setup_logging
from models import (
    PATTERN_TYPES,
    AcceptPatternRequest,
    Client,
    ClientCreate,
    DetectedPattern,
    EndOfDayRequest,
    PatternPreference,
    PatternsEnabledRequest,
    PreferenceUpdate,
    Task,
    TaskCreate,
    TaskTemplate,
    TaskUpdate,
    WorkSessionCreate,
)
from pattern_detector import run_detection
from pattern_store import PatternStore
from scheduler import DetectionScheduler
from store import SqliteStoreAccess

logger = structlog.get_logger()

settings = load_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(json_mode=settings.log_json, level=settings.log_level)
    if settings.database_path:
        database.DATABASE_PATH = settings.database_path
    database.init_db()

    app.state.conversation = ConversationContext()
    app.state.pattern_store = PatternStore(
        state=database.load_pattern_state(),
        default_preferences=settings.default_preferences(),
        max_per_day=settings.max_suggestions_per_day,
        max_per_week=settings.max_suggestions_per_week,
        on_change=database.save_pattern_state,
    )
    app.state.scheduler = DetectionScheduler(
        scan=lambda: run_detection(SqliteStoreAccess(app.state.pattern_store), app.state.pattern_store),
        interval_seconds=settings.detection_interval_seconds,
        debounce_seconds=settings.debounce_seconds,
    )
    if settings.scheduler_enabled:
        app.state.scheduler.start()
    yield
    # Shutdown
    app.state.scheduler.stop()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _store() -> SqliteStoreAccess:
    return SqliteStoreAccess(app.state.pattern_store)


def _tasks_changed():
    app.state.scheduler.notify_task_count(len(database.get_all_tasks()))


# Tasks

@app.get("/tasks")
def get_tasks() -> list[Task]:
    return database.get_all_tasks()


@app.get("/tasks/search")
def find_task(title: str) -> Task:
    task = database.find_task_by_title_db(title)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.get("/tasks/{task_id}")
def get_task(task_id: str) -> Task:
    task = database.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.post("/tasks")
def create_task(task: TaskCreate) -> Task:
    created = database.create_task_db(task)
    _tasks_changed()
    return created


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, update: TaskUpdate) -> Task:
    updated = database.update_task_db(task_id, **update.model_dump(exclude_unset=True))
    if not updated:
        raise HTTPException(status_code=404, detail="Task not found")
    return updated


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str):
    if not database.delete_task_db(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    _tasks_changed()
    return {"success": True}


@app.post("/day/end")
def end_day(request: EndOfDayRequest):
    moved = database.process_end_of_day(request.date)
    logger.info("end_of_day_processed", date=request.date, moved=moved)
    return {"moved": moved}


# Clients and work time

@app.get("/clients")
def get_clients() -> list[Client]:
    return database.get_all_clients()


@app.post("/clients")
def create_client(client: ClientCreate) -> Client:
    return database.create_client_db(client.name, client.color, client.is_active)


@app.get("/templates")
def get_templates() -> list[TaskTemplate]:
    return database.get_all_templates()


@app.post("/work-sessions")
def add_work_session(session: WorkSessionCreate):
    session_id = database.add_work_session_db(session.work_date, session.work_minutes, session.break_minutes)
    return {"id": session_id}


# Assistant

def _reply(intent, store: SqliteStoreAccess) -> AssistantReply:
    """Read-only intents run immediately; mutations come back with their confirmation."""
    if intent.type in READ_ONLY_TYPES:
        result = execute_intent(intent, store)
        return AssistantReply(intent=intent, message=result.message, result=result)

    if is_mutating(intent):
        confirmation = build_confirmation(intent, store)
        if is_refusal(confirmation):
            return AssistantReply(intent=intent, message=confirmation)
        return AssistantReply(intent=intent, message=confirmation, confirmation=confirmation,
                              requires_confirmation=True)

    # suggest, disambiguate, unknown: the executor renders the prompt text
    result = execute_intent(intent, store)
    return AssistantReply(intent=intent, message=result.message)


@app.post("/assistant/message")
def assistant_message(request: MessageRequest) -> AssistantReply:
    store = _store()
    context = ParseContext(
        today=store.today,
        clients=store.clients,
        expert_mode=settings.expert_mode,
        conversation=app.state.conversation,
        tasks=store.tasks,
    )
    intent = parse_intent(
        request.text,
        context,
        confidence_threshold=settings.confidence_threshold,
        suggestion_threshold=settings.suggestion_threshold,
    )
    logger.info("intent_parsed", intent_type=intent.type, confidence=intent.confidence)
    return _reply(intent, store)


@app.post("/assistant/execute")
def assistant_execute(request: ExecuteRequest) -> ExecutionResult:
    intent = request.intent
    if intent.type in ("suggest", "disambiguate", "unknown"):
        raise HTTPException(status_code=400, detail="Choose a concrete intent first")
    if is_mutating(intent) and not request.confirmed:
        raise HTTPException(status_code=409, detail="Mutation requires confirmation")

    store = _store()
    # Resolve before executing: a deleted task can no longer be looked up
    target_id = extract_task_id_from_intent(intent, store)
    result = execute_intent(intent, store)

    if result.success and is_mutating(intent):
        app.state.conversation = update_conversation_context(
            app.state.conversation, intent, result.task_id or target_id
        )
        _tasks_changed()
    return result


@app.post("/assistant/choose")
def assistant_choose(request: ChooseRequest) -> AssistantReply:
    chosen = resolve_choice(request.intent, request.choice)
    if chosen is None:
        raise HTTPException(status_code=422, detail="Invalid choice")
    return _reply(chosen, _store())


@app.get("/assistant/context")
def get_context() -> ConversationContext:
    return app.state.conversation


@app.delete("/assistant/context")
def reset_context() -> ConversationContext:
    app.state.conversation = ConversationContext()
    return app.state.conversation


# Patterns

@app.get("/patterns")
def get_patterns() -> list[DetectedPattern]:
    return app.state.pattern_store.active_patterns


@app.post("/patterns/scan")
def scan_patterns() -> list[DetectedPattern]:
    return app.state.scheduler.run_now()


@app.post("/patterns/{pattern_id}/accept")
def accept_pattern(pattern_id: str, request: Optional[AcceptPatternRequest] = None) -> ExecutionResult:
    pattern = app.state.pattern_store.get_pattern(pattern_id)
    if pattern is None:
        raise HTTPException(status_code=404, detail="Pattern not found")
    action = request.action if request else None
    return accept_suggestion(pattern, action, _store())


@app.post("/patterns/{pattern_id}/dismiss")
def dismiss_pattern(pattern_id: str, permanent: bool = False):
    if not app.state.pattern_store.dismiss_pattern(pattern_id, permanent=permanent):
        raise HTTPException(status_code=404, detail="Pattern not found")
    return {"success": True}


@app.get("/patterns/preferences")
def get_preferences() -> list[PatternPreference]:
    return app.state.pattern_store.preferences


@app.put("/patterns/preferences/{pattern_type}")
def update_preference(pattern_type: str, update: PreferenceUpdate) -> PatternPreference:
    if pattern_type not in PATTERN_TYPES:
        raise HTTPException(status_code=404, detail="Unknown pattern type")
    return app.state.pattern_store.update_preference(pattern_type, update.autonomy, update.threshold)


@app.post("/patterns/enabled")
def set_patterns_enabled(request: PatternsEnabledRequest):
    app.state.pattern_store.set_all_patterns_enabled(request.enabled)
    return {"enabled": app.state.pattern_store.is_any_pattern_enabled()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
