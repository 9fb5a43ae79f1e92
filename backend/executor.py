"""
Intent executor: applies one intent against a StoreAccess.

Every resolution failure comes back as ExecutionResult(success=False);
nothing here raises for user input.
"""
from typing import Optional, assert_never

import structlog

from formatting import bounded_lines, format_duration, format_priority, plural
from intents import (
    CreateRecurringTaskIntent,
    CreateTaskIntent,
    CreateTemplateIntent,
    DeleteTaskIntent,
    DisambiguateIntent,
    ExecutionResult,
    ExplainCapabilitiesIntent,
    MoveTasksIntent,
    PatternActionIntent,
    PatternQueryIntent,
    SetPriorityIntent,
    StatsQueryIntent,
    SuggestIntent,
    UnknownIntent,
)
from models import DetectedPattern, TaskCreate, TemplateCreate, TemplateSubtask
from prompts import (
    DISAMBIGUATE_HEADER,
    SUGGEST_HEADER,
    UNKNOWN_TEXT,
    capabilities_message,
    numbered,
)
from resolvers import WEEKDAY_NAMES, add_days, js_weekday, parse_iso_date, resolve_task

logger = structlog.get_logger()

NO_MATCH = "Keine passende Aufgabe gefunden."

PATTERN_TYPE_LABELS = {"postpone": "Verschoben", "deadlineWarning": "Deadline", "autoClient": "Kunde"}
PATTERN_SETTING_LABELS = {
    "postpone": "Oft verschoben",
    "deadlineWarning": "Deadline-Warnung",
    "autoClient": "Kundenerkennung",
}
AUTONOMY_LABELS = {"auto": "Automatisch", "ask": "Fragen", "off": "Aus"}


def _ok(message: str, task_id: Optional[str] = None) -> ExecutionResult:
    return ExecutionResult(success=True, message=message, task_id=task_id)


def _fail(message: str) -> ExecutionResult:
    return ExecutionResult(success=False, message=message)


def execute_intent(intent, store) -> ExecutionResult:
    result = _dispatch(intent, store)
    logger.info("intent_executed", intent_type=intent.type, success=result.success)
    return result


def _dispatch(intent, store) -> ExecutionResult:
    if isinstance(intent, CreateTaskIntent):
        created = store.add_task(TaskCreate(
            title=intent.title,
            status="todo",
            scheduled_date=intent.date,
            priority=intent.priority,
            is_spontaneous=True,
            is_meeting=intent.is_meeting,
            meeting_time=intent.meeting_time,
            client_id=intent.client_id,
        ))
        return _ok(f'Aufgabe "{intent.title}" erstellt.', task_id=created.id)

    elif isinstance(intent, CreateRecurringTaskIntent):
        created = store.add_task(TaskCreate(
            title=intent.title,
            status="todo",
            scheduled_date=intent.date,
            is_meeting=intent.is_meeting,
            recurrence=intent.recurrence,
        ))
        return _ok(f'Wiederkehrende Aufgabe "{intent.title}" erstellt.', task_id=created.id)

    elif isinstance(intent, MoveTasksIntent):
        return _move_tasks(intent, store)

    elif isinstance(intent, SetPriorityIntent):
        task = _resolve(intent, store)
        if task is None:
            return _fail(NO_MATCH)
        store.set_task_priority(task.id, intent.priority)
        return _ok(f'"{task.title}" als {format_priority(intent.priority)} markiert.')

    elif isinstance(intent, DeleteTaskIntent):
        task = _resolve(intent, store)
        if task is None:
            return _fail(NO_MATCH)
        store.delete_task(task.id)
        return _ok(f'"{task.title}" gelöscht.')

    elif isinstance(intent, CreateTemplateIntent):
        task = _resolve(intent, store)
        if task is None:
            return _fail(NO_MATCH)
        store.add_template(TemplateCreate(
            name=task.title,
            title=task.title,
            description=task.description,
            priority=task.priority,
            client_id=task.client_id,
            tag_ids=task.tag_ids,
            subtasks=[TemplateSubtask(title=s.title) for s in task.subtasks],
            is_meeting=task.is_meeting,
        ))
        return _ok(f'Vorlage "{task.title}" erstellt.')

    elif isinstance(intent, StatsQueryIntent):
        return execute_stats_query(intent, store)

    elif isinstance(intent, ExplainCapabilitiesIntent):
        return _ok(capabilities_message(intent.expert_mode))

    elif isinstance(intent, PatternQueryIntent):
        return execute_pattern_query(intent, store)

    elif isinstance(intent, PatternActionIntent):
        return execute_pattern_action(intent, store)

    elif isinstance(intent, SuggestIntent):
        return _fail(numbered(SUGGEST_HEADER, [s.label for s in intent.suggestions]))

    elif isinstance(intent, DisambiguateIntent):
        return _fail(numbered(DISAMBIGUATE_HEADER, [c.title for c in intent.candidates]))

    elif isinstance(intent, UnknownIntent):
        return _fail(UNKNOWN_TEXT)

    else:
        assert_never(intent)


def _resolve(intent, store):
    return resolve_task(intent.scope, store.tasks, store.today, intent.title_query, intent.task_id)


def _postpone(task, to_date: str, store):
    store.update_task(
        task.id,
        scheduled_date=to_date,
        original_date=task.original_date or task.scheduled_date,
        postpone_count=task.postpone_count + 1,
    )


def _move_tasks(intent: MoveTasksIntent, store) -> ExecutionResult:
    if intent.scope == "all_open":
        to_move = [t for t in store.tasks if t.scheduled_date == store.today and t.status != "completed"]
        if not to_move:
            return _fail("Keine offenen Aufgaben zum Verschieben gefunden.")
        for task in to_move:
            _postpone(task, intent.to_date, store)
        return _ok(f"{len(to_move)} {plural(len(to_move), 'Aufgabe', 'n')} verschoben.")

    task = _resolve(intent, store)
    if task is None:
        return _fail(NO_MATCH)
    _postpone(task, intent.to_date, store)
    return _ok(f'"{task.title}" verschoben.')


# --- Pattern queries ---

def _deadline_status(days: int) -> str:
    if days < 0:
        return f"{abs(days)} {plural(abs(days), 'Tag', 'e')} überfällig"
    if days == 0:
        return "Deadline ist heute"
    return f"noch {days} {plural(days, 'Tag', 'e')} bis zur Deadline"


def _explain(pattern: DetectedPattern, task_title: str) -> str:
    payload = pattern.payload
    if payload.type == "postpone":
        return (f'Oft verschoben: "{task_title}" wurde {payload.postpone_count}x verschoben'
                f" (ursprünglich {payload.original_date}).")
    if payload.type == "deadline":
        return f"Deadline-Warnung: {_deadline_status(payload.days_remaining)}."
    return f'Kundenerkennung: "{payload.suggested_client_name}" wurde im Titel erkannt.'


def execute_pattern_query(intent: PatternQueryIntent, store) -> ExecutionResult:
    if intent.query_type == "explain_pattern":
        if not intent.task_id:
            return _ok("Nenne eine Aufgabe, zu der ich Muster erklären soll.")
        task = next((t for t in store.tasks if t.id == intent.task_id), None)
        if task is None:
            return _fail("Aufgabe nicht gefunden.")
        task_patterns = [p for p in store.active_patterns if task.id in p.task_ids]
        if not task_patterns:
            if task.postpone_count > 0:
                since = f" Ursprünglich geplant für {task.original_date}." if task.original_date else ""
                return _ok(f'"{task.title}" wurde {task.postpone_count}x verschoben.{since}')
            return _ok(f'Kein aktives Muster für "{task.title}".')
        return _ok("\n".join(_explain(p, task.title) for p in task_patterns))

    if intent.query_type == "list_patterns":
        patterns = store.active_patterns
        if not patterns:
            return _ok("Keine aktiven Muster-Hinweise.")
        titles = {t.id: t.title for t in store.tasks}
        lines = [
            f"- [{PATTERN_TYPE_LABELS[p.pattern_type]}] "
            f"{titles.get(p.task_ids[0], 'Unbekannt') if p.task_ids else 'Unbekannt'}: {p.description}"
            for p in patterns
        ]
        return _ok(f"{len(patterns)} aktive Muster:\n" + bounded_lines(lines))

    # pattern_settings
    lines = []
    for pref in store.pattern_preferences:
        threshold = f" (Schwellwert: {pref.threshold})" if pref.threshold else ""
        lines.append(f"- {PATTERN_SETTING_LABELS[pref.pattern_type]}: {AUTONOMY_LABELS[pref.autonomy]}{threshold}")
    return _ok("Muster-Einstellungen:\n" + "\n".join(lines)
               + "\n\nÄnderungen können in den Einstellungen vorgenommen werden.")


# --- Pattern actions ---

def _accept_matching(store, pattern_type: str, task_id: str):
    pattern = next(
        (p for p in store.active_patterns if p.pattern_type == pattern_type and task_id in p.task_ids),
        None,
    )
    if pattern is not None:
        store.accept_pattern(pattern.id)
    return pattern


def execute_pattern_action(intent: PatternActionIntent, store) -> ExecutionResult:
    if not intent.task_id:
        return _fail("Keine Aufgabe referenziert.")
    task = next((t for t in store.tasks if t.id == intent.task_id), None)
    if task is None:
        return _fail("Aufgabe nicht gefunden.")
    if task.status == "completed":
        return _fail(f'"{task.title}" ist bereits erledigt.')

    if intent.action == "mark_optional":
        if task.is_optional:
            return _fail(f'"{task.title}" ist bereits optional.')
        store.update_task(task.id, is_optional=True)
        _accept_matching(store, "postpone", task.id)
        return _ok(f'"{task.title}" als optional markiert.')

    if intent.action == "deprioritize":
        if task.priority == "low":
            return _fail(f'"{task.title}" hat bereits niedrige Priorität.')
        store.set_task_priority(task.id, "low")
        _accept_matching(store, "postpone", task.id)
        return _ok(f'"{task.title}" auf niedrige Priorität gesetzt.')

    # accept_client
    pattern = next(
        (p for p in store.active_patterns if p.pattern_type == "autoClient" and task.id in p.task_ids),
        None,
    )
    if pattern is None or pattern.payload.type != "autoClient":
        return _fail("Kein Kunden-Vorschlag für diese Aufgabe.")
    if task.client_id:
        return _fail(f'"{task.title}" ist bereits einem Kunden zugeordnet.')
    store.update_task(task.id, client_id=pattern.payload.suggested_client_id)
    store.accept_pattern(pattern.id)
    return _ok(f'"{task.title}" dem Kunden "{pattern.payload.suggested_client_name}" zugeordnet.')


SUGGESTION_ACTIONS = ("markOptional", "reschedule", "deprioritize", "delete", "acceptClient")


def suggestion_to_intent(pattern: DetectedPattern, action: str, today: str):
    """Translate a suggestion card action into the intent that carries it out."""
    task_id = pattern.task_ids[0] if pattern.task_ids else None
    if task_id is None:
        return None
    if action == "markOptional":
        return PatternActionIntent(confidence=1.0, action="mark_optional", task_id=task_id, pattern_id=pattern.id)
    if action == "deprioritize":
        return PatternActionIntent(confidence=1.0, action="deprioritize", task_id=task_id, pattern_id=pattern.id)
    if action == "acceptClient":
        return PatternActionIntent(confidence=1.0, action="accept_client", task_id=task_id, pattern_id=pattern.id)
    if action == "reschedule":
        return MoveTasksIntent(confidence=1.0, scope="by_id", task_id=task_id, to_date=add_days(today, 1))
    if action == "delete":
        return DeleteTaskIntent(confidence=1.0, scope="by_id", task_id=task_id)
    return None


def accept_suggestion(pattern: DetectedPattern, action: Optional[str], store) -> ExecutionResult:
    """Accept a suggestion card, optionally carrying out one of its actions.

    Without an action the pattern is only acknowledged. The pattern is
    consumed when the action succeeds.
    """
    if action is None:
        store.accept_pattern(pattern.id)
        return _ok("Hinweis übernommen.")

    intent = suggestion_to_intent(pattern, action, store.today)
    if intent is None:
        return _fail(f"Unbekannte Aktion: {action}")

    result = execute_intent(intent, store)
    if result.success:
        store.accept_pattern(pattern.id)
    return result


# --- Stats ---

def _today_counts(store, day: str) -> tuple[int, int, int]:
    tasks = [t for t in store.tasks if t.scheduled_date == day]
    completed = sum(1 for t in tasks if t.status == "completed" and not t.is_meeting)
    total = sum(1 for t in tasks if not t.is_meeting)
    meetings = sum(1 for t in tasks if t.is_meeting)
    return completed, total, meetings


def _rate(completed: int, total: int) -> int:
    return round(completed / total * 100) if total > 0 else 0


def _task_line(task, show_priority: bool = True) -> str:
    prefix = f"{task.meeting_time.start} " if task.is_meeting and task.meeting_time else ""
    prio = f" [{format_priority(task.priority)}]" if show_priority and task.priority in ("urgent", "high") else ""
    return f"- {prefix}{task.title}{prio}"


def execute_stats_query(intent: StatsQueryIntent, store) -> ExecutionResult:
    today = store.today
    query = intent.query_type

    if query == "today_summary":
        completed, total, meetings = _today_counts(store, today)
        work = store.get_net_work_time(today)
        message = f"Heute: {completed}/{total} Aufgaben erledigt ({_rate(completed, total)}%)"
        if meetings:
            message += f", {meetings} {plural(meetings, 'Meeting', 's')}"
        if work > 0:
            message += f"\nArbeitszeit: {format_duration(work)}"
        return _ok(message)

    if query == "weekly_work_time":
        return _ok(f"Arbeitszeit diese Woche: {format_duration(store.get_weekly_work_time(today))}")

    if query == "monthly_work_time":
        return _ok(f"Arbeitszeit diesen Monat: {format_duration(store.get_monthly_work_time(today))}")

    if query == "completion_rate":
        completed, total, _ = _today_counts(store, today)
        return _ok(f"{completed} von {total} Aufgaben erledigt ({_rate(completed, total)}%).")

    if query == "overdue_count":
        overdue = [t for t in store.tasks
                   if t.scheduled_date < today and t.status != "completed" and not t.is_meeting]
        if not overdue:
            return _ok("Keine überfälligen Aufgaben.")
        return _ok(f"{len(overdue)} überfällige {plural(len(overdue), 'Aufgabe', 'n')}.")

    if query == "tasks_today":
        tasks = [t for t in store.get_tasks_for_date_sorted(today) if t.status != "completed"]
        if not tasks:
            return _ok("Heute stehen keine Aufgaben an.")
        return _ok(f"Heute stehen {len(tasks)} {plural(len(tasks), 'Aufgabe', 'n')} an:\n"
                   + bounded_lines([_task_line(t) for t in tasks]))

    if query == "tasks_tomorrow":
        tasks = [t for t in store.get_tasks_for_date_sorted(add_days(today, 1)) if t.status != "completed"]
        if not tasks:
            return _ok("Morgen stehen keine Aufgaben an.")
        return _ok(f"Morgen hast du {len(tasks)} {plural(len(tasks), 'Aufgabe', 'n')}:\n"
                   + bounded_lines([_task_line(t, show_priority=False) for t in tasks]))

    if query == "tasks_week":
        return _tasks_week(store)

    if query == "meetings_today":
        meetings = [t for t in store.get_tasks_for_date_sorted(today) if t.is_meeting and t.status != "completed"]
        if not meetings:
            return _ok("Keine Meetings heute.")
        lines = [
            f"- {t.title}" + (f" ({t.meeting_time.start}–{t.meeting_time.end})" if t.meeting_time else "")
            for t in meetings
        ]
        return _ok(f"{len(meetings)} {plural(len(meetings), 'Meeting', 's')} heute:\n" + bounded_lines(lines))

    if query == "overdue_tasks":
        overdue = [t for t in store.get_unfinished_tasks_before_date(today) if not t.is_meeting]
        if not overdue:
            return _ok("Keine überfälligen Aufgaben.")
        lines = [
            f"- {t.title} ({WEEKDAY_NAMES[js_weekday(t.scheduled_date)]}, {parse_iso_date(t.scheduled_date).day}.)"
            for t in overdue
        ]
        return _ok(f"{len(overdue)} überfällige {plural(len(overdue), 'Aufgabe', 'n')}:\n" + bounded_lines(lines))

    if query == "last_completed":
        completed = sorted(
            (t for t in store.tasks if t.status == "completed" and t.completed_at),
            key=lambda t: t.completed_at,
            reverse=True,
        )
        if not completed:
            return _ok("Noch keine Aufgaben erledigt.")
        return _ok(f'Zuletzt erledigt: "{completed[0].title}"')

    if query == "current_client":
        in_progress = [t for t in store.tasks if t.status == "in_progress"]
        if not in_progress:
            return _ok("Gerade keine Aufgabe in Bearbeitung.")
        task = in_progress[0]
        client = next((c for c in store.clients if c.id == task.client_id), None) if task.client_id else None
        client_label = f" ({client.name})" if client else ""
        return _ok(f'Du arbeitest gerade an: "{task.title}"{client_label}')

    if query == "client_list":
        if not store.clients:
            return _ok("Keine Kunden angelegt.")
        return _ok("Deine Kunden:\n" + bounded_lines([f"- {c.name}" for c in store.clients]))

    if query == "weekly_completion":
        monday = add_days(today, -((js_weekday(today) + 6) % 7))
        week = {add_days(monday, i) for i in range(7)}
        tasks = [t for t in store.tasks if t.scheduled_date in week and not t.is_meeting]
        completed = sum(1 for t in tasks if t.status == "completed")
        return _ok(f"Diese Woche: {completed} von {len(tasks)} Aufgaben erledigt ({_rate(completed, len(tasks))}%).")

    if query == "high_priority":
        urgent = [t for t in store.tasks if t.priority in ("urgent", "high") and t.status != "completed"]
        if not urgent:
            return _ok("Keine dringenden oder wichtigen Aufgaben.")
        lines = [f"- {t.title} [{format_priority(t.priority)}]" for t in urgent]
        return _ok(f"{len(urgent)} dringende/wichtige {plural(len(urgent), 'Aufgabe', 'n')}:\n"
                   + bounded_lines(lines))

    assert_never(query)


def _tasks_week(store) -> ExecutionResult:
    """Open tasks from today through Friday (today only, on a Sunday)."""
    weekday = js_weekday(store.today)
    days_until_end = 0 if weekday == 0 else max(5 - weekday, 0)
    total = 0
    lines = []
    for offset in range(days_until_end + 1):
        day = add_days(store.today, offset)
        tasks = [t for t in store.get_tasks_for_date_sorted(day) if t.status != "completed" and not t.is_meeting]
        if tasks:
            lines.append(f"{WEEKDAY_NAMES[js_weekday(day)]}: {len(tasks)} {plural(len(tasks), 'Aufgabe', 'n')}")
            total += len(tasks)
    if total == 0:
        return _ok("Diese Woche sind keine offenen Aufgaben mehr.")
    return _ok(f"Diese Woche noch {total} offene Aufgaben:\n" + "\n".join(lines))


