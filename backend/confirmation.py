"""
Yes/no prompts for mutating intents.

build_confirmation() returns None for intents that run without asking.
Any returned string starting with NOT_FOUND_PREFIX is a refusal: the action
is impossible or already satisfied and must not be offered for confirmation.
"""
from typing import Optional

from formatting import format_date, format_priority, format_recurrence
from resolvers import resolve_task

NOT_FOUND_PREFIX = "Nicht möglich: "

NO_CONFIRMATION_TYPES = frozenset({
    "stats_query",
    "explain_capabilities",
    "pattern_query",
    "suggest",
    "disambiguate",
})


def refusal(message: str) -> str:
    return NOT_FOUND_PREFIX + message


def is_refusal(text: Optional[str]) -> bool:
    return bool(text) and text.startswith(NOT_FOUND_PREFIX)


def resolve_target(intent, store):
    """Task targeted by a move/priority/delete/template intent, or None."""
    return resolve_task(intent.scope, store.tasks, store.today, intent.title_query, intent.task_id)


def find_active_pattern(store, pattern_type: str, task_id: str):
    return next(
        (p for p in store.active_patterns if p.pattern_type == pattern_type and task_id in p.task_ids),
        None,
    )


def build_confirmation(intent, store) -> Optional[str]:
    if intent.type in NO_CONFIRMATION_TYPES:
        return None

    if intent.type == "create_task":
        priority = f" ({format_priority(intent.priority)})" if intent.priority else ""
        time = f" um {intent.meeting_time.start}" if intent.meeting_time else ""
        return f'Aufgabe "{intent.title}" für {format_date(intent.date)}{time} erstellen{priority}?'

    if intent.type == "create_recurring_task":
        return f'Wiederkehrende Aufgabe "{intent.title}" {format_recurrence(intent.recurrence)} erstellen?'

    if intent.type == "move_tasks":
        date_label = format_date(intent.to_date)
        if intent.scope == "all_open":
            count = sum(1 for t in store.tasks if t.scheduled_date == store.today and t.status != "completed")
            if count == 0:
                return refusal("Keine offenen Aufgaben zum Verschieben.")
            return f"Alle {count} offenen Aufgaben auf {date_label} verschieben?"
        task = resolve_target(intent, store)
        if task is None:
            return refusal("Keine Aufgabe gefunden.")
        return f'"{task.title}" auf {date_label} verschieben?'

    if intent.type == "set_priority":
        task = resolve_target(intent, store)
        if task is None:
            return refusal("Keine Aufgabe gefunden.")
        return f'"{task.title}" als {format_priority(intent.priority)} markieren?'

    if intent.type == "delete_task":
        task = resolve_target(intent, store)
        if task is None:
            return refusal("Keine Aufgabe gefunden.")
        return f'"{task.title}" löschen?'

    if intent.type == "create_template":
        task = resolve_target(intent, store)
        if task is None:
            return refusal("Keine Aufgabe gefunden.")
        return f'Vorlage aus "{task.title}" erstellen?'

    if intent.type == "pattern_action":
        return _pattern_action_confirmation(intent, store)

    # unknown
    return refusal("Das habe ich nicht verstanden.")


def _pattern_action_confirmation(intent, store) -> str:
    if not intent.task_id:
        return refusal("Keine Aufgabe referenziert. Nenne die Aufgabe oder wähle sie zuerst aus.")
    task = next((t for t in store.tasks if t.id == intent.task_id), None)
    if task is None:
        return refusal("Aufgabe nicht gefunden.")
    if task.status == "completed":
        return refusal(f'"{task.title}" ist bereits erledigt.')

    if intent.action == "mark_optional":
        if task.is_optional:
            return refusal(f'"{task.title}" ist bereits optional.')
        return f'"{task.title}" als optional markieren?'

    if intent.action == "deprioritize":
        if task.priority == "low":
            return refusal(f'"{task.title}" hat bereits niedrige Priorität.')
        return f'"{task.title}" auf niedrige Priorität setzen?'

    # accept_client
    if task.client_id:
        return refusal(f'"{task.title}" ist bereits einem Kunden zugeordnet.')
    pattern = find_active_pattern(store, "autoClient", task.id)
    if pattern is None or pattern.payload.type != "autoClient":
        return refusal("Kein Kunden-Vorschlag für diese Aufgabe.")
    return f'"{task.title}" dem Kunden "{pattern.payload.suggested_client_name}" zuordnen?'
