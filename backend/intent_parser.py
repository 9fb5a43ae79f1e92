"""
Intent parser: runs every scorer, keeps the best candidate and decides
between a concrete intent, a Suggest prompt and Unknown.
"""
import re
from typing import Optional, Sequence

import structlog

from formatting import format_priority
from intents import (
    TARGETED_TYPES,
    DisambiguateIntent,
    DisambiguationCandidate,
    ParseContext,
    ScoredCandidate,
    Suggestion,
    SuggestIntent,
    UnknownIntent,
)
from resolvers import find_tasks_by_title
from scorers import SCORERS, NormalizedInput, Scorer

logger = structlog.get_logger()

CONFIDENCE_THRESHOLD = 0.6
SUGGESTION_THRESHOLD = 0.2
MAX_SUGGESTIONS = 3

PRONOUN_PATTERNS = (
    re.compile(r"\b(das|dies[es]?)\b"),
    re.compile(r"\bdiese[ns]?\s+(aufgabe|task)\b"),
    re.compile(r"\b(die|den)\s+letzte[ns]?\b"),
    re.compile(r"\b(that|this\s+task|the\s+last\s+one)\b"),
)

STATS_QUERY_LABELS = {
    "today_summary": "Tagesübersicht",
    "weekly_work_time": "Wochenarbeitszeit",
    "monthly_work_time": "Monatsarbeitszeit",
    "completion_rate": "Erledigungsrate",
    "overdue_count": "Offene Aufgaben",
    "tasks_today": "Aufgaben heute",
    "tasks_tomorrow": "Aufgaben morgen",
    "tasks_week": "Aufgaben diese Woche",
    "meetings_today": "Meetings heute",
    "overdue_tasks": "Überfällige Aufgaben",
    "last_completed": "Zuletzt erledigt",
    "current_client": "Aktueller Kunde",
    "client_list": "Kundenliste",
    "weekly_completion": "Wochenfortschritt",
    "high_priority": "Dringende Aufgaben",
}

_DISAMBIGUATION_ACTIONS = {
    "move_tasks": "move",
    "delete_task": "delete",
    "set_priority": "priority",
    "create_template": "template",
}


def parse_intent(
    text: str,
    context: ParseContext,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
    suggestion_threshold: float = SUGGESTION_THRESHOLD,
    scorers: Sequence[Scorer] = SCORERS,
):
    """Turn one utterance into exactly one intent. Never raises for user input."""
    trimmed = text.strip()
    if not trimmed:
        return UnknownIntent(confidence=0.0, raw_input=text)

    inp = NormalizedInput(original=trimmed, lower=trimmed.lower())
    candidates: list[ScoredCandidate] = []
    for scorer in scorers:
        candidate = scorer(inp, context)
        if candidate is not None:
            candidates.append(candidate)

    if not candidates:
        logger.debug("intent_unmatched", text=trimmed)
        return UnknownIntent(confidence=0.0, raw_input=text)

    # Stable sort: on a tie the earlier scorer wins
    candidates.sort(key=lambda c: c.score, reverse=True)
    best = candidates[0]

    if best.score >= confidence_threshold:
        intent = apply_context_resolution(best.intent, inp.lower, context)
        logger.debug("intent_parsed", intent_type=intent.type, score=best.score)
        return intent

    suggestions = [
        Suggestion(label=intent_label(c.intent), intent=c.intent)
        for c in candidates[:MAX_SUGGESTIONS]
        if c.score > suggestion_threshold
    ]
    if suggestions:
        logger.debug("intent_suggested", count=len(suggestions), best_score=best.score)
        return SuggestIntent(confidence=best.score, suggestions=suggestions, raw_input=text)

    return UnknownIntent(confidence=0.0, raw_input=text)


def has_pronoun_reference(lower: str) -> bool:
    return any(pattern.search(lower) for pattern in PRONOUN_PATTERNS)


def apply_context_resolution(intent, lower: str, context: ParseContext):
    """Rewrite pronoun references to the last referenced task, or ask which task is meant."""
    if intent.type not in TARGETED_TYPES:
        return intent

    task_id = context.conversation.last_referenced_task_id
    if task_id and has_pronoun_reference(lower):
        return enrich_with_task_id(intent, task_id)

    if intent.scope == "by_title" and intent.title_query and context.tasks:
        matches = find_tasks_by_title(context.tasks, intent.title_query)
        if len(matches) > 1:
            return DisambiguateIntent(
                confidence=intent.confidence,
                original_action=_DISAMBIGUATION_ACTIONS[intent.type],
                candidates=[DisambiguationCandidate(task_id=t.id, title=t.title) for t in matches],
                action=intent,
                raw_input=lower,
            )

    return intent


def enrich_with_task_id(intent, task_id: str):
    if intent.type not in TARGETED_TYPES:
        return intent
    return intent.model_copy(update={"scope": "by_id", "task_id": task_id})


def resolve_choice(intent, choice) -> Optional[object]:
    """Turn a user's pick on a Suggest or Disambiguate prompt into a concrete intent.

    ``choice`` is a zero-based suggestion index for Suggest and a candidate
    task id for Disambiguate. Returns None when the choice does not fit.
    """
    if intent.type == "suggest":
        try:
            index = int(choice)
        except (TypeError, ValueError):
            return None
        if 0 <= index < len(intent.suggestions):
            return intent.suggestions[index].intent
        return None

    if intent.type == "disambiguate":
        if any(c.task_id == choice for c in intent.candidates):
            return enrich_with_task_id(intent.action, choice)
        return None

    return None


def intent_label(intent) -> str:
    """Short human-readable label, used in "Meintest du...?" prompts."""
    if intent.type == "create_task":
        return f'Aufgabe "{intent.title}" erstellen'
    if intent.type == "create_recurring_task":
        return f'Wiederkehrende Aufgabe "{intent.title}" erstellen'
    if intent.type == "move_tasks":
        return "Alle offenen Aufgaben verschieben" if intent.scope == "all_open" else "Aufgabe verschieben"
    if intent.type == "set_priority":
        return f"Priorität setzen ({format_priority(intent.priority)})"
    if intent.type == "delete_task":
        return "Aufgabe löschen"
    if intent.type == "stats_query":
        return STATS_QUERY_LABELS.get(intent.query_type, "Statistik")
    if intent.type == "create_template":
        return "Vorlage erstellen"
    if intent.type == "explain_capabilities":
        return "Was ich kann"
    if intent.type == "pattern_query":
        return "Muster-Info"
    if intent.type == "pattern_action":
        if intent.action == "mark_optional":
            return "Als optional markieren"
        if intent.action == "accept_client":
            return "Kunde zuordnen"
        return "Niedrige Priorität setzen"
    if intent.type == "suggest":
        return "Vorschlag"
    if intent.type == "disambiguate":
        return "Aufgabe auswählen"
    return "Unbekannt"
