"""
Behavioral pattern detection.

detect_patterns() is a pure function of a task/client snapshot and the
preferences. run_detection() applies the rate limiter, performs auto-mode
actions and writes the new active set in one replace.
"""
import uuid
from datetime import date, datetime
from typing import NamedTuple, Optional, Sequence

import structlog

from models import (
    AutoClientPayload,
    Client,
    DeadlinePayload,
    DetectedPattern,
    PatternPreference,
    PostponePayload,
    Task,
)
from resolvers import find_name_at_boundary, parse_iso_date

logger = structlog.get_logger()

DEFAULT_POSTPONE_THRESHOLD = 3
DEFAULT_DEADLINE_THRESHOLD_DAYS = 2
HIGH_PRIORITY_POSTPONE_COUNT = 5
MIN_CLIENT_NAME_LENGTH = 3

ASK_POSTPONE_ACTIONS = ["markOptional", "reschedule", "delete", "deprioritize"]


class Candidate(NamedTuple):
    """A detection before rate limiting. auto=True means the action is applied without asking."""
    pattern: DetectedPattern
    auto: bool


def _new_pattern_id() -> str:
    return uuid.uuid4().hex


def _preference(preferences: Sequence[PatternPreference], pattern_type: str) -> PatternPreference:
    for pref in preferences:
        if pref.pattern_type == pattern_type:
            return pref
    return PatternPreference(pattern_type=pattern_type, autonomy="ask")


def detect_postpone(task: Task, pref: PatternPreference, now: datetime) -> Optional[Candidate]:
    threshold = pref.threshold if pref.threshold is not None else DEFAULT_POSTPONE_THRESHOLD
    if task.status == "completed" or task.is_meeting or task.is_optional:
        return None
    if task.postpone_count < threshold:
        return None

    original_date = task.original_date or task.scheduled_date
    if pref.autonomy == "auto":
        pattern = DetectedPattern(
            id=_new_pattern_id(),
            pattern_type="postpone",
            task_ids=[task.id],
            title=f'"{task.title}" automatisch als optional markiert',
            description=f"Schon {task.postpone_count}x verschoben. Wurde als optional eingestuft.",
            detected_at=now.isoformat(),
            render_target="toast",
            priority="medium",
            payload=PostponePayload(task_id=task.id, postpone_count=task.postpone_count,
                                    original_date=original_date, suggested_actions=["markOptional"]),
        )
        return Candidate(pattern, auto=True)

    pattern = DetectedPattern(
        id=_new_pattern_id(),
        pattern_type="postpone",
        task_ids=[task.id],
        title=f'"{task.title}" wurde {task.postpone_count}x verschoben',
        description="Soll die Aufgabe als optional markiert, verschoben oder gelöscht werden?",
        detected_at=now.isoformat(),
        render_target="inline",
        priority="high" if task.postpone_count >= HIGH_PRIORITY_POSTPONE_COUNT else "medium",
        payload=PostponePayload(task_id=task.id, postpone_count=task.postpone_count,
                                original_date=original_date, suggested_actions=list(ASK_POSTPONE_ACTIONS)),
    )
    return Candidate(pattern, auto=False)


def days_until(deadline: str, today: date) -> int:
    """Whole days from today to the deadline's date; negative when overdue."""
    return (parse_iso_date(deadline) - today).days


def _deadline_label(days_remaining: int) -> str:
    if days_remaining < 0:
        overdue = abs(days_remaining)
        return f"{overdue} Tag{'e' if overdue != 1 else ''} überfällig"
    if days_remaining == 0:
        return "heute"
    if days_remaining == 1:
        return "morgen"
    return f"in {days_remaining} Tagen"


def detect_deadline(task: Task, pref: PatternPreference, now: datetime) -> Optional[Candidate]:
    threshold = pref.threshold if pref.threshold is not None else DEFAULT_DEADLINE_THRESHOLD_DAYS
    if not task.deadline or task.status == "completed" or task.is_meeting:
        return None

    try:
        days_remaining = days_until(task.deadline, now.date())
    except ValueError:
        logger.warning("deadline_unparseable", task_id=task.id, deadline=task.deadline)
        return None
    if days_remaining > threshold:
        return None

    completed = sum(1 for s in task.subtasks if s.is_completed)
    total = len(task.subtasks)
    has_time_tracked = any((e.duration or 0) > 0 for e in task.time_entries)
    has_progress = completed / total > 0.5 if total > 0 else has_time_tracked

    # Overdue tasks are reported regardless of progress
    if days_remaining > 0 and has_progress:
        return None

    label = _deadline_label(days_remaining)
    if total > 0:
        description = f"Erst {completed} von {total} Teilaufgaben erledigt."
    elif has_time_tracked:
        description = "Wenig Fortschritt bei erfasster Zeit."
    else:
        description = "Noch kein Fortschritt erkennbar."

    pattern = DetectedPattern(
        id=_new_pattern_id(),
        pattern_type="deadlineWarning",
        task_ids=[task.id],
        title=f'"{task.title}" ist {label}!' if days_remaining < 0 else f'Deadline für "{task.title}" {label}',
        description=description,
        detected_at=now.isoformat(),
        render_target="inline",
        priority="high" if days_remaining <= 0 else "medium",
        payload=DeadlinePayload(task_id=task.id, deadline=task.deadline, days_remaining=days_remaining,
                                subtasks_completed=completed, subtasks_total=total,
                                has_time_tracked=has_time_tracked),
    )
    return Candidate(pattern, auto=False)


def match_client_in_title(title: str, clients: Sequence[Client]) -> Optional[Client]:
    for client in clients:
        if client.is_active and len(client.name) >= MIN_CLIENT_NAME_LENGTH and find_name_at_boundary(title, client.name):
            return client
    return None


def detect_auto_client(task: Task, clients: Sequence[Client], pref: PatternPreference,
                       now: datetime) -> Optional[Candidate]:
    if task.client_id or task.status == "completed" or task.is_meeting:
        return None
    client = match_client_in_title(task.title, clients)
    if client is None:
        return None

    payload = AutoClientPayload(task_id=task.id, suggested_client_id=client.id,
                                suggested_client_name=client.name)
    if pref.autonomy == "auto":
        pattern = DetectedPattern(
            id=_new_pattern_id(),
            pattern_type="autoClient",
            task_ids=[task.id],
            title=f'"{task.title}" → {client.name}',
            description=f'Kunde "{client.name}" automatisch zugeordnet.',
            detected_at=now.isoformat(),
            render_target="toast",
            priority="low",
            payload=payload,
        )
        return Candidate(pattern, auto=True)

    pattern = DetectedPattern(
        id=_new_pattern_id(),
        pattern_type="autoClient",
        task_ids=[task.id],
        title=f'"{client.name}" erkannt',
        description=f'Kunde "{client.name}" im Titel erkannt. Zuordnen?',
        detected_at=now.isoformat(),
        render_target="inline",
        priority="low",
        payload=payload,
    )
    return Candidate(pattern, auto=False)


def detect_patterns(
    tasks: Sequence[Task],
    clients: Sequence[Client],
    preferences: Sequence[PatternPreference],
    now: datetime,
) -> list[Candidate]:
    """All candidates for one snapshot, in rule order: postpone, deadline, autoClient."""
    candidates: list[Candidate] = []

    postpone = _preference(preferences, "postpone")
    if postpone.autonomy != "off":
        candidates.extend(c for c in (detect_postpone(t, postpone, now) for t in tasks) if c)

    deadline = _preference(preferences, "deadlineWarning")
    if deadline.autonomy != "off":
        candidates.extend(c for c in (detect_deadline(t, deadline, now) for t in tasks) if c)

    auto_client = _preference(preferences, "autoClient")
    if auto_client.autonomy != "off" and clients:
        candidates.extend(c for c in (detect_auto_client(t, clients, auto_client, now) for t in tasks) if c)

    return candidates


def _apply_auto_action(pattern: DetectedPattern, store):
    payload = pattern.payload
    if payload.type == "postpone":
        store.update_task(payload.task_id, is_optional=True)
    elif payload.type == "autoClient":
        store.update_task(payload.task_id, client_id=payload.suggested_client_id)


def run_detection(store, pattern_store, now: Optional[datetime] = None) -> list[DetectedPattern]:
    """
    One scan: detect, gate each candidate through the rate limiter, apply
    auto actions, then replace the active set.

    An inline pattern that is already active (same type and task) keeps its
    id and does not count against the quota again.
    """
    now = now or datetime.now()
    candidates = detect_patterns(store.tasks, store.clients, pattern_store.preferences, now)

    previous = {
        (p.pattern_type, p.task_ids[0]): p
        for p in pattern_store.active_patterns
        if p.render_target == "inline" and p.task_ids
    }

    detected: list[DetectedPattern] = []
    for candidate in candidates:
        pattern = candidate.pattern
        task_id = pattern.task_ids[0]
        existing = previous.get((pattern.pattern_type, task_id))
        if existing is not None and not candidate.auto:
            if not pattern_store.is_dismissed(pattern.pattern_type, task_id):
                detected.append(pattern.model_copy(update={"id": existing.id, "detected_at": existing.detected_at}))
            continue

        if not pattern_store.claim_suggestion_slot(pattern.pattern_type, task_id):
            continue

        if candidate.auto:
            _apply_auto_action(pattern, store)
            logger.info("pattern_auto_applied", pattern_type=pattern.pattern_type, task_id=task_id)
        detected.append(pattern)

    changed = pattern_store.replace_active_patterns(detected)
    logger.info("pattern_scan_completed", candidates=len(candidates), active=len(detected), changed=changed)
    return detected
