"""
Lexical resolvers: pure helpers that pull dates, times, clients and target
tasks out of free text. No store access, no side effects.
"""
import re
from datetime import date, timedelta
from typing import NamedTuple, Optional, Sequence

from models import Client, MeetingTime, Task

# Weekday numbers follow RecurrenceRule.week_days: 0=Sunday .. 6=Saturday
WEEKDAY_MAP = {
    "sonntag": 0, "montag": 1, "dienstag": 2, "mittwoch": 3,
    "donnerstag": 4, "freitag": 5, "samstag": 6,
    "sunday": 0, "monday": 1, "tuesday": 2, "wednesday": 3,
    "thursday": 4, "friday": 5, "saturday": 6,
}

WEEKDAY_NAMES = {
    0: "Sonntag", 1: "Montag", 2: "Dienstag", 3: "Mittwoch",
    4: "Donnerstag", 5: "Freitag", 6: "Samstag",
}

# Characters that delimit a client name inside a title
BOUNDARY_CHARS = frozenset(" \t\n\r-_.:,;!?()[]/")

_TODAY = re.compile(r"\b(heute|today)\b")
_DAY_AFTER_TOMORROW = re.compile(r"\b(?:[uü]bermorgen|uebermorgen|day after tomorrow)\b")
_TOMORROW = re.compile(r"\b(morgen|tomorrow)\b")
_NEXT_WEEK = re.compile(r"\b(?:n[aä]chste|naechste)\s*woche\b|\bnext\s+week\b")
_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_WEEKDAYS = [(name, day, re.compile(rf"\b{name}\b")) for name, day in WEEKDAY_MAP.items()]

TIME_PATTERN = re.compile(r"\b(?:um\s+|at\s+)?(\d{1,2})(?::(\d{2}))?\s*(?:uhr|h)?\b", re.IGNORECASE)


class ResolvedDate(NamedTuple):
    date: str
    consumed: str  # empty when nothing matched and the date fell back to today


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD, ignoring any time portion."""
    return date.fromisoformat(value[:10])


def add_days(day: str, days: int) -> str:
    return (parse_iso_date(day) + timedelta(days=days)).isoformat()


def js_weekday(day: str) -> int:
    """Weekday of an ISO date with Sunday as 0."""
    return (parse_iso_date(day).weekday() + 1) % 7


def next_weekday(today: str, target_day: int) -> str:
    """Next occurrence of target_day (0=Sunday) strictly after today."""
    days_ahead = target_day - js_weekday(today)
    if days_ahead <= 0:
        days_ahead += 7
    return add_days(today, days_ahead)


def resolve_date(text: str, today: str) -> ResolvedDate:
    lower = text.lower().strip()

    match = _TODAY.search(lower)
    if match:
        return ResolvedDate(today, match.group(0))

    # Checked before "morgen" so the longer phrase wins
    match = _DAY_AFTER_TOMORROW.search(lower)
    if match:
        return ResolvedDate(add_days(today, 2), match.group(0))

    match = _TOMORROW.search(lower)
    if match:
        return ResolvedDate(add_days(today, 1), match.group(0))

    match = _NEXT_WEEK.search(lower)
    if match:
        return ResolvedDate(next_weekday(today, 1), match.group(0))

    for name, day, pattern in _WEEKDAYS:
        if pattern.search(lower):
            return ResolvedDate(next_weekday(today, day), name)

    match = _ISO_DATE.search(lower)
    if match:
        try:
            parse_iso_date(match.group(1))
        except ValueError:
            return ResolvedDate(today, "")
        return ResolvedDate(match.group(1), match.group(1))

    return ResolvedDate(today, "")


def resolve_time_span(text: str) -> Optional[tuple[MeetingTime, str]]:
    """Like resolve_time, but also returns the matched phrase."""
    for match in TIME_PATTERN.finditer(text):
        hour = int(match.group(1))
        minute = int(match.group(2)) if match.group(2) else 0
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            end_hour = min(hour + 1, 23)
            meeting_time = MeetingTime(start=f"{hour:02d}:{minute:02d}", end=f"{end_hour:02d}:{minute:02d}")
            return meeting_time, match.group(0)
    return None


def resolve_time(text: str) -> Optional[MeetingTime]:
    """Find "15", "15:30", "um 15 Uhr" in text. Meetings last one hour by default."""
    found = resolve_time_span(text)
    return found[0] if found else None


def find_name_at_boundary(text: str, name: str) -> bool:
    """True when name occurs in text delimited by BOUNDARY_CHARS or the string edges."""
    haystack = text.lower()
    needle = name.lower()
    if not needle:
        return False
    start = haystack.find(needle)
    while start != -1:
        end = start + len(needle)
        left_ok = start == 0 or haystack[start - 1] in BOUNDARY_CHARS
        right_ok = end == len(haystack) or haystack[end] in BOUNDARY_CHARS
        if left_ok and right_ok:
            return True
        start = haystack.find(needle, start + 1)
    return False


def resolve_client(text: str, clients: Sequence[Client]) -> Optional[Client]:
    """First client whose name appears in text as a whole word."""
    for client in clients:
        if find_name_at_boundary(text, client.name):
            return client
    return None


def resolve_task(
    scope: str,
    tasks: Sequence[Task],
    today: str,
    title_query: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Optional[Task]:
    """Pick at most one open task. Completed tasks are never implicit targets."""
    open_tasks = [t for t in tasks if t.status != "completed"]

    if scope == "by_id" and task_id:
        return next((t for t in open_tasks if t.id == task_id), None)

    if scope == "last":
        today_tasks = sorted(
            (t for t in open_tasks if t.scheduled_date == today),
            key=lambda t: t.created_at,
            reverse=True,
        )
        return today_tasks[0] if today_tasks else None

    if scope == "by_title" and title_query:
        query = title_query.lower()
        return next((t for t in open_tasks if query in t.title.lower()), None)

    return None


def find_tasks_by_title(tasks: Sequence[Task], title_query: str) -> list[Task]:
    """All open tasks whose title contains the query (case-insensitive)."""
    query = title_query.lower()
    return [t for t in tasks if t.status != "completed" and query in t.title.lower()]


def clean_title(title: str) -> str:
    title = re.sub(r"^[\s\-:.,;!?]+", "", title)
    title = re.sub(r"[\s\-:.,;!?]+$", "", title)
    return re.sub(r"\s{2,}", " ", title).strip()


_FILLER_ARTICLES = re.compile(r"\b(die|das|den|dem|der)\b", re.IGNORECASE)


def extract_subject(original: str, remove_patterns: Sequence[re.Pattern]) -> str:
    """Strip command words from the original text, leaving the task subject."""
    result = original
    for pattern in remove_patterns:
        result = pattern.sub("", result)
    result = clean_title(result)
    result = _FILLER_ARTICLES.sub("", result)
    return clean_title(result)


def remove_phrase(text: str, phrase: str) -> str:
    """Remove the first case-insensitive occurrence of phrase from text."""
    if not phrase:
        return text
    idx = text.lower().find(phrase.lower())
    if idx < 0:
        return text
    return (text[:idx] + text[idx + len(phrase):]).strip()
