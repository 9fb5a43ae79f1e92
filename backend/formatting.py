"""German display helpers shared by the confirmation builder and the executor."""
from typing import Sequence

from models import RecurrenceRule, TaskPriority
from resolvers import WEEKDAY_NAMES, js_weekday, parse_iso_date

MONTH_NAMES = (
    "Januar", "Februar", "März", "April", "Mai", "Juni",
    "Juli", "August", "September", "Oktober", "November", "Dezember",
)

PRIORITY_LABELS = {
    "urgent": "Dringend",
    "high": "Wichtig",
    "medium": "Mittel",
    "low": "Niedrig",
}

MAX_LIST_ITEMS = 10


def format_date(day: str) -> str:
    """'2025-06-11' -> 'Mittwoch, 11. Juni'"""
    parsed = parse_iso_date(day)
    return f"{WEEKDAY_NAMES[js_weekday(day)]}, {parsed.day}. {MONTH_NAMES[parsed.month - 1]}"


def format_priority(priority: TaskPriority) -> str:
    return PRIORITY_LABELS[priority]


def format_duration(minutes: int) -> str:
    if minutes <= 0:
        return "0 Min"
    hours, rest = divmod(minutes, 60)
    if hours == 0:
        return f"{rest} Min"
    if rest == 0:
        return f"{hours} Std"
    return f"{hours} Std {rest} Min"


def format_recurrence(rule: RecurrenceRule) -> str:
    if rule.type == "daily":
        return "täglich" if rule.interval == 1 else f"alle {rule.interval} Tage"
    if rule.type == "weekly":
        if rule.week_days:
            days = ", ".join(WEEKDAY_NAMES.get(d, "") for d in rule.week_days)
            return f"jeden {days}" if rule.interval == 1 else f"alle {rule.interval} Wochen ({days})"
        return "wöchentlich" if rule.interval == 1 else f"alle {rule.interval} Wochen"
    if rule.type == "monthly":
        return "monatlich" if rule.interval == 1 else f"alle {rule.interval} Monate"
    if rule.type == "yearly":
        return "jährlich"
    if rule.type == "custom":
        return f"alle {rule.custom_days} Tage"
    return ""


def plural(count: int, singular: str, plural_suffix: str) -> str:
    return singular + (plural_suffix if count != 1 else "")


def bounded_lines(lines: Sequence[str], limit: int = MAX_LIST_ITEMS) -> str:
    """Join lines, cutting the list at limit with a '...und N weitere.' suffix."""
    text = "\n".join(lines[:limit])
    if len(lines) > limit:
        text += f"\n...und {len(lines) - limit} weitere."
    return text
