"""
Synonym groups and the additive score used by every scorer.

A group maps a canonical key to literal trigger words. Matching is plain
substring containment on the lower-cased input, not tokenized.
"""
import re
from typing import Sequence

SYNONYMS: dict[str, tuple[str, ...]] = {
    # Actions
    "erstellen": ("erstell", "erstelle", "erstellen", "anlegen", "leg an", "neue", "neues", "neuer", "neuen",
                  "hinzufügen", "hinzufuegen", "add"),
    "verschieben": ("verschieb", "verschiebe", "verschieben", "move", "leg auf", "verlegen", "verleg"),
    "löschen": ("lösch", "lösche", "löschen", "loeschen", "loesch", "entferne", "entfernen", "delete", "remove"),
    "priorität": ("priorität", "prioritaet", "wichtig", "dringend", "urgent", "markiere", "markieren",
                  "setze", "setzen"),
    "vorlage": ("vorlage", "template", "muster", "mach daraus"),

    # Queries
    "statistik": ("statistik", "statistiken", "stats", "überblick", "ueberblick", "zusammenfassung", "status"),
    "arbeitszeit": ("gearbeitet", "arbeitszeit", "arbeitsstunden", "stunden", "work time"),
    "aufgaben": ("aufgabe", "aufgaben", "task", "tasks", "todo", "todos"),
    "meetings": ("meeting", "meetings", "termin", "termine", "besprechung", "besprechungen", "call", "calls"),
    "kunde": ("kunde", "kunden", "client", "clients", "mandant", "auftraggeber"),
    "erledigt": ("erledigt", "fertig", "geschafft", "abgeschlossen", "done", "completed"),
    "überfällig": ("überfällig", "ueberfaellig", "liegengeblieben", "verpasst", "versäumt", "versaeumt",
                   "overdue"),

    # Time
    "heute": ("heute", "today", "heut"),
    "morgen": ("morgen", "tomorrow"),
    "woche": ("woche", "wöchentlich", "woechentlich", "wochenplan", "diese woche"),
    "monat": ("monat", "monatlich", "diesen monat", "dieses monat", "dieser monat"),

    # Recurrence
    "wiederkehrend": ("jeden", "jede", "jedes", "täglich", "taeglich", "wöchentlich", "woechentlich",
                      "monatlich", "alle"),

    # Meta
    "hilfe": ("hilfe", "help", "was kannst du", "was bist du", "wie funktioniert"),
}

PATTERN_BONUS = 0.05
SYNONYM_BONUS = 0.03


def matches_synonym_group(text: str, group_key: str) -> bool:
    return any(trigger in text for trigger in SYNONYMS.get(group_key, ()))


def count_matching_groups(text: str, group_keys: Sequence[str]) -> int:
    return sum(1 for key in group_keys if matches_synonym_group(text, key))


def compute_score(
    text: str,
    base_score: float,
    bonus_patterns: Sequence[re.Pattern] = (),
    synonym_groups: Sequence[str] = (),
    bonus_flags: Sequence[bool] = (),
) -> float:
    """Additive score capped at 1.0.

    +0.05 per matching bonus pattern or true bonus flag, +0.03 per matching
    synonym group.
    """
    score = base_score
    score += PATTERN_BONUS * sum(1 for pattern in bonus_patterns if pattern.search(text))
    score += PATTERN_BONUS * sum(1 for flag in bonus_flags if flag)
    score += SYNONYM_BONUS * count_matching_groups(text, synonym_groups)
    return round(min(max(score, 0.0), 1.0), 4)
