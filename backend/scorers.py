"""
One scorer per intent family.

A scorer inspects the normalized input and returns a ScoredCandidate or None.
Scores are additive (see synonyms.compute_score) and capped at 1.0.
"""
import re
from typing import Callable, NamedTuple, Optional

from intents import (
    CreateRecurringTaskIntent,
    CreateTaskIntent,
    CreateTemplateIntent,
    DeleteTaskIntent,
    ExplainCapabilitiesIntent,
    MoveTasksIntent,
    ParseContext,
    PatternActionIntent,
    PatternQueryIntent,
    ScoredCandidate,
    SetPriorityIntent,
    StatsQueryIntent,
)
from models import RecurrenceRule
from resolvers import (
    WEEKDAY_MAP,
    clean_title,
    extract_subject,
    remove_phrase,
    resolve_client,
    resolve_date,
    resolve_time_span,
)
from synonyms import compute_score, matches_synonym_group


class NormalizedInput(NamedTuple):
    original: str  # trimmed, original casing
    lower: str


Scorer = Callable[[NormalizedInput, ParseContext], Optional[ScoredCandidate]]

MEETING_WORDS = re.compile(r"\b(meeting|call|termin|besprechung)\b", re.IGNORECASE)


def _candidate(intent) -> ScoredCandidate:
    return ScoredCandidate(intent=intent, score=intent.confidence)


# --- Explain capabilities ---

_EXPLAIN_RULES = (
    (re.compile(r"\bwas\s+(kannst|bist|machst)\s+du\b"), 0.95),
    (re.compile(r"\bwie\s+funktioniert\s+(das|das\s+hier)\b"), 0.85),
    (re.compile(r"\bwobei\s+kannst\s+du\s+helfen\b"), 0.90),
    (re.compile(r"\bwhat\s+can\s+you\s+do\b"), 0.95),
)
_HELP_WORD = re.compile(r"\b(hilfe|help)\b")


def score_explain_capabilities(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    for pattern, base in _EXPLAIN_RULES:
        if pattern.search(inp.lower):
            return _candidate(ExplainCapabilitiesIntent(confidence=base, expert_mode=context.expert_mode))
    if _HELP_WORD.search(inp.lower):
        score = compute_score(inp.lower, 0.70, synonym_groups=["hilfe"])
        return _candidate(ExplainCapabilitiesIntent(confidence=score, expert_mode=context.expert_mode))
    return None


# --- Pattern query ---

_PATTERN_QUERY_RULES = (
    # "Warum wird mir das als optional vorgeschlagen?"
    ("explain_pattern", 0.88, (
        re.compile(r"\bwarum\b.*\b(vorgeschlagen|optional|vorschlag|muster|pattern)\b"),
        re.compile(r"\b(vorgeschlagen|vorschlag)\b.*\bwarum\b"),
    )),
    ("explain_pattern", 0.85, (
        re.compile(r"\b(wieso|warum|weshalb)\b.*\b(markiert|hervorgehoben|angezeigt|hinweis|warnung)\b"),
    )),
    ("list_patterns", 0.85, (
        re.compile(r"\b(welche|aktive|aktuelle)\b.*\b(muster|pattern|vorschl[aä]ge|hinweise)\b"),
        re.compile(r"\b(muster|pattern|vorschl[aä]ge)\b.*\b(aktiv|gibt|zeig|list)"),
    )),
    ("explain_pattern", 0.85, (
        re.compile(r"\bwie\s+oft\b.*\bverschoben\b"),
    )),
    ("pattern_settings", 0.82, (
        re.compile(r"\b(muster|pattern)\b.*\b(einstell|konfigur|settings)"),
        re.compile(r"\b(einstell|konfigur)\w*\b.*\b(muster|pattern)\b"),
    )),
)


def score_pattern_query(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    for query_type, base, patterns in _PATTERN_QUERY_RULES:
        if any(p.search(inp.lower) for p in patterns):
            task_id = context.conversation.last_referenced_task_id if query_type == "explain_pattern" else None
            score = compute_score(inp.lower, base)
            return _candidate(PatternQueryIntent(confidence=score, query_type=query_type, task_id=task_id))
    return None


# --- Pattern action ---

_MARK_OPTIONAL = (
    re.compile(r"\b(mach|markier|setz)\w*\b.*\boptional\b"),
    re.compile(r"\boptional\b.*\b(machen|markieren|setzen)\b"),
)
_ACCEPT_CLIENT = (
    re.compile(r"\b(kunden?|client)\b.*\b(zuordnen|akzeptieren|annehmen|übernehmen|uebernehmen)\b"),
    re.compile(r"\b(zuordnen|akzeptieren)\b.*\b(kunde|client)\b"),
)


def score_pattern_action(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    task_id = context.conversation.last_referenced_task_id
    if any(p.search(inp.lower) for p in _MARK_OPTIONAL):
        score = compute_score(inp.lower, 0.88)
        return _candidate(PatternActionIntent(confidence=score, action="mark_optional", task_id=task_id))
    if any(p.search(inp.lower) for p in _ACCEPT_CLIENT):
        score = compute_score(inp.lower, 0.85, synonym_groups=["kunde"])
        return _candidate(PatternActionIntent(confidence=score, action="accept_client", task_id=task_id))
    return None


# --- Stats query ---

class StatsRule(NamedTuple):
    query_type: str
    patterns: tuple[re.Pattern, ...]
    base: float
    synonym_groups: tuple[str, ...]


def _rx(*sources: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(s) for s in sources)


# Specific rules first; on equal score the earlier rule wins
STATS_RULES = (
    StatsRule("weekly_work_time",
              _rx(r"wie\s*(viel|lange)\b.*\b(gearbeitet|arbeit)\b.*\b(woche|diese\s*woche)\b",
                  r"wie\s*(viel|lange)\b.*\bwoche\b.*\b(gearbeitet|arbeit)\b"),
              0.90, ("arbeitszeit", "woche")),
    StatsRule("monthly_work_time",
              _rx(r"wie\s*(viel|lange)\b.*\b(gearbeitet|arbeit)\b.*\b(monat|diese[mn]?\s*monat)\b",
                  r"wie\s*(viel|lange)\b.*\bmonat\b.*\b(gearbeitet|arbeit)\b"),
              0.90, ("arbeitszeit", "monat")),
    StatsRule("today_summary",
              _rx(r"wie\s*(viel|lange)\b.*\b(gearbeitet|arbeit)\b"),
              0.80, ("arbeitszeit", "heute")),
    StatsRule("weekly_completion",
              _rx(r"\bwoche\b.*\b(erledigt|geschafft|abgeschlossen|fertig)\b"),
              0.88, ("woche", "erledigt")),
    StatsRule("completion_rate",
              _rx(r"wie\s*viele?\b.*\b(erledigt|fertig|geschafft|abgeschlossen)\b"),
              0.85, ("erledigt",)),
    StatsRule("tasks_week", _rx(r"\bwochenplan\b"), 0.92, ()),
    StatsRule("tasks_week",
              _rx(r"\bwoche\b.*\b(aufgaben?|machen|tun|an|offen|noch)\b",
                  r"\b(aufgaben?|was)\b.*\bwoche\b"),
              0.82, ("woche", "aufgaben")),
    StatsRule("tasks_tomorrow",
              _rx(r"\bmorgen\b.*\b(an|aufgaben?|tun|vor|geplant)\b",
                  r"\b(aufgaben?|was)\b.*\bmorgen\b"),
              0.85, ("morgen", "aufgaben")),
    StatsRule("meetings_today",
              _rx(r"\b(meetings?|termine?|besprechung)\b.*\bheute\b",
                  r"\bheute\b.*\b(meetings?|termine?|besprechung)\b",
                  r"\bhabe\s+ich\b.*\b(meetings?|termine?)\b"),
              0.88, ("meetings", "heute")),
    StatsRule("tasks_today",
              _rx(r"\bheute\b.*\b(an|aufgaben?|tun|vor|geplant)\b",
                  r"\b(aufgaben?|was)\b.*\bheute\b",
                  r"\bmein(en?)?\s+tag\b",
                  r"\bwas\s+steht\s+(heute\s+)?an\b",
                  r"\bwas\s+habe?\s+ich\s+heute\b"),
              0.85, ("heute", "aufgaben")),
    StatsRule("overdue_tasks",
              _rx(r"\b[uü]berf[aä]llig\b",
                  r"\bueberfaellig\b",
                  r"\bliegengeblieben\b",
                  r"\bverpasst(e|en)?\b.*\baufgaben?\b",
                  r"\bvers[aä]umt\b"),
              0.88, ("überfällig",)),
    StatsRule("overdue_count",
              _rx(r"wie\s*viele?\b.*\b(offen|unerledigt|ausstehend)\b"),
              0.85, ("aufgaben",)),
    StatsRule("last_completed",
              _rx(r"\b(zuletzt|letzte[ns]?)\b.*\b(erledigt|fertig|abgeschlossen|aufgabe)\b",
                  r"\bwas\s+habe?\s+ich\s+(zuletzt\s+)?erledigt\b"),
              0.85, ("erledigt",)),
    StatsRule("current_client",
              _rx(r"\b(welche[rnms]?|aktuell\w*|gerade)\b.*\bkunde\b",
                  r"\bf[uü]r\s+wen\b.*\b(arbeit|gerade)",
                  r"\bkunde\b.*\b(gerade|aktuell)"),
              0.85, ("kunde",)),
    StatsRule("client_list",
              _rx(r"\bkunden\b.*\b(liste|alle|welche|meine|zeig)",
                  r"\b(welche|meine|zeig|alle)\w*\b.*\bkunden\b",
                  r"\bkundenliste\b"),
              0.85, ("kunde",)),
    StatsRule("high_priority",
              _rx(r"\b(dringend\w*|wichtig\w*)\b.*\b(aufgaben?|was|gibt)\b",
                  r"\b(aufgaben?|was)\b.*\b(dringend|wichtig)",
                  r"\bwas\s+ist\s+(dringend|wichtig)\b"),
              0.85, ("priorität", "aufgaben")),
    StatsRule("today_summary",
              _rx(r"\b(statistik|zusammenfassung|[uü]berblick|ueberblick|status)\b"),
              0.65, ("statistik",)),
)


def score_stats_query(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    best: Optional[ScoredCandidate] = None
    for rule in STATS_RULES:
        if not any(p.search(inp.lower) for p in rule.patterns):
            continue
        score = compute_score(inp.lower, rule.base, synonym_groups=rule.synonym_groups)
        if best is None or score > best.score:
            best = _candidate(StatsQueryIntent(confidence=score, query_type=rule.query_type))
    return best


# --- Recurring task ---

_EVERY_WEEKDAY = re.compile(r"\bjeden?\s+(montag|dienstag|mittwoch|donnerstag|freitag|samstag|sonntag)\b")
_DAILY = re.compile(r"\b(t[aä]glich|taeglich)\b")
_WEEKLY = re.compile(r"\b(w[oö]chentlich|woechentlich)\b")
_MONTHLY = re.compile(r"\bmonatlich\b")
_EVERY_N = re.compile(r"\balle\s+(\d+)\s+(tage?|wochen?|monate?)\b")


def _match_recurrence(lower: str) -> Optional[tuple[RecurrenceRule, str, float]]:
    match = _EVERY_WEEKDAY.search(lower)
    if match:
        rule = RecurrenceRule(type="weekly", interval=1, week_days=[WEEKDAY_MAP[match.group(1)]])
        return rule, match.group(0), 0.90

    for pattern, rule_type in ((_DAILY, "daily"), (_WEEKLY, "weekly"), (_MONTHLY, "monthly")):
        match = pattern.search(lower)
        if match:
            return RecurrenceRule(type=rule_type, interval=1), match.group(0), 0.88

    match = _EVERY_N.search(lower)
    if match:
        interval = int(match.group(1))
        unit = match.group(2)
        if unit.startswith("tag"):
            rule = RecurrenceRule(type="custom", interval=1, custom_days=interval)
        elif unit.startswith("woche"):
            rule = RecurrenceRule(type="weekly", interval=interval)
        else:
            rule = RecurrenceRule(type="monthly", interval=interval)
        return rule, match.group(0), 0.85

    return None


def score_recurring(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    found = _match_recurrence(inp.lower)
    if not found:
        return None
    recurrence, phrase, base = found

    title = clean_title(remove_phrase(inp.original, phrase))
    if not title:
        return None

    score = compute_score(inp.lower, base, synonym_groups=["wiederkehrend", "erstellen"])
    return _candidate(CreateRecurringTaskIntent(
        confidence=score,
        title=title,
        date=context.today,
        recurrence=recurrence,
        is_meeting=bool(MEETING_WORDS.search(title)),
    ))


# --- Move ---

_MOVE_VERB = re.compile(r"\bbeweg")
_MOVE_PHRASE = re.compile(
    r"\b(verschieb(?:e|en)?|beweg(?:e|en)?|verleg(?:e|en)?|move)\b\s+(.+?)\s+\b(?:auf|to)\s+(.+)"
)
_ALL_OPEN = re.compile(r"\b(alle\s*(offenen?)?|all)\b")
_LAST_ONE = re.compile(r"\b(die\s+)?letzte\b")
_ARTICLES = re.compile(r"\b(die|das|den|dem|der|eine?n?|aufgabe|task|that|this)\b", re.IGNORECASE)


def score_move(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    has_keyword = matches_synonym_group(inp.lower, "verschieben")
    if not has_keyword and not _MOVE_VERB.search(inp.lower):
        return None

    match = _MOVE_PHRASE.search(inp.lower)
    resolved = resolve_date(match.group(3), context.today) if match else None
    if resolved is None or not resolved.consumed:
        if has_keyword:
            # Keyword without a recognizable target date: too vague to act on
            intent = MoveTasksIntent(confidence=0.45, scope="all_open", to_date=context.today)
            return _candidate(intent)
        return None

    subject = match.group(2).strip()
    to_date = resolved.date

    scope = "last"
    title_query = None
    if _ALL_OPEN.search(subject):
        scope = "all_open"
    elif not _LAST_ONE.search(subject):
        title_query = clean_title(_ARTICLES.sub("", subject)) or None
        if title_query:
            scope = "by_title"

    score = compute_score(inp.lower, 0.88, synonym_groups=["verschieben", "aufgaben"])
    return _candidate(MoveTasksIntent(
        confidence=score, scope=scope, title_query=title_query, to_date=to_date
    ))


# --- Priority ---

_PRIORITY_WORDS = (
    (re.compile(r"\b(dringend|urgent)\b"), "urgent"),
    (re.compile(r"\b(wichtig|hoch|high)\b"), "high"),
    (re.compile(r"\b(niedrig|unwichtig|low)\b"), "low"),
    (re.compile(r"\b(mittel|medium|normal)\b"), "medium"),
)
_PRIORITY_VERB = re.compile(r"\b(markiere?|setze?|mach|als)\b")
_PRIORITY_BONUS = re.compile(r"\b(markiere?|setze?)\b")
_PRONOUN_TARGET = re.compile(r"\b(die\s+)?letzte\b|\b(das|that|this)\b")
_PRIORITY_STRIP = (
    re.compile(r"\b(markiere?|setze?|mach)\b", re.IGNORECASE),
    re.compile(r"\b(als|auf)\b", re.IGNORECASE),
    re.compile(r"\b(dringend|urgent|wichtig|hoch|high|niedrig|unwichtig|low|mittel|medium|normal)\b", re.IGNORECASE),
)


def score_priority(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    priority = next((value for pattern, value in _PRIORITY_WORDS if pattern.search(inp.lower)), None)
    if not priority or not _PRIORITY_VERB.search(inp.lower):
        return None

    scope = "last"
    title_query = None
    if not _PRONOUN_TARGET.search(inp.lower):
        title_query = extract_subject(inp.original, _PRIORITY_STRIP) or None
        if title_query:
            scope = "by_title"

    score = compute_score(inp.lower, 0.85, [_PRIORITY_BONUS], ["priorität"])
    return _candidate(SetPriorityIntent(
        confidence=score, scope=scope, title_query=title_query, priority=priority
    ))


# --- Delete ---

_DELETE_BONUS = re.compile(r"\b(l[oö]sch|loesch|entfern)")
_DELETE_STRIP = (
    re.compile(r"\b(l[oö]sch(?:e|en)?|loesch(?:e|en)?|entfern(?:e|en)?|delete|remove)\b", re.IGNORECASE),
    re.compile(r"\b(die|das|den|dem|der|eine?n?|aufgabe|task|that|this)\b", re.IGNORECASE),
)


def score_delete(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    if not matches_synonym_group(inp.lower, "löschen"):
        return None

    scope = "last"
    title_query = None
    if not _LAST_ONE.search(inp.lower):
        title_query = extract_subject(inp.original, _DELETE_STRIP) or None
        if title_query:
            scope = "by_title"

    score = compute_score(inp.lower, 0.85, [_DELETE_BONUS], ["löschen", "aufgaben"])
    return _candidate(DeleteTaskIntent(confidence=score, scope=scope, title_query=title_query))


# --- Template ---

_TEMPLATE_TRIGGER = re.compile(r"\b(vorlage|template)\b|\bmach\s*daraus\b|\bals\s+muster\b")
_TEMPLATE_STRIP = (
    re.compile(
        r"\b(vorlage|template|muster|mach\s*daraus|als|eine?|speicher(?:e|n)?|erstell(?:e|en)?)\b",
        re.IGNORECASE,
    ),
)


def score_template(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    if not _TEMPLATE_TRIGGER.search(inp.lower):
        return None

    title_query = extract_subject(inp.original, _TEMPLATE_STRIP) or None
    scope = "by_title" if title_query else "last"

    score = compute_score(inp.lower, 0.85, synonym_groups=["vorlage"])
    return _candidate(CreateTemplateIntent(confidence=score, scope=scope, title_query=title_query))


# --- Create task (fallback) ---

_EXPLICIT_CREATE = re.compile(
    r"\b(?:erstell(?:e|en)?|neue?[srn]?|add)\s+(?:(?:eine?n?\s+)?(?:aufgabe|task)\b)?[:\s]*(.*)"
)
_TIME_HINT = re.compile(r"\b(um|at)\s+\d|\d\s*uhr\b|\d:\d{2}")
_FOR_WORD = re.compile(r"\bf[uü]r\s*", re.IGNORECASE)
_URGENT_WORD = re.compile(r"\b(dringend|urgent)\b", re.IGNORECASE)
_HIGH_WORD = re.compile(r"\bwichtig\b", re.IGNORECASE)


def score_create_task(inp: NormalizedInput, context: ParseContext) -> Optional[ScoredCandidate]:
    title = inp.original
    base = 0.50

    match = _EXPLICIT_CREATE.search(inp.lower)
    if match:
        base = 0.82
        if len(inp.lower) == len(inp.original):
            title = inp.original[match.start(1):match.end(1)].strip()
        else:
            title = match.group(1).strip()
    elif len(title) < 3:
        return None

    is_meeting = bool(MEETING_WORDS.search(inp.lower))

    resolved = resolve_date(title, context.today)
    title = remove_phrase(title, resolved.consumed)

    meeting_time = None
    if is_meeting or _TIME_HINT.search(title.lower()):
        found = resolve_time_span(title)
        if found:
            meeting_time, phrase = found
            title = remove_phrase(title, phrase)

    title = _FOR_WORD.sub("", title).strip()
    client = resolve_client(title, context.clients)

    priority = None
    if _URGENT_WORD.search(title):
        priority = "urgent"
        title = _URGENT_WORD.sub("", title)
    elif _HIGH_WORD.search(title):
        priority = "high"
        title = _HIGH_WORD.sub("", title)

    title = clean_title(title)
    if not title:
        return None

    score = compute_score(
        inp.lower,
        base,
        synonym_groups=["erstellen"],
        bonus_flags=[bool(resolved.consumed), client is not None, is_meeting],
    )
    return _candidate(CreateTaskIntent(
        confidence=score,
        title=title,
        date=resolved.date,
        priority=priority,
        is_meeting=is_meeting,
        meeting_time=meeting_time,
        client_id=client.id if client else None,
    ))


SCORERS: tuple[Scorer, ...] = (
    score_explain_capabilities,
    score_pattern_query,
    score_pattern_action,
    score_stats_query,
    score_recurring,
    score_move,
    score_priority,
    score_delete,
    score_template,
    score_create_task,
)
