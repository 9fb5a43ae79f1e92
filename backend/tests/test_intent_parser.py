"""
Tests for intent_parser.py and scorers.py - utterance to intent.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_client, make_task
from intent_parser import (
    has_pronoun_reference,
    intent_label,
    parse_intent,
    resolve_choice,
)
from scorers import NormalizedInput, score_move
from intents import (
    ConversationContext,
    CreateTaskIntent,
    DeleteTaskIntent,
    ParseContext,
    ScoredCandidate,
    StatsQueryIntent,
)

TODAY = "2025-06-10"


def context(**fields) -> ParseContext:
    fields.setdefault("today", TODAY)
    return ParseContext(**fields)


def fixed_scorer(score: float, query_type: str):
    def scorer(inp, ctx):
        return ScoredCandidate(intent=StatsQueryIntent(confidence=score, query_type=query_type), score=score)
    return scorer


class TestCreateTask:
    """Tests for the create-task fallback scorer."""

    def test_meeting_with_client_date_and_time(self):
        """Date, time and client are pulled out of the title."""
        acme = make_client("c-acme", "Acme")
        intent = parse_intent("Erstelle Meeting morgen um 15 Uhr mit Acme", context(clients=[acme]))

        assert intent.type == "create_task"
        assert intent.date == "2025-06-11"
        assert intent.is_meeting is True
        assert intent.meeting_time.start == "15:00"
        assert intent.meeting_time.end == "16:00"
        assert intent.client_id == "c-acme"
        assert intent.title == "Meeting mit Acme"
        assert intent.confidence >= 0.6

    def test_urgent_word_sets_priority(self):
        intent = parse_intent("Erstelle Steuererklärung dringend", context())
        assert intent.type == "create_task"
        assert intent.priority == "urgent"
        assert intent.title == "Steuererklärung"
        assert intent.date == TODAY


class TestScorers:
    """One representative utterance per intent family."""

    def test_explain_capabilities(self):
        intent = parse_intent("Was kannst du?", context(expert_mode=True))
        assert intent.type == "explain_capabilities"
        assert intent.expert_mode is True

    def test_help_word(self):
        assert parse_intent("Hilfe", context()).type == "explain_capabilities"

    def test_weekly_work_time(self):
        intent = parse_intent("Wie viel habe ich diese Woche gearbeitet?", context())
        assert intent.type == "stats_query"
        assert intent.query_type == "weekly_work_time"

    def test_tasks_today(self):
        intent = parse_intent("Was steht heute an?", context())
        assert intent.query_type == "tasks_today"

    def test_move_all_open(self):
        intent = parse_intent("Verschiebe alle offenen Aufgaben auf morgen", context())
        assert intent.type == "move_tasks"
        assert intent.scope == "all_open"
        assert intent.to_date == "2025-06-11"

    def test_move_without_target_date_is_low_confidence(self):
        """A bare move keyword is not enough to act on."""
        intent = parse_intent("verschieben", context())
        assert intent.type == "suggest"
        assert "move_tasks" in [s.intent.type for s in intent.suggestions]

    def test_move_to_unrecognized_date_is_low_confidence(self):
        """An "auf ..." phrase without a date must not become a move to today."""
        candidate = score_move(NormalizedInput("Verschiebe Bericht auf irgendwann",
                                               "verschiebe bericht auf irgendwann"), context())
        assert candidate.intent.confidence == 0.45

        intent = parse_intent("Verschiebe Bericht auf irgendwann", context())
        assert intent.type != "move_tasks"

    def test_move_by_title_to_weekday(self):
        intent = parse_intent("Verschiebe Bericht auf Freitag", context())
        assert intent.type == "move_tasks"
        assert intent.scope == "by_title"
        assert intent.title_query == "bericht"
        assert intent.to_date == "2025-06-13"

    def test_set_priority_by_title(self):
        intent = parse_intent("Markiere Steuer als dringend", context())
        assert intent.type == "set_priority"
        assert intent.scope == "by_title"
        assert intent.title_query == "Steuer"
        assert intent.priority == "urgent"

    def test_recurring_weekday(self):
        intent = parse_intent("Jeden Montag Teammeeting", context())
        assert intent.type == "create_recurring_task"
        assert intent.title == "Teammeeting"
        assert intent.recurrence.type == "weekly"
        assert intent.recurrence.week_days == [1]

    def test_recurring_every_n_days(self):
        intent = parse_intent("Blumen gießen alle 3 Tage", context())
        assert intent.type == "create_recurring_task"
        assert intent.recurrence.type == "custom"
        assert intent.recurrence.custom_days == 3

    def test_list_patterns(self):
        intent = parse_intent("Welche Muster sind aktiv?", context())
        assert intent.type == "pattern_query"
        assert intent.query_type == "list_patterns"

    def test_mark_optional_uses_last_reference(self):
        conversation = ConversationContext(last_referenced_task_id="T1")
        intent = parse_intent("Mach das optional", context(conversation=conversation))
        assert intent.type == "pattern_action"
        assert intent.action == "mark_optional"
        assert intent.task_id == "T1"


class TestThresholds:
    """Tests for the confidence / suggestion split."""

    def test_suggest_keeps_candidates_above_floor(self):
        """0.55 / 0.4 / 0.15: below threshold, two candidates pass the 0.2 floor."""
        scorers = [
            fixed_scorer(0.4, "tasks_today"),
            fixed_scorer(0.55, "today_summary"),
            fixed_scorer(0.15, "client_list"),
        ]
        intent = parse_intent("irgendwas", context(), scorers=scorers)

        assert intent.type == "suggest"
        assert len(intent.suggestions) == 2
        assert intent.suggestions[0].intent.query_type == "today_summary"
        assert intent.suggestions[1].intent.query_type == "tasks_today"
        assert intent.confidence == pytest.approx(0.55)

    def test_suggest_at_most_three(self):
        scorers = [fixed_scorer(s, "tasks_today") for s in (0.5, 0.45, 0.4, 0.35)]
        intent = parse_intent("irgendwas", context(), scorers=scorers)
        assert len(intent.suggestions) == 3

    def test_nothing_above_floor_is_unknown(self):
        intent = parse_intent("irgendwas", context(), scorers=[fixed_scorer(0.2, "tasks_today")])
        assert intent.type == "unknown"

    def test_tie_keeps_scorer_order(self):
        scorers = [fixed_scorer(0.7, "tasks_today"), fixed_scorer(0.7, "client_list")]
        assert parse_intent("irgendwas", context(), scorers=scorers).query_type == "tasks_today"

    def test_thresholds_are_configurable(self):
        intent = parse_intent("Was steht heute an?", context(), confidence_threshold=0.99)
        assert intent.type == "suggest"
        assert intent.suggestions[0].intent.query_type == "tasks_today"

    @pytest.mark.parametrize("text", ["", "   ", "!!!", "12345", "ü", "lösche", "verschiebe", "?" * 500])
    def test_never_raises(self, text):
        """Every input yields exactly one intent."""
        intent = parse_intent(text, context())
        assert intent.type is not None

    def test_empty_input_is_unknown(self):
        assert parse_intent("   ", context()).type == "unknown"


class TestContextResolution:
    """Tests for pronoun references and disambiguation."""

    def test_pronoun_rewrites_scope(self):
        conversation = ConversationContext(last_referenced_task_id="T1")
        intent = parse_intent("lösche das", context(conversation=conversation))
        assert isinstance(intent, DeleteTaskIntent)
        assert intent.scope == "by_id"
        assert intent.task_id == "T1"

    def test_pronoun_overrides_move_scope(self):
        conversation = ConversationContext(last_referenced_task_id="T1")
        intent = parse_intent("Verschiebe das auf morgen", context(conversation=conversation))
        assert intent.type == "move_tasks"
        assert (intent.scope, intent.task_id) == ("by_id", "T1")

    def test_pronoun_without_reference_passes_through(self):
        intent = parse_intent("lösche das", context())
        assert intent.scope == "last"
        assert intent.task_id is None

    def test_ambiguous_title_asks_which_task(self):
        tasks = [make_task("a1", "Angebot Acme"), make_task("a2", "Angebot Globex")]
        intent = parse_intent("lösche Angebot", context(tasks=tasks))

        assert intent.type == "disambiguate"
        assert intent.original_action == "delete"
        assert [c.task_id for c in intent.candidates] == ["a1", "a2"]

        chosen = resolve_choice(intent, "a2")
        assert chosen.type == "delete_task"
        assert (chosen.scope, chosen.task_id) == ("by_id", "a2")

    def test_unique_title_is_not_ambiguous(self):
        tasks = [make_task("a1", "Angebot Acme"), make_task("s1", "Steuer")]
        intent = parse_intent("lösche Angebot", context(tasks=tasks))
        assert intent.type == "delete_task"
        assert intent.title_query == "Angebot"

    def test_has_pronoun_reference(self):
        assert has_pronoun_reference("verschiebe das auf morgen")
        assert has_pronoun_reference("lösche die letzte")
        assert not has_pronoun_reference("verschiebe angebot auf morgen")

    def test_intents_are_immutable(self):
        intent = parse_intent("lösche Angebot", context())
        with pytest.raises(Exception):
            intent.scope = "by_id"


class TestResolveChoice:
    def test_suggestion_index(self):
        scorers = [fixed_scorer(0.5, "tasks_today"), fixed_scorer(0.4, "client_list")]
        suggest = parse_intent("irgendwas", context(), scorers=scorers)
        assert resolve_choice(suggest, 1).query_type == "client_list"
        assert resolve_choice(suggest, "0").query_type == "tasks_today"

    def test_invalid_choices(self):
        scorers = [fixed_scorer(0.5, "tasks_today")]
        suggest = parse_intent("irgendwas", context(), scorers=scorers)
        assert resolve_choice(suggest, 5) is None
        assert resolve_choice(suggest, "abc") is None

    def test_concrete_intent_has_no_choices(self):
        intent = CreateTaskIntent(confidence=0.9, title="x", date=TODAY)
        assert resolve_choice(intent, 0) is None


class TestIntentLabel:
    def test_labels(self):
        assert intent_label(CreateTaskIntent(confidence=0.9, title="Steuer", date=TODAY)) == \
            'Aufgabe "Steuer" erstellen'
        assert intent_label(StatsQueryIntent(confidence=0.5, query_type="tasks_week")) == "Aufgaben diese Woche"
