"""
Tests for pattern_detector.py - postpone, deadline and client detection.
"""
import pytest
import sys
import os
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import FakeStore, make_client, make_task
from models import PatternPreference, Subtask, TimeEntry
from pattern_detector import (
    detect_auto_client,
    detect_deadline,
    detect_patterns,
    detect_postpone,
    match_client_in_title,
    run_detection,
)
from pattern_store import PatternStore

NOW = datetime(2025, 6, 10, 9, 0)

ASK_POSTPONE = PatternPreference(pattern_type="postpone", autonomy="ask", threshold=3)
AUTO_POSTPONE = PatternPreference(pattern_type="postpone", autonomy="auto", threshold=3)
ASK_DEADLINE = PatternPreference(pattern_type="deadlineWarning", autonomy="ask", threshold=2)
ASK_CLIENT = PatternPreference(pattern_type="autoClient", autonomy="ask")
AUTO_CLIENT = PatternPreference(pattern_type="autoClient", autonomy="auto")


def subtasks(done: int, total: int) -> list[Subtask]:
    return [Subtask(id=f"s{i}", title=f"Schritt {i}", is_completed=i < done) for i in range(total)]


class TestPostpone:
    """Tests for the often-postponed rule."""

    def test_four_postponements_is_medium(self):
        task = make_task("t1", "Steuer", postpone_count=4, original_date="2025-06-01")
        candidate = detect_postpone(task, ASK_POSTPONE, NOW)

        assert candidate.auto is False
        pattern = candidate.pattern
        assert pattern.render_target == "inline"
        assert pattern.priority == "medium"
        assert pattern.task_ids == ["t1"]
        assert pattern.payload.original_date == "2025-06-01"
        assert pattern.payload.suggested_actions == ["markOptional", "reschedule", "delete", "deprioritize"]

    def test_five_postponements_is_high(self):
        task = make_task("t1", "Steuer", postpone_count=5)
        assert detect_postpone(task, ASK_POSTPONE, NOW).pattern.priority == "high"

    def test_below_threshold(self):
        assert detect_postpone(make_task("t1", "Steuer", postpone_count=2), ASK_POSTPONE, NOW) is None

    @pytest.mark.parametrize("fields", [
        {"status": "completed"}, {"is_meeting": True}, {"is_optional": True},
    ])
    def test_excluded_tasks(self, fields):
        task = make_task("t1", "Steuer", postpone_count=6, **fields)
        assert detect_postpone(task, ASK_POSTPONE, NOW) is None

    def test_auto_mode_is_a_toast(self):
        candidate = detect_postpone(make_task("t1", "Steuer", postpone_count=3), AUTO_POSTPONE, NOW)
        assert candidate.auto is True
        assert candidate.pattern.render_target == "toast"
        assert candidate.pattern.payload.original_date == "2025-06-10"


class TestDeadline:
    """Tests for the deadline warning rule."""

    def test_overdue_is_reported_despite_progress(self):
        task = make_task("t1", "Bericht", deadline="2025-06-07", subtasks=subtasks(3, 3))
        pattern = detect_deadline(task, ASK_DEADLINE, NOW).pattern

        assert pattern.priority == "high"
        assert pattern.payload.days_remaining == -3
        assert pattern.title == '"Bericht" ist 3 Tage überfällig!'

    def test_progress_suppresses_upcoming_deadline(self):
        task = make_task("t1", "Bericht", deadline="2025-06-11", subtasks=subtasks(2, 3))
        assert detect_deadline(task, ASK_DEADLINE, NOW) is None

    def test_half_done_is_not_progress(self):
        task = make_task("t1", "Bericht", deadline="2025-06-11", subtasks=subtasks(1, 2))
        pattern = detect_deadline(task, ASK_DEADLINE, NOW).pattern
        assert pattern.priority == "medium"
        assert pattern.description == "Erst 1 von 2 Teilaufgaben erledigt."

    def test_tracked_time_counts_as_progress_without_subtasks(self):
        entry = TimeEntry(id="e1", task_id="t1", start_time="2025-06-09T10:00:00", duration=1800)
        task = make_task("t1", "Bericht", deadline="2025-06-12", time_entries=[entry])
        assert detect_deadline(task, ASK_DEADLINE, NOW) is None

    def test_due_today_is_high(self):
        task = make_task("t1", "Bericht", deadline="2025-06-10T17:00:00")
        pattern = detect_deadline(task, ASK_DEADLINE, NOW).pattern
        assert pattern.priority == "high"
        assert pattern.payload.days_remaining == 0

    def test_beyond_threshold(self):
        task = make_task("t1", "Bericht", deadline="2025-06-13")
        assert detect_deadline(task, ASK_DEADLINE, NOW) is None

    def test_without_deadline(self):
        assert detect_deadline(make_task("t1", "Bericht"), ASK_DEADLINE, NOW) is None

    def test_unparseable_deadline_is_skipped(self):
        task = make_task("t1", "Bericht", deadline="nächsten Freitag")
        assert detect_deadline(task, ASK_DEADLINE, NOW) is None

        ok = make_task("t2", "Steuer", deadline="2025-06-10")
        candidates = detect_patterns([task, ok], [], [ASK_DEADLINE], NOW)
        assert [c.pattern.task_ids for c in candidates] == [["t2"]]


class TestAutoClient:
    """Tests for client names typed into titles."""

    @pytest.fixture
    def clients(self):
        return [make_client("c1", "Acme"), make_client("c2", "AB"), make_client("c3", "Globex", is_active=False)]

    def test_match_rules(self, clients):
        assert match_client_in_title("Acme-Report", clients).id == "c1"
        assert match_client_in_title("AB Review", clients) is None  # name too short
        assert match_client_in_title("Globex Review", clients) is None  # inactive
        assert match_client_in_title("Acmestudie", clients) is None

    def test_ask_mode(self, clients):
        candidate = detect_auto_client(make_task("t1", "Acme-Report"), clients, ASK_CLIENT, NOW)
        assert candidate.auto is False
        assert candidate.pattern.render_target == "inline"
        assert candidate.pattern.payload.suggested_client_name == "Acme"

    def test_auto_mode(self, clients):
        candidate = detect_auto_client(make_task("t1", "Acme-Report"), clients, AUTO_CLIENT, NOW)
        assert candidate.auto is True
        assert candidate.pattern.render_target == "toast"

    def test_task_with_client_is_skipped(self, clients):
        task = make_task("t1", "Acme-Report", client_id="c9")
        assert detect_auto_client(task, clients, ASK_CLIENT, NOW) is None


class TestDetectPatterns:
    def test_off_skips_type(self):
        tasks = [make_task("t1", "Acme Steuer", postpone_count=5, deadline="2025-06-09")]
        preferences = [
            PatternPreference(pattern_type="postpone", autonomy="off", threshold=3),
            ASK_DEADLINE,
            PatternPreference(pattern_type="autoClient", autonomy="off"),
        ]
        candidates = detect_patterns(tasks, [make_client("c1", "Acme")], preferences, NOW)
        assert [c.pattern.pattern_type for c in candidates] == ["deadlineWarning"]

    def test_rule_order(self):
        tasks = [make_task("t1", "Acme Steuer", postpone_count=5, deadline="2025-06-09")]
        candidates = detect_patterns(tasks, [make_client("c1", "Acme")],
                                     [ASK_POSTPONE, ASK_DEADLINE, ASK_CLIENT], NOW)
        assert [c.pattern.pattern_type for c in candidates] == ["postpone", "deadlineWarning", "autoClient"]


class TestRunDetection:
    """Tests for a full scan against the rate limiter."""

    @pytest.fixture
    def pattern_store(self):
        return PatternStore(clock=lambda: NOW)

    def test_quota_limits_new_patterns(self, pattern_store):
        store = FakeStore(tasks=[make_task(f"t{i}", f"Aufgabe {i}", postpone_count=4) for i in range(5)])
        detected = run_detection(store, pattern_store, now=NOW)

        assert len(detected) == 3
        assert pattern_store.active_patterns == detected
        assert pattern_store.quota_exhausted() is True

    def test_active_patterns_carry_over(self, pattern_store):
        store = FakeStore(tasks=[make_task("t1", "Steuer", postpone_count=4)])
        first = run_detection(store, pattern_store, now=NOW)
        second = run_detection(store, pattern_store, now=NOW)

        assert [p.id for p in second] == [p.id for p in first]
        assert pattern_store.state.suggestions_shown_today == 1

    def test_dismissed_pattern_stays_hidden(self, pattern_store):
        store = FakeStore(tasks=[make_task("t1", "Steuer", postpone_count=4)])
        first = run_detection(store, pattern_store, now=NOW)
        pattern_store.dismiss_pattern(first[0].id)

        assert run_detection(store, pattern_store, now=NOW) == []

    def test_resolved_condition_drops_pattern(self, pattern_store):
        store = FakeStore(tasks=[make_task("t1", "Steuer", postpone_count=4)])
        run_detection(store, pattern_store, now=NOW)
        store.update_task("t1", status="completed")

        assert run_detection(store, pattern_store, now=NOW) == []
        assert pattern_store.active_patterns == []

    def test_auto_mode_applies_action(self, pattern_store):
        pattern_store.update_preference("postpone", autonomy="auto")
        pattern_store.update_preference("autoClient", autonomy="auto")
        store = FakeStore(tasks=[make_task("t1", "Steuer", postpone_count=3), make_task("t2", "Acme Report")],
                          clients=[make_client("c1", "Acme")])
        detected = run_detection(store, pattern_store, now=NOW)

        assert {p.render_target for p in detected} == {"toast"}
        assert store.task("t1").is_optional is True
        assert store.task("t2").client_id == "c1"
        assert pattern_store.state.suggestions_shown_today == 2
