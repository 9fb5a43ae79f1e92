"""
Tests for database.py - task CRUD, end-of-day rollover, work time and pattern state.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_task
from database import (
    add_work_session_db,
    create_client_db,
    create_task_db,
    create_template_db,
    delete_task_db,
    find_task_by_title_db,
    get_all_clients,
    get_all_tasks,
    get_all_templates,
    get_monthly_work_time,
    get_net_work_time,
    get_task,
    get_tasks_for_date_sorted,
    get_unfinished_tasks_before_date,
    get_weekly_work_time,
    load_pattern_state,
    process_end_of_day,
    save_pattern_state,
    set_task_priority_db,
    sort_tasks_for_day,
    update_task_db,
)
from models import (
    MeetingTime,
    PatternPreference,
    PatternState,
    RecurrenceRule,
    Subtask,
    TaskCreate,
    TemplateCreate,
    TemplateSubtask,
)


def new_task(title: str, scheduled_date: str = "2025-06-10", **fields):
    return TaskCreate(title=title, scheduled_date=scheduled_date, **fields)


class TestTaskCRUD:
    """Tests for basic task create/read/update/delete operations."""

    def test_create_task_defaults(self, test_db):
        """Priority defaults to medium and the postpone counter starts at 0."""
        task = create_task_db(new_task("Buy groceries"), task_id="id-1")

        assert task.id == "id-1"
        assert task.priority == "medium"
        assert task.postpone_count == 0
        assert task.original_date is None
        assert get_task("id-1") == task

    def test_nested_fields_round_trip(self, test_db):
        """JSON and boolean columns come back as models."""
        created = create_task_db(new_task(
            "Standup",
            is_meeting=True,
            meeting_time=MeetingTime(start="09:00", end="09:15"),
            subtasks=[Subtask(id="s1", title="Notizen")],
            recurrence=RecurrenceRule(type="weekly", week_days=[1, 3]),
            tag_ids=["work"],
        ))
        task = get_task(created.id)

        assert task.is_meeting is True
        assert task.meeting_time.start == "09:00"
        assert task.subtasks[0].title == "Notizen"
        assert task.recurrence.week_days == [1, 3]
        assert task.tag_ids == ["work"]
        assert task.time_entries == []

    def test_update_task(self, test_db):
        create_task_db(new_task("Old title"), task_id="id-1")
        updated = update_task_db("id-1", title="New title", is_optional=True, not_a_column="x")

        assert updated.title == "New title"
        assert updated.is_optional is True

    def test_update_task_not_found(self, test_db):
        assert update_task_db("missing", title="x") is None

    def test_set_priority(self, test_db):
        create_task_db(new_task("Steuer"), task_id="id-1")
        assert set_task_priority_db("id-1", "urgent").priority == "urgent"

    def test_delete_task(self, test_db):
        create_task_db(new_task("Delete me"), task_id="id-1")
        assert delete_task_db("id-1") is True
        assert delete_task_db("id-1") is False
        assert get_all_tasks() == []

    def test_find_task_by_title(self, test_db):
        create_task_db(new_task("Steuererklärung abgeben"))
        assert find_task_by_title_db("STEUER").title == "Steuererklärung abgeben"
        assert find_task_by_title_db("Urlaub") is None


class TestDayQueries:
    """Tests for per-day ordering and the end-of-day rollover."""

    def test_sort_tasks_for_day(self):
        tasks = [
            make_task("low", "Low", priority="low", created_at="2025-06-10T07:00:00"),
            make_task("m2", "Late meeting", is_meeting=True, meeting_time=MeetingTime(start="14:00", end="15:00")),
            make_task("urgent", "Urgent", priority="urgent"),
            make_task("m1", "Early meeting", is_meeting=True, meeting_time=MeetingTime(start="09:00", end="10:00")),
            make_task("med", "Medium"),
        ]
        assert [t.id for t in sort_tasks_for_day(tasks)] == ["m1", "m2", "urgent", "med", "low"]

    def test_get_tasks_for_date_sorted(self, test_db):
        create_task_db(new_task("Normal"), task_id="a")
        create_task_db(new_task("Wichtig", priority="high"), task_id="b")
        create_task_db(new_task("Morgen", scheduled_date="2025-06-11"), task_id="c")
        assert [t.id for t in get_tasks_for_date_sorted("2025-06-10")] == ["b", "a"]

    def test_unfinished_before_date(self, test_db):
        create_task_db(new_task("Old open", scheduled_date="2025-06-08"), task_id="a")
        create_task_db(new_task("Old done", scheduled_date="2025-06-08", status="completed"), task_id="b")
        create_task_db(new_task("Old meeting", scheduled_date="2025-06-08", is_meeting=True), task_id="c")
        create_task_db(new_task("Today"), task_id="d")
        assert [t.id for t in get_unfinished_tasks_before_date("2025-06-10")] == ["a"]

    def test_end_of_day_rolls_open_tasks_over(self, test_db):
        create_task_db(new_task("Open"), task_id="a")
        create_task_db(new_task("Done", status="completed"), task_id="b")
        create_task_db(new_task("Meeting", is_meeting=True), task_id="c")

        assert process_end_of_day("2025-06-10") == 1
        moved = get_task("a")
        assert (moved.scheduled_date, moved.original_date, moved.postpone_count) == ("2025-06-11", "2025-06-10", 1)
        assert get_task("b").scheduled_date == "2025-06-10"
        assert get_task("c").scheduled_date == "2025-06-10"

    def test_end_of_day_keeps_first_original_date(self, test_db):
        create_task_db(new_task("Open"), task_id="a")
        process_end_of_day("2025-06-10")
        process_end_of_day("2025-06-11")

        task = get_task("a")
        assert (task.scheduled_date, task.original_date, task.postpone_count) == ("2025-06-12", "2025-06-10", 2)


class TestClientsAndTemplates:
    def test_clients(self, test_db):
        create_client_db("Acme")
        create_client_db("Globex", color="#ff0000", is_active=False)
        clients = get_all_clients()
        assert [c.name for c in clients] == ["Acme", "Globex"]
        assert clients[1].is_active is False

    def test_templates(self, test_db):
        create_template_db(TemplateCreate(name="Bericht", title="Wochenbericht", priority="high",
                                          subtasks=[TemplateSubtask(title="Zahlen")]))
        template = get_all_templates()[0]
        assert template.title == "Wochenbericht"
        assert template.subtasks[0].title == "Zahlen"


class TestWorkTime:
    """Work time is stored in minutes; breaks are subtracted per day."""

    def test_net_work_time(self, test_db):
        add_work_session_db("2025-06-10", 240, 30)
        add_work_session_db("2025-06-10", 120, 0)
        assert get_net_work_time("2025-06-10") == 330

    def test_breaks_never_go_negative(self, test_db):
        add_work_session_db("2025-06-10", 10, 60)
        assert get_net_work_time("2025-06-10") == 0

    def test_weekly_is_monday_to_sunday(self, test_db):
        add_work_session_db("2025-06-08", 100)  # previous Sunday
        add_work_session_db("2025-06-09", 60)
        add_work_session_db("2025-06-15", 30)
        assert get_weekly_work_time("2025-06-11") == 90

    def test_monthly(self, test_db):
        add_work_session_db("2025-05-31", 100)
        add_work_session_db("2025-06-01", 60)
        add_work_session_db("2025-06-30", 30, 10)
        assert get_monthly_work_time("2025-06-15") == 80


class TestPatternState:
    def test_empty(self, test_db):
        assert load_pattern_state() is None

    def test_save_overwrites_single_row(self, test_db):
        prefs = [PatternPreference(pattern_type="postpone", autonomy="ask", threshold=3)]
        save_pattern_state(PatternState(preferences=prefs, suggestions_shown_today=1))
        save_pattern_state(PatternState(preferences=prefs, suggestions_shown_today=2))

        loaded = load_pattern_state()
        assert loaded.suggestions_shown_today == 2
        assert loaded.preferences[0].threshold == 3
