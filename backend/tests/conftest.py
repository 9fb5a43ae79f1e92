"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database for isolation.
"""
import pytest
import sqlite3
import sys
import os
from typing import Optional

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from models import Client, Task, TaskCreate, TaskTemplate, TemplateCreate

SCHEMA = """
    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'todo',
        priority TEXT NOT NULL DEFAULT 'medium',
        scheduled_date TEXT NOT NULL,
        deadline TEXT,
        client_id TEXT,
        tag_ids TEXT DEFAULT '[]',
        subtasks TEXT DEFAULT '[]',
        is_spontaneous INTEGER DEFAULT 0,
        is_meeting INTEGER DEFAULT 0,
        meeting_time TEXT,
        recurrence TEXT,
        time_entries TEXT DEFAULT '[]',
        created_at TEXT NOT NULL,
        completed_at TEXT,
        original_date TEXT,
        postpone_count INTEGER NOT NULL DEFAULT 0,
        is_optional INTEGER DEFAULT 0
    );

    CREATE TABLE clients (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        color TEXT NOT NULL DEFAULT '#6b7280',
        is_active INTEGER DEFAULT 1,
        created_at TEXT NOT NULL
    );

    CREATE TABLE templates (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        priority TEXT NOT NULL DEFAULT 'medium',
        client_id TEXT,
        tag_ids TEXT DEFAULT '[]',
        subtasks TEXT DEFAULT '[]',
        is_meeting INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    );

    CREATE TABLE work_sessions (
        id TEXT PRIMARY KEY,
        work_date TEXT NOT NULL,
        work_minutes INTEGER NOT NULL DEFAULT 0,
        break_minutes INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE pattern_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        state TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
"""


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Background scans are off; tests trigger them through POST /patterns/scan.
    """
    from fastapi.testclient import TestClient
    import main
    from config import Settings

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(database, "init_db", lambda: None)
    monkeypatch.setattr(main, "settings", Settings(scheduler_enabled=False))

    with TestClient(main.app) as client:
        yield client


def make_task(task_id: str, title: str, scheduled_date: str = "2025-06-10", **fields) -> Task:
    fields.setdefault("created_at", f"{scheduled_date}T08:00:00")
    return Task(id=task_id, title=title, scheduled_date=scheduled_date, **fields)


def make_client(client_id: str, name: str, **fields) -> Client:
    fields.setdefault("created_at", "2025-01-01T00:00:00")
    return Client(id=client_id, name=name, **fields)


class FakeStore:
    """In-memory StoreAccess. Mutations are applied to self.tasks immediately."""

    def __init__(self, today="2025-06-10", tasks=None, clients=None, active_patterns=None,
                 pattern_preferences=None):
        self.today = today
        self.tasks = list(tasks or [])
        self.clients = list(clients or [])
        self.active_patterns = list(active_patterns or [])
        self.pattern_preferences = list(pattern_preferences or [])
        self.templates: list[TaskTemplate] = []
        self.accepted: list[str] = []
        self.work_minutes: dict[str, int] = {}
        self._next_id = 1

    def add_task(self, task: TaskCreate) -> Task:
        created = Task(
            id=f"new-{self._next_id}",
            created_at=f"{self.today}T12:00:00",
            **task.model_dump(exclude={"priority"}),
            priority=task.priority or "medium",
        )
        self._next_id += 1
        self.tasks.append(created)
        return created

    def update_task(self, task_id: str, **fields) -> Optional[Task]:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                self.tasks[i] = task.model_copy(update=fields)
                return self.tasks[i]
        return None

    def delete_task(self, task_id: str) -> bool:
        before = len(self.tasks)
        self.tasks = [t for t in self.tasks if t.id != task_id]
        return len(self.tasks) < before

    def set_task_priority(self, task_id: str, priority: str) -> Optional[Task]:
        return self.update_task(task_id, priority=priority)

    def add_template(self, template: TemplateCreate) -> TaskTemplate:
        created = TaskTemplate(id=f"tpl-{len(self.templates) + 1}", created_at=f"{self.today}T12:00:00",
                               **template.model_dump())
        self.templates.append(created)
        return created

    def get_net_work_time(self, day: str) -> int:
        return self.work_minutes.get(day, 0)

    def get_weekly_work_time(self, day: str) -> int:
        return sum(self.work_minutes.values())

    def get_monthly_work_time(self, day: str) -> int:
        return sum(self.work_minutes.values())

    def get_tasks_for_date_sorted(self, day: str) -> list[Task]:
        return database.sort_tasks_for_day([t for t in self.tasks if t.scheduled_date == day])

    def get_unfinished_tasks_before_date(self, day: str) -> list[Task]:
        return [t for t in self.tasks
                if t.scheduled_date < day and t.status != "completed" and not t.is_meeting]

    def accept_pattern(self, pattern_id: str) -> bool:
        self.accepted.append(pattern_id)
        before = len(self.active_patterns)
        self.active_patterns = [p for p in self.active_patterns if p.id != pattern_id]
        return len(self.active_patterns) < before

    def task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)


@pytest.fixture
def fake_store():
    return FakeStore()
