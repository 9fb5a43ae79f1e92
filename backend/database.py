import sqlite3
import json
import uuid
from datetime import date, datetime, timedelta
from typing import Optional
from contextlib import contextmanager

from models import Client, PatternState, Task, TaskCreate, TaskTemplate, TemplateCreate

DATABASE_PATH = "tally.db"

PRIORITY_ORDER = {"urgent": 4, "high": 3, "medium": 2, "low": 1}

# Task columns holding JSON text
_JSON_LIST_COLUMNS = ("tag_ids", "subtasks", "time_entries")
_JSON_OBJECT_COLUMNS = ("meeting_time", "recurrence")
_BOOL_COLUMNS = ("is_spontaneous", "is_meeting", "is_optional")


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory against DATABASE_PATH
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        env={**os.environ, "TALLY_DATABASE_PATH": os.path.abspath(DATABASE_PATH)},
        check=True
    )


def _new_id() -> str:
    return str(uuid.uuid4())


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    data = dict(row)
    for column in _JSON_LIST_COLUMNS:
        data[column] = json.loads(data[column]) if data[column] else []
    for column in _JSON_OBJECT_COLUMNS:
        data[column] = json.loads(data[column]) if data[column] else None
    for column in _BOOL_COLUMNS:
        data[column] = bool(data[column])
    return Task(**data)


def _to_column(field: str, value):
    """Python value -> SQLite column value for a task field."""
    if field in _JSON_LIST_COLUMNS or field in _JSON_OBJECT_COLUMNS:
        if value is None:
            return None
        if isinstance(value, list):
            return json.dumps([v.model_dump() if hasattr(v, "model_dump") else v for v in value])
        return json.dumps(value.model_dump() if hasattr(value, "model_dump") else value)
    if isinstance(value, bool):
        return int(value)
    return value


# Task operations

def get_all_tasks() -> list[Task]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM tasks ORDER BY scheduled_date, created_at").fetchall()
        return [_row_to_task(row) for row in rows]


def get_task(task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None


def create_task_db(task: TaskCreate, task_id: Optional[str] = None) -> Task:
    """Insert a task. Priority defaults to medium, postpone_count starts at 0."""
    created = Task(
        id=task_id or _new_id(),
        created_at=datetime.now().isoformat(),
        postpone_count=0,
        **task.model_dump(exclude={"priority"}),
        priority=task.priority or "medium",
    )
    fields = created.model_dump()
    columns = list(fields.keys())
    with get_db() as conn:
        conn.execute(
            f"INSERT INTO tasks ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            [_to_column(c, getattr(created, c)) for c in columns],
        )
        conn.commit()
    return created


def update_task_db(task_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.
    Unknown field names are ignored.
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None

        keys = row.keys()

        changes = {}
        for field, new_value in updates.items():
            if field not in keys:
                continue
            stored = _to_column(field, new_value)
            if stored != row[field]:
                changes[field] = stored

        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def delete_task_db(task_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        return cursor.rowcount > 0


def set_task_priority_db(task_id: str, priority: str) -> Optional[Task]:
    return update_task_db(task_id, priority=priority)


def find_task_by_title_db(title: str) -> Optional[Task]:
    """Find a task by partial title match (case-insensitive)."""
    title_lower = title.lower()
    for task in get_all_tasks():
        if title_lower in task.title.lower():
            return task
    return None


def sort_tasks_for_day(tasks: list[Task]) -> list[Task]:
    """Meetings first by start time, then priority urgent..low, then creation order."""
    def sort_key(task: Task):
        if task.is_meeting:
            return (0, task.meeting_time.start if task.meeting_time else "", 0, task.created_at)
        return (1, "", -PRIORITY_ORDER[task.priority], task.created_at)

    return sorted(tasks, key=sort_key)


def get_tasks_for_date_sorted(target_date: str) -> list[Task]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM tasks WHERE scheduled_date = ?", (target_date,)).fetchall()
    return sort_tasks_for_day([_row_to_task(row) for row in rows])


def get_unfinished_tasks_before_date(target_date: str) -> list[Task]:
    """Open, non-meeting tasks scheduled before target_date."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM tasks
               WHERE scheduled_date < ? AND status != 'completed' AND is_meeting = 0
               ORDER BY scheduled_date, created_at""",
            (target_date,)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def process_end_of_day(day: str) -> int:
    """
    Roll every open, non-meeting task of `day` over to the next day.
    original_date is recorded on the first postponement only.
    Returns the number of tasks moved.
    """
    next_day = (date.fromisoformat(day) + timedelta(days=1)).isoformat()
    with get_db() as conn:
        cursor = conn.execute(
            """UPDATE tasks
               SET scheduled_date = ?,
                   original_date = COALESCE(original_date, ?),
                   postpone_count = postpone_count + 1,
                   status = 'todo'
               WHERE scheduled_date = ? AND status != 'completed' AND is_meeting = 0""",
            (next_day, day, day)
        )
        conn.commit()
        return cursor.rowcount


# Client operations

def _row_to_client(row) -> Client:
    return Client(
        id=row["id"],
        name=row["name"],
        color=row["color"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def get_all_clients() -> list[Client]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM clients ORDER BY created_at").fetchall()
        return [_row_to_client(row) for row in rows]


def create_client_db(name: str, color: str = "#6b7280", is_active: bool = True) -> Client:
    client = Client(id=_new_id(), name=name, color=color, is_active=is_active,
                    created_at=datetime.now().isoformat())
    with get_db() as conn:
        conn.execute(
            "INSERT INTO clients (id, name, color, is_active, created_at) VALUES (?, ?, ?, ?, ?)",
            (client.id, client.name, client.color, int(client.is_active), client.created_at)
        )
        conn.commit()
    return client


# Template operations

def _row_to_template(row) -> TaskTemplate:
    return TaskTemplate(
        id=row["id"],
        name=row["name"],
        title=row["title"],
        description=row["description"],
        priority=row["priority"],
        client_id=row["client_id"],
        tag_ids=json.loads(row["tag_ids"]) if row["tag_ids"] else [],
        subtasks=json.loads(row["subtasks"]) if row["subtasks"] else [],
        is_meeting=bool(row["is_meeting"]),
        created_at=row["created_at"],
    )


def create_template_db(template: TemplateCreate) -> TaskTemplate:
    created = TaskTemplate(id=_new_id(), created_at=datetime.now().isoformat(), **template.model_dump())
    with get_db() as conn:
        conn.execute(
            """INSERT INTO templates
               (id, name, title, description, priority, client_id, tag_ids, subtasks, is_meeting, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (created.id, created.name, created.title, created.description, created.priority,
             created.client_id, json.dumps(created.tag_ids),
             json.dumps([s.model_dump() for s in created.subtasks]),
             int(created.is_meeting), created.created_at)
        )
        conn.commit()
    return created


def get_all_templates() -> list[TaskTemplate]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM templates ORDER BY created_at").fetchall()
        return [_row_to_template(row) for row in rows]


# Work time (minutes)

def add_work_session_db(work_date: str, work_minutes: int, break_minutes: int = 0) -> str:
    session_id = _new_id()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO work_sessions (id, work_date, work_minutes, break_minutes) VALUES (?, ?, ?, ?)",
            (session_id, work_date, work_minutes, break_minutes)
        )
        conn.commit()
    return session_id


def _net_minutes_between(start: str, end: str) -> int:
    """Net work minutes for dates in [start, end]. Breaks are subtracted per day, floored at 0."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT work_date, SUM(work_minutes) AS work, SUM(break_minutes) AS breaks
               FROM work_sessions
               WHERE work_date >= ? AND work_date <= ?
               GROUP BY work_date""",
            (start, end)
        ).fetchall()
    return sum(max(0, row["work"] - row["breaks"]) for row in rows)


def get_net_work_time(work_date: str) -> int:
    return _net_minutes_between(work_date, work_date)


def get_weekly_work_time(work_date: str) -> int:
    """Monday through Sunday of the week containing work_date."""
    day = date.fromisoformat(work_date)
    monday = day - timedelta(days=day.weekday())
    sunday = monday + timedelta(days=6)
    return _net_minutes_between(monday.isoformat(), sunday.isoformat())


def get_monthly_work_time(work_date: str) -> int:
    day = date.fromisoformat(work_date)
    first = day.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    last = next_month - timedelta(days=1)
    return _net_minutes_between(first.isoformat(), last.isoformat())


# Pattern state (single row)

def load_pattern_state() -> Optional[PatternState]:
    with get_db() as conn:
        row = conn.execute("SELECT state FROM pattern_state WHERE id = 1").fetchone()
        if row:
            return PatternState.model_validate_json(row["state"])
        return None


def save_pattern_state(state: PatternState):
    now = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO pattern_state (id, state, updated_at) VALUES (1, ?, ?)
               ON CONFLICT(id) DO UPDATE SET state = excluded.state, updated_at = excluded.updated_at""",
            (state.model_dump_json(), now)
        )
        conn.commit()
