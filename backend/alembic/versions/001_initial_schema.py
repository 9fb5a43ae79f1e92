"""Initial schema - tasks, clients and templates

Revision ID: 001
Revises: None
Create Date: 2025-06-02

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Nested task fields (tag_ids, subtasks, time_entries, meeting_time, recurrence) are JSON text
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS tasks (
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
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_scheduled_date ON tasks (scheduled_date)"))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS clients (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            color TEXT NOT NULL DEFAULT '#6b7280',
            is_active INTEGER DEFAULT 1,
            created_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS templates (
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
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS templates"))
    conn.execute(text("DROP TABLE IF EXISTS clients"))
    conn.execute(text("DROP INDEX IF EXISTS ix_tasks_scheduled_date"))
    conn.execute(text("DROP TABLE IF EXISTS tasks"))
