"""Add work_sessions and pattern_state tables

Revision ID: 002
Revises: 001
Create Date: 2025-06-09

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Work and break time in minutes, one row per tracked session
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS work_sessions (
            id TEXT PRIMARY KEY,
            work_date TEXT NOT NULL,
            work_minutes INTEGER NOT NULL DEFAULT 0,
            break_minutes INTEGER NOT NULL DEFAULT 0
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_work_sessions_work_date ON work_sessions (work_date)"))

    # Single row (id = 1) holding the pattern store as JSON
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS pattern_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            state TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS pattern_state"))
    conn.execute(text("DROP INDEX IF EXISTS ix_work_sessions_work_date"))
    conn.execute(text("DROP TABLE IF EXISTS work_sessions"))
