"""
Capability interface the engines use to read and mutate tasks.

SqliteStoreAccess takes its snapshots once, at construction. Mutations go
straight to the database and are not reflected in the snapshot.
"""
from datetime import date
from typing import Optional, Protocol

import database
from models import Client, DetectedPattern, PatternPreference, Task, TaskCreate, TaskTemplate, TemplateCreate
from pattern_store import PatternStore


class StoreAccess(Protocol):
    today: str
    tasks: list[Task]
    clients: list[Client]
    active_patterns: list[DetectedPattern]
    pattern_preferences: list[PatternPreference]

    def add_task(self, task: TaskCreate) -> Task: ...

    def update_task(self, task_id: str, **fields) -> Optional[Task]: ...

    def delete_task(self, task_id: str) -> bool: ...

    def set_task_priority(self, task_id: str, priority: str) -> Optional[Task]: ...

    def add_template(self, template: TemplateCreate) -> TaskTemplate: ...

    def get_net_work_time(self, day: str) -> int: ...

    def get_weekly_work_time(self, day: str) -> int: ...

    def get_monthly_work_time(self, day: str) -> int: ...

    def get_tasks_for_date_sorted(self, day: str) -> list[Task]: ...

    def get_unfinished_tasks_before_date(self, day: str) -> list[Task]: ...

    def accept_pattern(self, pattern_id: str) -> bool: ...


class SqliteStoreAccess:
    def __init__(self, pattern_store: PatternStore, today: Optional[str] = None):
        self.today = today or date.today().isoformat()
        self.tasks = database.get_all_tasks()
        self.clients = database.get_all_clients()
        self.active_patterns = pattern_store.active_patterns
        self.pattern_preferences = pattern_store.preferences
        self._patterns = pattern_store

    def add_task(self, task: TaskCreate) -> Task:
        return database.create_task_db(task)

    def update_task(self, task_id: str, **fields) -> Optional[Task]:
        return database.update_task_db(task_id, **fields)

    def delete_task(self, task_id: str) -> bool:
        return database.delete_task_db(task_id)

    def set_task_priority(self, task_id: str, priority: str) -> Optional[Task]:
        return database.set_task_priority_db(task_id, priority)

    def add_template(self, template: TemplateCreate) -> TaskTemplate:
        return database.create_template_db(template)

    def get_net_work_time(self, day: str) -> int:
        return database.get_net_work_time(day)

    def get_weekly_work_time(self, day: str) -> int:
        return database.get_weekly_work_time(day)

    def get_monthly_work_time(self, day: str) -> int:
        return database.get_monthly_work_time(day)

    def get_tasks_for_date_sorted(self, day: str) -> list[Task]:
        return database.get_tasks_for_date_sorted(day)

    def get_unfinished_tasks_before_date(self, day: str) -> list[Task]:
        return database.get_unfinished_tasks_before_date(day)

    def accept_pattern(self, pattern_id: str) -> bool:
        return self._patterns.accept_pattern(pattern_id)
