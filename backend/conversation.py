"""Rolling conversation memory used for pronoun references."""
from typing import Optional

from intents import ConversationContext
from resolvers import resolve_task

MAX_RECENT_INTENTS = 5


def update_conversation_context(
    prev: ConversationContext,
    executed_intent,
    resolved_task_id: Optional[str] = None,
) -> ConversationContext:
    """Return a new context with the executed intent pushed to the front."""
    recent = [executed_intent, *prev.recent_intents][:MAX_RECENT_INTENTS]

    last_task_id = resolved_task_id or prev.last_referenced_task_id
    last_client_id = prev.last_referenced_client_id
    if executed_intent.type == "create_task" and executed_intent.client_id:
        last_client_id = executed_intent.client_id

    return ConversationContext(
        recent_intents=recent,
        last_referenced_task_id=last_task_id,
        last_referenced_client_id=last_client_id,
    )


def extract_task_id_from_intent(intent, store) -> Optional[str]:
    """Target task id of a mutation. Call before executing; deletion removes the task.

    For create_task the id only exists after execution and is set by the caller.
    """
    if intent.type == "pattern_action":
        return intent.task_id
    if intent.type not in ("move_tasks", "delete_task", "set_priority", "create_template"):
        return None
    if intent.scope == "by_id":
        return intent.task_id
    if intent.scope in ("last", "by_title"):
        task = resolve_task(intent.scope, store.tasks, store.today, intent.title_query)
        return task.id if task else None
    return None
