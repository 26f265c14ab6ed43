from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Sequence

from .changes import diff_todo
from .errors import RemoteStoreError
from .logging_config import get_logger
from .models import COMPARABLE_FIELDS, TodoNode, TodoRecord
from .remote import TodoStore
from .utils import utcnow

logger = get_logger(__name__)


# PUBLIC_INTERFACE
@dataclass
class SyncReport:
    """Outcome of one synchronization pass."""

    success: int = 0
    errors: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success + self.errors

    @property
    def ok(self) -> bool:
        return self.errors == 0

    def _failed(self, todo_id: str) -> None:
        self.errors += 1
        self.failed_ids.append(todo_id)


def build_insert_record(node: TodoNode, owner_id: str, now: Callable[[], datetime] = utcnow) -> TodoRecord:
    """Row for a to-do that has never been synchronized; owner_id becomes created_by."""
    created_at = node.created_at or now()
    return {
        "id": node.id,
        "content": node.content,
        "completed": node.completed,
        "project_id": node.project_id,
        "assigned_to": node.assigned_to,
        "due_date": node.due_date,
        "created_by": owner_id,
        "created_at": created_at,
        "updated_at": node.updated_at or created_at,
    }


# PUBLIC_INTERFACE
async def reconcile_todos(
    todos: Sequence[TodoNode],
    owner_id: str,
    store: TodoStore,
    *,
    fields: Iterable[str] = COMPARABLE_FIELDS,
    now: Callable[[], datetime] = utcnow,
) -> SyncReport:
    """
    Create or update the remote record of every to-do, one after another.

    A failure on one to-do is logged and counted; the remaining to-dos are
    still processed. Records that already match the node are left untouched.
    """
    fields = tuple(fields)
    report = SyncReport()
    for todo in todos:
        try:
            existing = await store.fetch_one(todo.id)
        except RemoteStoreError as e:
            logger.error("Error fetching todo %s: %s", todo.id, e)
            report._failed(todo.id)
            continue

        if existing is None:
            logger.info("Creating new todo %s", todo.id)
            try:
                await store.insert_one(build_insert_record(todo, owner_id, now))
            except RemoteStoreError as e:
                logger.error("Error creating todo %s: %s", todo.id, e)
                report._failed(todo.id)
                continue
            report.success += 1
            report.created += 1
            continue

        changes = diff_todo(existing, todo, fields)
        if not changes:
            report.success += 1
            report.unchanged += 1
            continue

        changes["updated_at"] = now()
        logger.info("Updating todo %s (%s)", todo.id, ", ".join(sorted(changes)))
        try:
            await store.update_one(todo.id, changes)
        except RemoteStoreError as e:
            logger.error("Error updating todo %s: %s", todo.id, e)
            report._failed(todo.id)
            continue
        report.success += 1
        report.updated += 1

    if report.errors:
        logger.warning("%d todos failed to sync, %d succeeded", report.errors, report.success)
    else:
        logger.info("Successfully synced %d todos", report.success)
    return report
