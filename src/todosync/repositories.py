from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from threading import RLock
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .errors import DuplicateTodoError
from .logging_config import get_logger
from .models import TodoRecord
from .settings import get_settings
from .utils import utcnow

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

SORT_FIELDS = {"created_at", "updated_at", "due_date"}

# Columns a partial update may touch.
UPDATABLE_FIELDS = frozenset({"content", "completed", "project_id", "assigned_to", "due_date", "updated_at"})


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todo records.
    """
    limit: int = 50
    offset: int = 0
    completed: Optional[bool] = None
    search: Optional[str] = None
    created_by: Optional[str] = None
    project_id: Optional[str] = None
    assigned_to: Optional[str] = None
    sort: str = "-created_at"  # allowed: [-]created_at, [-]updated_at, [-]due_date


def parse_sort(sort: Optional[str]) -> Tuple[str, bool]:
    """Split a sort expression into (field, descending), defaulting to -created_at."""
    key = sort.strip().lower() if sort else "-created_at"
    reverse = key.startswith("-")
    field = key[1:] if reverse else key
    if field not in SORT_FIELDS:
        return "created_at", True
    return field, reverse


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for the todos table."""

    @abstractmethod
    def create(self, record: TodoRecord) -> TodoRecord:
        """Insert a complete record. Raises DuplicateTodoError if the id exists."""

    @abstractmethod
    def get(self, todo_id: str) -> Optional[TodoRecord]:
        """Return a record by id, or None if not found."""

    @abstractmethod
    def update(self, todo_id: str, fields: Mapping[str, Any]) -> Optional[TodoRecord]:
        """
        Update the given columns of an existing record; explicit None values are
        written. updated_at is taken from ``fields`` or set to now. Return the
        updated record or None if not found.
        """

    @abstractmethod
    def delete(self, todo_id: str) -> bool:
        """Delete a record by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoRecord], int]:
        """
        Return a slice of records and total count matching filters.
        - Supports limit/offset
        - Filter by completed, created_by, project_id, assigned_to
        - Substring search across content (case-insensitive)
        - Sorting by created_at/updated_at/due_date (asc/desc)
        """


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"cannot update columns: {', '.join(sorted(unknown))}")


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[str, TodoRecord] = {}

    def create(self, record: TodoRecord) -> TodoRecord:
        with self._lock:
            if record["id"] in self._items:
                raise DuplicateTodoError(record["id"])
            self._items[record["id"]] = record.copy()  # type: ignore[assignment]
        return record.copy()  # type: ignore[return-value]

    def get(self, todo_id: str) -> Optional[TodoRecord]:
        with self._lock:
            item = self._items.get(todo_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def update(self, todo_id: str, fields: Mapping[str, Any]) -> Optional[TodoRecord]:
        _check_fields(fields)
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None:
                return None

            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            if fields.get("updated_at") is None:
                updated["updated_at"] = utcnow()

            self._items[todo_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    def delete(self, todo_id: str) -> bool:
        with self._lock:
            return self._items.pop(todo_id, None) is not None

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoRecord], int]:
        q = query or ListQuery()
        with self._lock:
            items: Iterable[TodoRecord] = list(self._items.values())

            # Filtering
            if q.completed is not None:
                items = [t for t in items if t["completed"] == q.completed]
            for column in ("created_by", "project_id", "assigned_to"):
                wanted = getattr(q, column)
                if wanted is not None:
                    items = [t for t in items if t[column] == wanted]  # type: ignore[literal-required]
            if q.search:
                s = q.search.lower()
                items = [t for t in items if s in (t["content"] or "").lower()]

            items = list(items)
            total = len(items)

            # Sorting; records without a due date sort last in either direction
            field, reverse = parse_sort(q.sort)

            def sort_key(t: TodoRecord) -> Tuple[bool, datetime]:
                value = t[field]  # type: ignore[literal-required]
                missing = value is None
                if reverse:
                    missing = not missing
                return missing, value or _EPOCH

            items_sorted = sorted(items, key=sort_key, reverse=reverse)

            # Pagination
            start = max(q.offset, 0)
            end = start + max(q.limit, 0)
            page = items_sorted[start:end]

            # Return copies to avoid external mutation
            return [t.copy() for t in page], total  # type: ignore[misc]


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """
    Return the process-wide repository configured by settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository (stdlib sqlite3)
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite todos repository at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory todos repository")
    return InMemoryRepository()
