from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator, List, Mapping, Optional, Tuple

from .documents import DocumentRepository
from .errors import DuplicateTodoError, ErrorType, RemoteStoreError
from .models import DocumentRecord, TodoRecord
from .repositories import ListQuery, Repository, _check_fields, parse_sort
from .utils import format_timestamp, parse_timestamp, utcnow


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    id: str = "id"
    content: str = "content"
    completed: str = "completed"
    project_id: str = "project_id"
    assigned_to: str = "assigned_to"
    due_date: str = "due_date"
    created_by: str = "created_by"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()

_TIMESTAMP_COLS = {_COLS.due_date, _COLS.created_at, _COLS.updated_at}


class _SQLiteStore:
    """Connection handling shared by the sqlite repositories."""

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        raise NotImplementedError

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise RemoteStoreError(f"sqlite error: {e}", ErrorType.UNKNOWN, original=e) from e
        finally:
            conn.close()


# PUBLIC_INTERFACE
class SQLiteRepository(_SQLiteStore, Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    Timestamps are stored as ISO8601 UTC text.
    """

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.content} TEXT NOT NULL,
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.project_id} TEXT NULL,
                    {_COLS.assigned_to} TEXT NULL,
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.created_by} TEXT NOT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            for column in (_COLS.project_id, _COLS.assigned_to, _COLS.created_by, _COLS.created_at):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_{column} ON {_COLS.table}({column})"
                )

    def _row_to_record(self, row: sqlite3.Row) -> TodoRecord:
        return {
            "id": str(row[_COLS.id]),
            "content": str(row[_COLS.content]),
            "completed": bool(row[_COLS.completed]),
            "project_id": row[_COLS.project_id],
            "assigned_to": row[_COLS.assigned_to],
            "due_date": parse_timestamp(row[_COLS.due_date]),
            "created_by": str(row[_COLS.created_by]),
            "created_at": parse_timestamp(row[_COLS.created_at]),  # type: ignore
            "updated_at": parse_timestamp(row[_COLS.updated_at]),  # type: ignore
        }

    @staticmethod
    def _to_db(column: str, value: Any) -> Any:
        if column in _TIMESTAMP_COLS:
            return format_timestamp(parse_timestamp(value))
        if column == _COLS.completed:
            return 1 if value else 0
        return value

    def _select(self, conn: sqlite3.Connection, todo_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (todo_id,)).fetchone()

    def create(self, record: TodoRecord) -> TodoRecord:
        columns = [
            _COLS.id, _COLS.content, _COLS.completed, _COLS.project_id, _COLS.assigned_to,
            _COLS.due_date, _COLS.created_by, _COLS.created_at, _COLS.updated_at,
        ]
        values = [self._to_db(c, record.get(c)) for c in columns]  # type: ignore[misc]
        with self._conn() as conn:
            try:
                conn.execute(
                    f"INSERT INTO {_COLS.table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                    values,
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateTodoError(record["id"]) from e
            row = self._select(conn, record["id"])
            assert row is not None
            return self._row_to_record(row)

    def get(self, todo_id: str) -> Optional[TodoRecord]:
        with self._conn() as conn:
            row = self._select(conn, todo_id)
            return self._row_to_record(row) if row else None

    def update(self, todo_id: str, fields: Mapping[str, Any]) -> Optional[TodoRecord]:
        _check_fields(fields)
        changes = dict(fields)
        if changes.get(_COLS.updated_at) is None:
            changes[_COLS.updated_at] = utcnow()
        assignments = ", ".join(f"{column} = ?" for column in changes)
        params = [self._to_db(column, value) for column, value in changes.items()]
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_COLS.table} SET {assignments} WHERE {_COLS.id} = ?",
                [*params, todo_id],
            )
            if cur.rowcount == 0:
                return None
            row = self._select(conn, todo_id)
            assert row is not None
            return self._row_to_record(row)

    def delete(self, todo_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (todo_id,))
            return cur.rowcount > 0

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoRecord], int]:
        q = query or ListQuery()
        clauses = []
        params: list = []

        if q.completed is not None:
            clauses.append(f"{_COLS.completed} = ?")
            params.append(1 if q.completed else 0)

        for column in (_COLS.created_by, _COLS.project_id, _COLS.assigned_to):
            wanted = getattr(q, column)
            if wanted is not None:
                clauses.append(f"{column} = ?")
                params.append(wanted)

        if q.search:
            clauses.append(f"LOWER({_COLS.content}) LIKE ?")
            params.append(f"%{q.search.lower()}%")

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        field, reverse = parse_sort(q.sort)
        # NULL due dates last in both directions, like the in-memory backend
        order_sql = f"ORDER BY ({field} IS NULL), {field} {'DESC' if reverse else 'ASC'}"

        limit = max(q.limit, 0)
        offset = max(q.offset, 0)

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {_COLS.table} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
            return [self._row_to_record(r) for r in rows], total


# PUBLIC_INTERFACE
class SQLiteDocumentRepository(_SQLiteStore, DocumentRepository):
    """Documents table; the editor JSON is stored as text."""

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    project_id TEXT NULL,
                    created_by TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_created_by ON documents(created_by)")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> DocumentRecord:
        return {
            "id": str(row["id"]),
            "title": str(row["title"]),
            "content": json.loads(row["content"]),
            "project_id": row["project_id"],
            "created_by": str(row["created_by"]),
            "created_at": parse_timestamp(row["created_at"]),  # type: ignore
            "updated_at": parse_timestamp(row["updated_at"]),  # type: ignore
        }

    def get(self, document_id: str) -> Optional[DocumentRecord]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
            return self._row_to_record(row) if row else None

    def save(self, record: DocumentRecord) -> DocumentRecord:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO documents (id, title, content, project_id, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    project_id = excluded.project_id,
                    updated_at = excluded.updated_at
                """,
                (
                    record["id"],
                    record["title"],
                    json.dumps(record["content"]),
                    record["project_id"],
                    record["created_by"],
                    format_timestamp(record["created_at"]),
                    format_timestamp(record["updated_at"]),
                ),
            )
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (record["id"],)).fetchone()
            return self._row_to_record(row)

    def list(self, created_by: str) -> List[DocumentRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM documents WHERE created_by = ? ORDER BY updated_at DESC", (created_by,)
            ).fetchall()
            return [self._row_to_record(r) for r in rows]
