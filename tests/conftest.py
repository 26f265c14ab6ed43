"""
Shared fixtures for the todosync test-suite.
"""

import os

# Settings are read at import time of the app; keep timers out of API tests.
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("SYNC_REMOTE_BACKEND", "local")
os.environ.setdefault("SYNC_DEBOUNCE_SECONDS", "0")
os.environ.setdefault("SYNC_RETRY_DELAY_SECONDS", "0.05")
os.environ.setdefault("SYNC_INTERVAL_SECONDS", "0")
os.environ.setdefault("SYNC_INITIAL_DELAY_SECONDS", "-1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import asyncio  # noqa: E402
from typing import Any, Dict, List, Mapping, Optional  # noqa: E402

import pytest  # noqa: E402

from todosync.errors import ErrorType, RemoteStoreError  # noqa: E402
from todosync.remote import TodoStore  # noqa: E402


class RecordingStore(TodoStore):
    """In-memory TodoStore that records every call and can be told to fail."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail_all = False
        self.fail_ids: set = set()
        self.gate: Optional[asyncio.Event] = None

    def _check(self, todo_id: str, error_type: ErrorType) -> None:
        if self.fail_all or todo_id in self.fail_ids:
            raise RemoteStoreError("connection refused", error_type=error_type)

    async def fetch_one(self, todo_id: str):
        self.calls.append(("fetch", todo_id))
        if self.gate is not None:
            await self.gate.wait()
        self._check(todo_id, ErrorType.DATA_FETCH)
        record = self.records.get(todo_id)
        return None if record is None else dict(record)

    async def insert_one(self, record):
        self.calls.append(("insert", dict(record)))
        self._check(record["id"], ErrorType.DATA_CREATE)
        self.records[record["id"]] = dict(record)
        return dict(record)

    async def update_one(self, todo_id: str, fields: Mapping[str, Any]):
        self.calls.append(("update", todo_id, dict(fields)))
        self._check(todo_id, ErrorType.DATA_UPDATE)
        self.records[todo_id].update(fields)
        return dict(self.records[todo_id])

    def writes(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("insert", "update")]


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


def todo_node(todo_id: Optional[str], text: str = "", **attrs: Any) -> Dict[str, Any]:
    node_attrs: Dict[str, Any] = {"completed": False, "createdAt": "2025-01-10T09:00:00+00:00"}
    if todo_id is not None:
        node_attrs["id"] = todo_id
    node_attrs.update(attrs)
    content = [{"type": "text", "text": text}] if text else []
    return {"type": "todo", "attrs": node_attrs, "content": content}


def doc(*nodes: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "doc", "content": list(nodes)}


@pytest.fixture
def make_todo():
    return todo_node


@pytest.fixture
def make_doc():
    return doc
