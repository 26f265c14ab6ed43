"""
Remote to-do stores used by the synchronization pass.

Every operation is a coroutine so a pass suspends on each remote call. A
missing record is reported as ``None`` by ``fetch_one``; every other failure
is raised as ``RemoteStoreError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from fastapi.concurrency import run_in_threadpool

from .errors import ErrorType, RemoteStoreError
from .logging_config import get_logger
from .models import TodoRecord
from .repositories import Repository, get_repository
from .settings import get_settings
from .utils import format_timestamp, parse_timestamp

logger = get_logger(__name__)

# PostgREST error code for "JSON object requested, multiple (or no) rows returned".
POSTGREST_NOT_FOUND = "PGRST116"

_TIMESTAMP_FIELDS = ("due_date", "created_at", "updated_at")


# PUBLIC_INTERFACE
class TodoStore(ABC):
    """Asynchronous create/read/update access to remote to-do records, keyed by id."""

    @abstractmethod
    async def fetch_one(self, todo_id: str) -> Optional[TodoRecord]:
        """Return the record, or None when no record has this id."""

    @abstractmethod
    async def insert_one(self, record: TodoRecord) -> TodoRecord:
        """Insert a complete record and return the stored row."""

    @abstractmethod
    async def update_one(self, todo_id: str, fields: Mapping[str, Any]) -> TodoRecord:
        """Update some columns (always including updated_at) and return the stored row."""

    async def aclose(self) -> None:
        """Release network resources, if any."""
        return None


class RepositoryTodoStore(TodoStore):
    """Store backed by this service's own todos repository."""

    def __init__(self, repository: Repository) -> None:
        self._repository = repository

    async def _call(self, error_type: ErrorType, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await run_in_threadpool(func, *args)
        except RemoteStoreError:
            raise
        except ValueError as e:
            # Rejected columns or unparsable stored timestamps.
            raise RemoteStoreError(str(e), error_type=error_type, original=e) from e

    async def fetch_one(self, todo_id: str) -> Optional[TodoRecord]:
        return await self._call(ErrorType.DATA_FETCH, self._repository.get, todo_id)

    async def insert_one(self, record: TodoRecord) -> TodoRecord:
        return await self._call(ErrorType.DATA_CREATE, self._repository.create, record)

    async def update_one(self, todo_id: str, fields: Mapping[str, Any]) -> TodoRecord:
        updated = await self._call(ErrorType.DATA_UPDATE, self._repository.update, todo_id, fields)
        if updated is None:
            # The row vanished between fetch and update.
            raise RemoteStoreError(
                f"Todo {todo_id} disappeared before it could be updated",
                error_type=ErrorType.DATA_UPDATE,
                code="not_found",
            )
        return updated


def _to_wire(fields: Mapping[str, Any]) -> Dict[str, Any]:
    payload = dict(fields)
    for name in _TIMESTAMP_FIELDS:
        if name in payload:
            payload[name] = format_timestamp(parse_timestamp(payload[name]))
    return payload


def _from_wire(row: Any, error_type: ErrorType) -> TodoRecord:
    if not isinstance(row, dict) or "id" not in row:
        raise RemoteStoreError("Malformed todo row in response", error_type=error_type, original=row)
    record = dict(row)
    for name in _TIMESTAMP_FIELDS:
        if name in record:
            try:
                record[name] = parse_timestamp(record[name])
            except ValueError as e:
                raise RemoteStoreError(
                    f"Invalid {name} in row {record['id']}: {e}", error_type=error_type, original=e
                ) from e
    return record  # type: ignore[return-value]


class PostgrestTodoStore(TodoStore):
    """
    Store backed by a hosted PostgREST endpoint (for example a Supabase
    project), talking to ``{base_url}/rest/v1/{table}``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        table: str = "todos",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._table = table
        self._owns_client = client is None
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }
        if client is None:
            client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)
        else:
            client.headers.update(headers)
        self._client = client

    @property
    def _path(self) -> str:
        return f"/rest/v1/{self._table}"

    @staticmethod
    def _error(response: httpx.Response, error_type: ErrorType) -> RemoteStoreError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or f"HTTP {response.status_code}"
        return RemoteStoreError(message, error_type=error_type, code=body.get("code"), original=body)

    async def _send(self, method: str, error_type: ErrorType, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, self._path, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteStoreError(str(e) or type(e).__name__, error_type=ErrorType.NETWORK, original=e) from e

    @staticmethod
    def _body(response: httpx.Response, error_type: ErrorType) -> Any:
        try:
            return response.json()
        except ValueError as e:
            # A proxy or gateway answered instead of PostgREST.
            raise RemoteStoreError(
                f"Unreadable response body (HTTP {response.status_code})", error_type=error_type, original=e
            ) from e

    def _single_row(self, response: httpx.Response, todo_id: str, error_type: ErrorType) -> TodoRecord:
        rows = self._body(response, error_type)
        if isinstance(rows, list):
            if not rows:
                raise RemoteStoreError(f"No row returned for todo {todo_id}", error_type=error_type)
            rows = rows[0]
        return _from_wire(rows, error_type)

    async def fetch_one(self, todo_id: str) -> Optional[TodoRecord]:
        response = await self._send(
            "GET",
            ErrorType.DATA_FETCH,
            params={"id": f"eq.{todo_id}", "select": "*"},
            headers={"Accept": "application/vnd.pgrst.object+json"},
        )
        if response.is_success:
            return _from_wire(self._body(response, ErrorType.DATA_FETCH), ErrorType.DATA_FETCH)
        error = self._error(response, ErrorType.DATA_FETCH)
        if error.code == POSTGREST_NOT_FOUND:
            return None
        raise error

    async def insert_one(self, record: TodoRecord) -> TodoRecord:
        response = await self._send(
            "POST",
            ErrorType.DATA_CREATE,
            json=[_to_wire(record)],
            headers={"Prefer": "return=representation"},
        )
        if not response.is_success:
            raise self._error(response, ErrorType.DATA_CREATE)
        return self._single_row(response, record["id"], ErrorType.DATA_CREATE)

    async def update_one(self, todo_id: str, fields: Mapping[str, Any]) -> TodoRecord:
        response = await self._send(
            "PATCH",
            ErrorType.DATA_UPDATE,
            params={"id": f"eq.{todo_id}"},
            json=_to_wire(fields),
            headers={"Prefer": "return=representation"},
        )
        if not response.is_success:
            raise self._error(response, ErrorType.DATA_UPDATE)
        return self._single_row(response, todo_id, ErrorType.DATA_UPDATE)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_todo_store() -> TodoStore:
    """
    Return the store sessions synchronize into, selected by SYNC_REMOTE_BACKEND.
    - local: the todos repository served by this application
    - postgrest: a hosted PostgREST table (POSTGREST_URL, POSTGREST_API_KEY)
    """
    settings = get_settings()
    if settings.sync_remote_backend == "postgrest":
        if not settings.postgrest_url or not settings.postgrest_api_key:
            raise RuntimeError("SYNC_REMOTE_BACKEND=postgrest requires POSTGREST_URL and POSTGREST_API_KEY")
        logger.info("Synchronizing todos into PostgREST at %s", settings.postgrest_url)
        return PostgrestTodoStore(
            settings.postgrest_url,
            settings.postgrest_api_key,
            timeout=settings.postgrest_timeout_seconds,
        )
    return RepositoryTodoStore(get_repository())
