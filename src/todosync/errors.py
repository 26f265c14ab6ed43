from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorType(str, Enum):
    """Categories used when reporting store and document failures."""

    UNKNOWN = "UNKNOWN"
    AUTH = "AUTH"
    DATA_FETCH = "DATA_FETCH"
    DATA_CREATE = "DATA_CREATE"
    DATA_UPDATE = "DATA_UPDATE"
    DATA_DELETE = "DATA_DELETE"
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"


class TodoSyncError(Exception):
    """Base class for errors raised by this package."""


# PUBLIC_INTERFACE
class RemoteStoreError(TodoSyncError):
    """
    A remote store operation was rejected.

    Not-found is never reported through this exception; stores return None
    for a missing record instead.
    """

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNKNOWN,
        code: Optional[str] = None,
        original: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code
        self.original = original


class DuplicateTodoError(RemoteStoreError):
    """A record with the same id already exists."""

    def __init__(self, todo_id: str) -> None:
        super().__init__(
            f"Todo {todo_id} already exists",
            error_type=ErrorType.DATA_CREATE,
            code="duplicate",
        )
        self.todo_id = todo_id


class DocumentError(TodoSyncError):
    """The editor document is malformed or carries unparsable attributes."""


class DocumentAccessError(TodoSyncError):
    """The stored document belongs to another user."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id} belongs to another user")
        self.document_id = document_id


_PREFIXES = {
    ErrorType.AUTH: "Authentication error",
    ErrorType.DATA_FETCH: "Data fetch error",
    ErrorType.DATA_CREATE: "Data create error",
    ErrorType.DATA_UPDATE: "Data update error",
    ErrorType.DATA_DELETE: "Data delete error",
    ErrorType.VALIDATION: "Validation error",
    ErrorType.NETWORK: "Network error",
}


# PUBLIC_INTERFACE
def format_error_message(error: RemoteStoreError) -> str:
    """Return a user-facing message for a store error."""
    prefix = _PREFIXES.get(error.error_type, "An error occurred")
    return f"{prefix}: {error.message}"
