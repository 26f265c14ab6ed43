from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import parse_timestamp

# Shared type for incoming dates which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Normalize due_date input into an aware UTC datetime; dates become midnight.
    """
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise ValueError(
            "Invalid due_date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
        ) from e


def _clean_content(v: str) -> str:
    s = v.strip()
    if not (1 <= len(s) <= 2000):
        raise ValueError("content length must be between 1 and 2000 characters")
    return s


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a todo record. The caller becomes created_by.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content": "Buy milk",
                "completed": False,
                "project_id": None,
                "assigned_to": "user-42",
                "due_date": "2025-02-01",
            }
        }
    )

    id: Optional[str] = Field(
        default=None,
        description="Client-chosen identifier (the to-do node id); generated when omitted",
        min_length=1,
        max_length=100,
    )
    content: str = Field(..., description="Text of the to-do", min_length=1, max_length=2000)
    completed: bool = Field(default=False, description="Completion status flag")
    project_id: Optional[str] = Field(default=None, description="Owning project identifier")
    assigned_to: Optional[str] = Field(default=None, description="Assignee user identifier")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time. Accepts ISO8601 date or datetime; dates are set to 00:00 UTC",
    )

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..2000 length.
        """
        return _clean_content(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing todo record.
    All fields are optional; only provided fields are written, and an explicit
    null clears project_id, assigned_to or due_date.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content": "Buy milk and bread",
                "completed": True,
                "due_date": "2025-02-02T09:30:00Z",
            }
        }
    )

    content: Optional[str] = Field(default=None, description="Text of the to-do", min_length=1, max_length=2000)
    completed: Optional[bool] = Field(default=None, description="Completion status flag")
    project_id: Optional[str] = Field(default=None, description="Owning project identifier")
    assigned_to: Optional[str] = Field(default=None, description="Assignee user identifier")
    due_date: Optional[datetime] = Field(default=None, description="Due date/time")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _clean_content(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)

    def changes(self) -> Dict[str, Any]:
        """Provided fields only; content and completed cannot be nulled."""
        data = self.model_dump(exclude_unset=True)
        for name in ("content", "completed"):
            if data.get(name, ...) is None:
                data.pop(name)
        return data


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a todo record.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "0b6f3f8e-3c55-4d43-9a52-1d7d1f0f3a11",
                "content": "Buy milk",
                "completed": False,
                "project_id": None,
                "assigned_to": None,
                "due_date": "2025-02-01T00:00:00Z",
                "created_by": "user-42",
                "created_at": "2025-01-25T10:15:30.123456Z",
                "updated_at": "2025-01-26T09:00:00.000001Z",
            }
        }
    )

    id: str = Field(..., description="Unique identifier of the todo")
    content: str = Field(..., description="Text of the to-do")
    completed: bool = Field(..., description="Completion status flag")
    project_id: Optional[str] = Field(default=None, description="Owning project identifier")
    assigned_to: Optional[str] = Field(default=None, description="Assignee user identifier")
    due_date: Optional[datetime] = Field(default=None, description="Due date/time as an ISO8601 datetime")
    created_by: str = Field(..., description="User that created the todo")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# PUBLIC_INTERFACE
class SessionOpen(_CamelModel):
    """Request body for opening an editing session."""

    document_id: Optional[str] = Field(
        default=None,
        description="Identifier of the edited document; its stored content is loaded when content is omitted",
        min_length=1,
        max_length=100,
    )
    content: Optional[Dict[str, Any]] = Field(
        default=None, description="Initial rich-text document (ProseMirror JSON); empty when omitted"
    )
    title: Optional[str] = Field(default=None, max_length=200, description="Document title")
    project_id: Optional[str] = Field(default=None, description="Owning project identifier")


class DocumentReplace(_CamelModel):
    """Request body carrying the full edited document."""

    content: Dict[str, Any] = Field(..., description="Rich-text document (ProseMirror JSON)")


# PUBLIC_INTERFACE
class TodoNodeUpdate(_CamelModel):
    """
    Changes applied to a to-do node from outside the editor. Explicit nulls
    clear assignedTo, projectId and dueDate.
    """

    content: Optional[str] = Field(default=None, max_length=2000)
    completed: Optional[bool] = None
    assigned_to: Optional[str] = None
    project_id: Optional[str] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)

    def attribute_changes(self) -> Dict[str, Any]:
        """Provided fields keyed by node attribute name, timestamps as ISO strings."""
        changes: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name in ("content", "completed") and value is None:
                continue
            if name == "due_date" and value is not None:
                value = value.isoformat()
            changes[to_camel(name)] = value
        return changes


class TodoNodeOut(_CamelModel):
    id: str
    content: str
    completed: bool
    assigned_to: Optional[str] = None
    project_id: Optional[str] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SyncReportOut(_CamelModel):
    success: int
    errors: int
    created: int
    updated: int
    unchanged: int
    failed_ids: List[str] = Field(default_factory=list)


class SyncStateOut(_CamelModel):
    attempts: int
    in_progress: bool
    rerun_requested: bool
    retry_pending: bool
    passes: int
    last_synced_at: Optional[datetime] = None
    last_report: Optional[SyncReportOut] = None


# PUBLIC_INTERFACE
class SessionOut(_CamelModel):
    """An open editing session and the state of its synchronization."""

    id: str
    owner_id: str
    document_id: Optional[str] = None
    title: str
    opened_at: datetime
    version: int = Field(..., description="Number of document mutations so far")
    sync: SyncStateOut


class SyncResultOut(_CamelModel):
    started: bool = Field(..., description="False when the request was debounced or a pass was running")
    report: Optional[SyncReportOut] = None


class NotificationOut(_CamelModel):
    title: str
    description: str
    created_at: datetime


# PUBLIC_INTERFACE
class DocumentOut(_CamelModel):
    """A stored document as last saved by an editing session."""

    id: str
    title: str
    content: Dict[str, Any]
    project_id: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime
