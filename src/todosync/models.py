from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, TypedDict


# PUBLIC_INTERFACE
class TodoRecord(TypedDict):
    """
    The persisted counterpart of a to-do node, as stored in the `todos` table.

    Fields:
    - id: Stable string identifier shared with the document node
    - content: Text of the to-do
    - completed: Boolean completion flag
    - project_id: Optional owning project
    - assigned_to: Optional assignee user id
    - due_date: Optional due datetime
    - created_by: User id of the owner that first synchronized the to-do
    - created_at: Creation timestamp (aware datetime)
    - updated_at: Last update timestamp (aware datetime)
    """

    id: str
    content: str
    completed: bool
    project_id: Optional[str]
    assigned_to: Optional[str]
    due_date: Optional[datetime]
    created_by: str
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class DocumentRecord(TypedDict):
    """
    A stored rich-text document, as kept in the `documents` table.

    The content is the editor JSON including the ids and createdAt values
    assigned to its to-do nodes, so reopening it keeps to-do identity.
    """

    id: str
    title: str
    content: Dict[str, Any]
    project_id: Optional[str]
    created_by: str
    created_at: datetime
    updated_at: datetime


# Node attribute (camelCase, as written by the editor) -> record column.
NODE_TO_RECORD_FIELDS: Dict[str, str] = {
    "content": "content",
    "completed": "completed",
    "projectId": "project_id",
    "assignedTo": "assigned_to",
    "dueDate": "due_date",
    "createdBy": "created_by",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

RECORD_TO_NODE_FIELDS: Dict[str, str] = {v: k for k, v in NODE_TO_RECORD_FIELDS.items()}

# Fields compared between a node and its record; updated_at never takes part.
COMPARABLE_FIELDS: Tuple[str, ...] = ("content", "completed", "project_id", "assigned_to", "due_date")


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TodoNode:
    """A to-do as extracted from the editor document, with record-style field names."""

    id: str
    content: str
    completed: bool = False
    assigned_to: Optional[str] = None
    project_id: Optional[str] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def record_fields(self) -> Dict[str, Any]:
        """Return the comparable fields keyed by record column name."""
        return {
            "content": self.content,
            "completed": self.completed,
            "project_id": self.project_id,
            "assigned_to": self.assigned_to,
            "due_date": self.due_date,
        }
