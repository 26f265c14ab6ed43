from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..auth import get_current_user_dependency
from ..errors import DuplicateTodoError
from ..models import TodoRecord
from ..repositories import SORT_FIELDS, ListQuery, Repository, get_repository
from ..schemas import TodoCreate, TodoOut, TodoUpdate
from ..utils import pagination_envelope, utcnow

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)

current_user = get_current_user_dependency()

_NOT_FOUND = "Todo not found"


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[TodoOut] = Field(..., description="List of todo records")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


def _get_repo(repo: Repository = Depends(get_repository)) -> Repository:
    return repo


def _normalize_sort(sort: Optional[str], order: Optional[str]) -> str:
    normalized = (sort or "-created_at").strip().lower()
    field = normalized.lstrip("-")
    if field not in SORT_FIELDS:
        field, normalized = "created_at", "-created_at"
    if order:
        ord_norm = order.strip().lower()
        if ord_norm not in {"asc", "desc"}:
            raise HTTPException(status_code=400, detail="order must be 'asc' or 'desc'")
        normalized = f"-{field}" if ord_norm == "desc" else field
    return normalized


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a todo record owned by the caller and return it.",
    responses={
        201: {"description": "Todo created successfully"},
        409: {"description": "A todo with this id already exists"},
    },
)
def create_todo(
    payload: TodoCreate,
    repo: Repository = Depends(_get_repo),
    user_id: str = Depends(current_user),
) -> TodoOut:
    now = utcnow()
    record: TodoRecord = {
        "id": payload.id or str(uuid.uuid4()),
        "content": payload.content,
        "completed": payload.completed,
        "project_id": payload.project_id,
        "assigned_to": payload.assigned_to,
        "due_date": payload.due_date,
        "created_by": user_id,
        "created_at": now,
        "updated_at": now,
    }
    try:
        created = repo.create(record)
    except DuplicateTodoError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from e
    return TodoOut(**created)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Todos",
    description=(
        "List todos with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)\n"
        "- completed: filter by completion status\n"
        "- q: search query for the content (substring match)\n"
        "- project_id / assigned_to: filter by project or assignee\n"
        "- mine: only todos created by the caller\n"
        "- sort: one of created_at, updated_at, due_date, optionally prefixed with '-'\n"
        "- order: asc or desc (if provided, it overrides the direction in sort)\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_todos(
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    q: Optional[str] = Query(None, description="Search text for the content"),
    project_id: Optional[str] = Query(None, description="Filter by project"),
    assigned_to: Optional[str] = Query(None, description="Filter by assignee"),
    mine: bool = Query(False, description="Only todos created by the caller"),
    sort: Optional[str] = Query("-created_at", description="Sort field, '-' prefix for descending"),
    order: Optional[str] = Query(None, description="Override sort direction: 'asc' or 'desc'"),
    repo: Repository = Depends(_get_repo),
    user_id: str = Depends(current_user),
) -> PaginationEnvelope:
    query = ListQuery(
        limit=limit,
        offset=offset,
        completed=completed,
        search=q.strip() if q else None,
        created_by=user_id if mine else None,
        project_id=project_id,
        assigned_to=assigned_to,
        sort=_normalize_sort(sort, order),
    )
    items, total = repo.list(query)
    envelope = pagination_envelope(
        items=[TodoOut(**it) for it in items],
        total=total,
        limit=limit,
        offset=offset,
    )
    return PaginationEnvelope(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    responses={404: {"description": "Todo not found"}},
)
def get_todo(
    todo_id: str,
    repo: Repository = Depends(_get_repo),
    user_id: str = Depends(current_user),
) -> TodoOut:
    item = repo.get(todo_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return TodoOut(**item)


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Replace Todo",
    description="Replace the editable fields of a todo; omitted optional fields are cleared.",
    responses={404: {"description": "Todo not found"}},
)
def put_todo(
    todo_id: str,
    payload: TodoCreate,
    repo: Repository = Depends(_get_repo),
    user_id: str = Depends(current_user),
) -> TodoOut:
    updated = repo.update(
        todo_id,
        {
            "content": payload.content,
            "completed": payload.completed,
            "project_id": payload.project_id,
            "assigned_to": payload.assigned_to,
            "due_date": payload.due_date,
        },
    )
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return TodoOut(**updated)


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description="Partially update a todo; explicit nulls clear optional fields.",
    responses={404: {"description": "Todo not found"}},
)
def patch_todo(
    todo_id: str,
    payload: TodoUpdate,
    repo: Repository = Depends(_get_repo),
    user_id: str = Depends(current_user),
) -> TodoOut:
    updated = repo.update(todo_id, payload.changes())
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return TodoOut(**updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    responses={404: {"description": "Todo not found"}},
)
def delete_todo(
    todo_id: str,
    repo: Repository = Depends(_get_repo),
    user_id: str = Depends(current_user),
) -> None:
    if not repo.delete(todo_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return None
