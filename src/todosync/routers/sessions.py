from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..auth import get_current_user_dependency
from ..errors import DocumentAccessError
from ..models import TodoNode
from ..reconciler import SyncReport
from ..schemas import (
    DocumentReplace,
    NotificationOut,
    SessionOpen,
    SessionOut,
    SyncReportOut,
    SyncResultOut,
    SyncStateOut,
    TodoNodeOut,
    TodoNodeUpdate,
)
from ..sessions import EditingSession, SessionRegistry, get_session_registry

router = APIRouter(
    prefix="/api/v1/sessions",
    tags=["sessions"],
)

current_user = get_current_user_dependency()


def _report_out(report: Optional[SyncReport]) -> Optional[SyncReportOut]:
    if report is None:
        return None
    return SyncReportOut(
        success=report.success,
        errors=report.errors,
        created=report.created,
        updated=report.updated,
        unchanged=report.unchanged,
        failed_ids=list(report.failed_ids),
    )


def _session_out(session: EditingSession) -> SessionOut:
    state = session.sync.state
    return SessionOut(
        id=session.id,
        owner_id=session.owner_id,
        document_id=session.document_id,
        title=session.title,
        opened_at=session.opened_at,
        version=session.document.version,
        sync=SyncStateOut(
            attempts=state.attempts,
            in_progress=state.in_progress,
            rerun_requested=state.rerun_requested,
            retry_pending=session.sync.retry_pending,
            passes=state.passes,
            last_synced_at=state.last_synced_at,
            last_report=_report_out(state.last_report),
        ),
    )


def _node_out(node: TodoNode) -> TodoNodeOut:
    return TodoNodeOut(
        id=node.id,
        content=node.content,
        completed=node.completed,
        assigned_to=node.assigned_to,
        project_id=node.project_id,
        due_date=node.due_date,
        created_at=node.created_at,
        updated_at=node.updated_at,
    )


def _owned_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
    user_id: str = Depends(current_user),
) -> EditingSession:
    session = registry.get(session_id)
    if session is None or session.owner_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Open Session",
    description=(
        "Open an editing session for a document and start synchronizing its to-dos. "
        "With a documentId and no content, the stored document is loaded."
    ),
    responses={404: {"description": "Document belongs to another user"}},
)
async def open_session(
    payload: SessionOpen,
    registry: SessionRegistry = Depends(get_session_registry),
    user_id: str = Depends(current_user),
) -> SessionOut:
    try:
        session = registry.open(
            user_id,
            payload.content,
            document_id=payload.document_id,
            title=payload.title,
            project_id=payload.project_id,
        )
    except DocumentAccessError as e:
        # Do not reveal documents of other users.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from e
    return _session_out(session)


# PUBLIC_INTERFACE
@router.get("/", response_model=List[SessionOut], summary="List Sessions")
async def list_sessions(
    registry: SessionRegistry = Depends(get_session_registry),
    user_id: str = Depends(current_user),
) -> List[SessionOut]:
    return [_session_out(s) for s in registry.list(user_id)]


# PUBLIC_INTERFACE
@router.get("/{session_id}", response_model=SessionOut, summary="Get Session")
async def get_session(session: EditingSession = Depends(_owned_session)) -> SessionOut:
    return _session_out(session)


# PUBLIC_INTERFACE
@router.put(
    "/{session_id}/document",
    response_model=SessionOut,
    summary="Replace Document",
    description=(
        "Replace the session document. The edit triggers a synchronization request, "
        "which is subject to the debounce window; the response is sent once it settled."
    ),
)
async def replace_document(
    payload: DocumentReplace,
    session: EditingSession = Depends(_owned_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionOut:
    session.document.replace(payload.content)
    await session.sync.wait_idle()
    await registry.save_document(session)
    return _session_out(session)


# PUBLIC_INTERFACE
@router.get("/{session_id}/document", summary="Get Document")
async def get_document(session: EditingSession = Depends(_owned_session)) -> dict:
    """Current document, including ids assigned to new to-do nodes."""
    session.document.todos()
    return session.document.content


# PUBLIC_INTERFACE
@router.post(
    "/{session_id}/sync",
    response_model=SyncResultOut,
    summary="Request Sync",
    description="Explicitly request a synchronization pass.",
)
async def request_sync(session: EditingSession = Depends(_owned_session)) -> SyncResultOut:
    report = await session.sync.request_sync("request")
    return SyncResultOut(started=report is not None, report=_report_out(report))


# PUBLIC_INTERFACE
@router.get("/{session_id}/todos", response_model=List[TodoNodeOut], summary="List Document Todos")
async def list_document_todos(session: EditingSession = Depends(_owned_session)) -> List[TodoNodeOut]:
    return [_node_out(node) for node in session.document.todos()]


# PUBLIC_INTERFACE
@router.patch(
    "/{session_id}/todos/{todo_id}",
    response_model=TodoNodeOut,
    summary="Update Document Todo",
    description="Apply a change made outside the editor to a to-do node of the document.",
    responses={404: {"description": "Session or todo not found"}},
)
async def update_document_todo(
    todo_id: str,
    payload: TodoNodeUpdate,
    session: EditingSession = Depends(_owned_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> TodoNodeOut:
    if not session.document.update_todo(todo_id, payload.attribute_changes()):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found in document")
    await session.sync.wait_idle()
    await registry.save_document(session)
    node = session.document.get_todo(todo_id)
    if node is None:
        # Replaced by a concurrent document edit.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found in document")
    return _node_out(node)


# PUBLIC_INTERFACE
@router.get(
    "/{session_id}/notifications",
    response_model=List[NotificationOut],
    summary="Drain Notifications",
)
async def drain_notifications(session: EditingSession = Depends(_owned_session)) -> List[NotificationOut]:
    return [
        NotificationOut(title=n.title, description=n.description, created_at=n.created_at)
        for n in session.notifications.drain()
    ]


# PUBLIC_INTERFACE
@router.delete(
    "/{session_id}",
    response_model=SyncReportOut,
    summary="Close Session",
    description="Stop synchronizing the session and run one final pass; returns its report.",
)
async def close_session(
    session: EditingSession = Depends(_owned_session),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SyncReportOut:
    report = await registry.close(session.id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return _report_out(report)
