from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from .document import EditorDocument
from .documents import DEFAULT_TITLE, DocumentRepository, get_document_repository
from .errors import DocumentAccessError, DocumentError
from .logging_config import get_logger
from .models import DocumentRecord
from .notifications import NotificationCenter
from .reconciler import SyncReport
from .remote import TodoStore, get_todo_store
from .scheduler import SyncConfig, SyncSession
from .settings import get_settings
from .utils import utcnow

logger = get_logger(__name__)


# PUBLIC_INTERFACE
@dataclass
class EditingSession:
    """One open document of one user, with its sync machinery and toasts."""

    id: str
    owner_id: str
    document_id: Optional[str]
    document: EditorDocument
    notifications: NotificationCenter
    sync: SyncSession
    title: str = DEFAULT_TITLE
    project_id: Optional[str] = None
    opened_at: datetime = field(default_factory=utcnow)


# PUBLIC_INTERFACE
class SessionRegistry:
    """
    Tracks the editing sessions open in this process.

    Sessions opened with a document id are backed by the documents
    repository: the stored content is loaded when none is given, and the
    content (with the ids assigned to its to-do nodes) is saved after edits
    and when the session closes.
    """

    def __init__(
        self,
        store: TodoStore,
        config: SyncConfig,
        notification_buffer_size: int = 50,
        documents: Optional[DocumentRepository] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.documents = documents
        self._buffer_size = notification_buffer_size
        self._sessions: Dict[str, EditingSession] = {}

    def _load(self, owner_id: str, document_id: Optional[str]) -> Optional[DocumentRecord]:
        if document_id is None or self.documents is None:
            return None
        stored = self.documents.get(document_id)
        if stored is not None and stored["created_by"] != owner_id:
            raise DocumentAccessError(document_id)
        return stored

    def open(
        self,
        owner_id: str,
        content: Optional[Dict[str, Any]] = None,
        document_id: Optional[str] = None,
        title: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> EditingSession:
        """
        Create a session and start its synchronization timers.

        Raises:
            DocumentAccessError: if ``document_id`` is stored for another user.
            DocumentError: if the content is malformed.
        """
        stored = self._load(owner_id, document_id)
        if stored is not None:
            if content is None:
                logger.info("Loaded document %s for user %s", document_id, owner_id)
                content = stored["content"]
            title = title or stored["title"]
            project_id = project_id or stored["project_id"]

        document = EditorDocument(content)
        notifications = NotificationCenter(self._buffer_size)
        sync = SyncSession(document, owner_id, self.store, notifications, self.config)
        session = EditingSession(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            document_id=document_id,
            document=document,
            notifications=notifications,
            sync=sync,
            title=title or DEFAULT_TITLE,
            project_id=project_id,
        )
        self._save_document(session)
        self._sessions[session.id] = session
        sync.start()
        logger.info("Opened session %s for user %s (document %s)", session.id, owner_id, document_id)
        return session

    def _save_document(self, session: EditingSession) -> None:
        if session.document_id is None or self.documents is None:
            return
        try:
            # Extraction writes generated ids back before the snapshot is taken.
            session.document.todos()
        except DocumentError as e:
            logger.warning("Saving document %s with unreadable todos: %s", session.document_id, e)
        now = utcnow()
        self.documents.save(
            {
                "id": session.document_id,
                "title": session.title,
                "content": session.document.content,
                "project_id": session.project_id,
                "created_by": session.owner_id,
                "created_at": now,
                "updated_at": now,
            }
        )

    async def save_document(self, session: EditingSession) -> None:
        """Persist the current content of a document-backed session."""
        await run_in_threadpool(self._save_document, session)

    def get(self, session_id: str) -> Optional[EditingSession]:
        return self._sessions.get(session_id)

    def list(self, owner_id: Optional[str] = None) -> List[EditingSession]:
        return [s for s in self._sessions.values() if owner_id is None or s.owner_id == owner_id]

    async def close(self, session_id: str) -> Optional[SyncReport]:
        """Tear a session down with a final pass. Returns None if it is unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        report = await session.sync.close()
        await self.save_document(session)
        logger.info("Closed session %s (%d synced, %d failed)", session_id, report.success, report.errors)
        return report

    async def close_all(self) -> None:
        ids = list(self._sessions)
        if ids:
            logger.info("Closing %d open sessions", len(ids))
        results = await asyncio.gather(*(self.close(session_id) for session_id in ids), return_exceptions=True)
        for session_id, result in zip(ids, results):
            if isinstance(result, Exception):
                logger.error("Failed to close session %s: %s", session_id, result)


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    """Process-wide registry built from settings."""
    settings = get_settings()
    return SessionRegistry(
        get_todo_store(),
        SyncConfig.from_settings(settings),
        notification_buffer_size=settings.notification_buffer_size,
        documents=get_document_repository(),
    )
