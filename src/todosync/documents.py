from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from functools import lru_cache
from threading import RLock
from typing import Dict, List, Optional

from .logging_config import get_logger
from .models import DocumentRecord
from .settings import get_settings

logger = get_logger(__name__)

DEFAULT_TITLE = "Untitled"


# PUBLIC_INTERFACE
class DocumentRepository(ABC):
    """Abstract repository contract for the documents table."""

    @abstractmethod
    def get(self, document_id: str) -> Optional[DocumentRecord]:
        """Return a document by id, or None if not found."""

    @abstractmethod
    def save(self, record: DocumentRecord) -> DocumentRecord:
        """
        Insert the document, or overwrite title, content, project_id and
        updated_at of an existing one. created_by and created_at of an
        existing row are kept.
        """

    @abstractmethod
    def list(self, created_by: str) -> List[DocumentRecord]:
        """Return the documents of one user, most recently updated first."""


class InMemoryDocumentRepository(DocumentRepository):
    """Thread-safe in-memory documents repository."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, DocumentRecord] = {}

    def get(self, document_id: str) -> Optional[DocumentRecord]:
        with self._lock:
            item = self._items.get(document_id)
            return None if item is None else copy.deepcopy(item)

    def save(self, record: DocumentRecord) -> DocumentRecord:
        with self._lock:
            stored = copy.deepcopy(record)
            existing = self._items.get(record["id"])
            if existing is not None:
                stored["created_by"] = existing["created_by"]
                stored["created_at"] = existing["created_at"]
            self._items[record["id"]] = stored
            return copy.deepcopy(stored)

    def list(self, created_by: str) -> List[DocumentRecord]:
        with self._lock:
            items = [d for d in self._items.values() if d["created_by"] == created_by]
            items.sort(key=lambda d: d["updated_at"], reverse=True)
            return [copy.deepcopy(d) for d in items]


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_document_repository() -> DocumentRepository:
    """
    Return the process-wide documents repository, on the same backend as the
    todos repository (PERSISTENCE_BACKEND).
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteDocumentRepository

        logger.info("Using SQLite documents repository at %s", settings.sqlite_db_path)
        return SQLiteDocumentRepository(settings.sqlite_db_path)
    return InMemoryDocumentRepository()
