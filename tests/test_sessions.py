from datetime import datetime, timezone

import pytest

from todosync.db import SQLiteDocumentRepository
from todosync.documents import InMemoryDocumentRepository
from todosync.errors import DocumentAccessError, ErrorType, RemoteStoreError
from todosync.scheduler import SyncConfig
from todosync.sessions import SessionRegistry

CREATED = datetime(2025, 1, 10, tzinfo=timezone.utc)


def quiet_config() -> SyncConfig:
    return SyncConfig(
        debounce_seconds=0.0,
        retry_delay_seconds=0.01,
        interval_seconds=0.0,
        initial_delay_seconds=-1.0,
    )


def untracked_todo(text):
    return {"type": "todo", "attrs": {"completed": False}, "content": [{"type": "text", "text": text}]}


@pytest.fixture(params=["memory", "sqlite"])
def documents(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteDocumentRepository(str(tmp_path / "todos.db"))
    return InMemoryDocumentRepository()


class TestDocumentRepository:
    def record(self, **overrides):
        base = {
            "id": "doc-1",
            "title": "Plan",
            "content": {"type": "doc", "content": [untracked_todo("A")]},
            "project_id": None,
            "created_by": "owner-1",
            "created_at": CREATED,
            "updated_at": CREATED,
        }
        base.update(overrides)
        return base

    def test_save_and_get(self, documents):
        documents.save(self.record())
        stored = documents.get("doc-1")
        assert stored["title"] == "Plan"
        assert stored["content"]["content"][0]["content"][0]["text"] == "A"
        assert stored["created_at"] == CREATED
        assert documents.get("missing") is None

    def test_save_overwrites_content_but_keeps_owner(self, documents):
        documents.save(self.record())
        later = datetime(2025, 2, 1, tzinfo=timezone.utc)
        documents.save(self.record(title="Plan v2", created_by="intruder", created_at=later, updated_at=later))

        stored = documents.get("doc-1")
        assert stored["title"] == "Plan v2"
        assert stored["created_by"] == "owner-1"
        assert stored["created_at"] == CREATED
        assert stored["updated_at"] == later

    def test_list_by_owner_newest_first(self, documents):
        documents.save(self.record(id="old"))
        documents.save(self.record(id="new", updated_at=datetime(2025, 3, 1, tzinfo=timezone.utc)))
        documents.save(self.record(id="theirs", created_by="owner-2"))
        assert [d["id"] for d in documents.list("owner-1")] == ["new", "old"]


@pytest.mark.asyncio
async def test_reopened_document_causes_no_new_inserts(store):
    registry = SessionRegistry(store, quiet_config(), documents=InMemoryDocumentRepository())

    first = registry.open("owner-1", {"type": "doc", "content": [untracked_todo("Keep me")]}, document_id="doc-1")
    await registry.close(first.id)
    inserts = [c for c in store.writes() if c[0] == "insert"]
    assert len(inserts) == 1

    second = registry.open("owner-1", document_id="doc-1")
    report = await second.sync.request_sync()
    await registry.close(second.id)

    assert report.unchanged == 1
    assert [c for c in store.writes() if c[0] == "insert"] == inserts
    assert [t.id for t in second.document.todos()] == [inserts[0][1]["id"]]


@pytest.mark.asyncio
async def test_open_without_document_id_is_not_persisted(store):
    documents = InMemoryDocumentRepository()
    registry = SessionRegistry(store, quiet_config(), documents=documents)
    session = registry.open("owner-1", {"type": "doc", "content": [untracked_todo("Scratch")]})
    await registry.close(session.id)
    assert documents.list("owner-1") == []


@pytest.mark.asyncio
async def test_document_of_another_owner_is_refused(store):
    registry = SessionRegistry(store, quiet_config(), documents=InMemoryDocumentRepository())
    session = registry.open("owner-1", document_id="doc-1")
    await registry.close(session.id)

    with pytest.raises(DocumentAccessError):
        registry.open("owner-2", document_id="doc-1")
    assert len(registry) == 0


class FailingDocuments(InMemoryDocumentRepository):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, record):
        if self.fail:
            raise RemoteStoreError("disk full", error_type=ErrorType.DATA_UPDATE)
        return super().save(record)


@pytest.mark.asyncio
async def test_close_all_keeps_going_after_a_failed_close(store):
    documents = FailingDocuments()
    registry = SessionRegistry(store, quiet_config(), documents=documents)
    registry.open("owner-1", document_id="doc-1")
    registry.open("owner-1", {"type": "doc", "content": [untracked_todo("Other")]})
    documents.fail = True

    await registry.close_all()

    assert len(registry) == 0
    assert "insert" in {c[0] for c in store.calls}
