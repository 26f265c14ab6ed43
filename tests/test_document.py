from datetime import datetime, timezone

import pytest

from todosync.document import EditorDocument, find_todos, iter_nodes, node_text
from todosync.errors import DocumentError


class TestFindTodos:
    def test_extracts_todos_in_document_order(self, make_doc, make_todo):
        document = make_doc(
            {"type": "paragraph", "content": [{"type": "text", "text": "Notes"}]},
            make_todo("t1", "First"),
            {"type": "blockquote", "content": [make_todo("t2", "Nested")]},
            make_todo("t3", "Last"),
        )
        todos = find_todos(document)
        assert [t.id for t in todos] == ["t1", "t2", "t3"]
        assert [t.content for t in todos] == ["First", "Nested", "Last"]

    def test_content_skips_non_text_children(self, make_doc):
        node = {
            "type": "todo",
            "attrs": {"id": "t1", "createdAt": "2025-01-10T09:00:00Z"},
            "content": [
                {"type": "text", "text": "Call "},
                {"type": "mention", "attrs": {"id": "u1", "label": "Ada"}},
                {"type": "text", "text": "tomorrow"},
            ],
        }
        assert node_text(node) == "Call tomorrow"
        (todo,) = find_todos(make_doc(node))
        assert todo.content == "Call tomorrow"

    def test_maps_attributes(self, make_doc, make_todo):
        document = make_doc(
            make_todo(
                "t1",
                "Ship it",
                completed=True,
                assignedTo="u2",
                projectId="p1",
                dueDate="2025-03-01",
                updatedAt="2025-01-11T10:00:00Z",
            )
        )
        (todo,) = find_todos(document)
        assert todo.completed is True
        assert todo.assigned_to == "u2"
        assert todo.project_id == "p1"
        assert todo.due_date == datetime(2025, 3, 1, tzinfo=timezone.utc)
        assert todo.created_at == datetime(2025, 1, 10, 9, tzinfo=timezone.utc)
        assert todo.updated_at == datetime(2025, 1, 11, 10, tzinfo=timezone.utc)

    def test_generated_id_is_written_back(self, make_doc, make_todo):
        document = make_doc(make_todo(None, "No id yet"))
        first = find_todos(document)
        second = find_todos(document)
        assert first[0].id
        assert first[0].id == second[0].id
        assert document["content"][0]["attrs"]["id"] == first[0].id

    def test_no_write_back_when_disabled(self, make_doc, make_todo):
        document = make_doc(make_todo(None, "No id yet"))
        find_todos(document, assign_ids=False)
        assert "id" not in document["content"][0]["attrs"]

    def test_duplicate_ids_are_reassigned(self, make_doc, make_todo):
        document = make_doc(make_todo("t1", "Original"), make_todo("t1", "Pasted copy"))
        ids = [t.id for t in find_todos(document)]
        assert ids[0] == "t1"
        assert ids[1] != "t1"
        assert document["content"][1]["attrs"]["id"] == ids[1]

    def test_missing_created_at_is_stamped(self, make_doc, make_todo):
        document = make_doc(make_todo("t1", "Fresh", createdAt=None))
        (todo,) = find_todos(document)
        assert todo.created_at is not None
        assert document["content"][0]["attrs"]["createdAt"] is not None

    def test_invalid_due_date_raises(self, make_doc, make_todo):
        with pytest.raises(DocumentError):
            find_todos(make_doc(make_todo("t1", "Bad", dueDate="next tuesday")))

    def test_malformed_content_raises(self):
        with pytest.raises(DocumentError):
            list(iter_nodes({"type": "doc", "content": "oops"}))


class TestEditorDocument:
    def test_replace_notifies_listeners(self, make_doc, make_todo):
        document = EditorDocument()
        seen = []
        unsubscribe = document.on_change(lambda d: seen.append(d.version))

        document.replace(make_doc(make_todo("t1", "A")))
        unsubscribe()
        document.replace(make_doc(make_todo("t1", "B")))

        assert seen == [1]
        assert document.version == 2
        assert [t.content for t in document.todos()] == ["B"]

    def test_replace_rejects_malformed_document(self):
        document = EditorDocument()
        with pytest.raises(DocumentError):
            document.replace({"content": []})
        assert document.version == 0

    def test_content_is_a_copy(self, make_doc, make_todo):
        document = EditorDocument(make_doc(make_todo("t1", "A")))
        snapshot = document.content
        snapshot["content"].clear()
        assert len(document.todos()) == 1

    def test_update_todo_applies_changes(self, make_doc, make_todo):
        document = EditorDocument(make_doc(make_todo("t1", "Old text")))
        calls = []
        document.on_change(lambda d: calls.append(True))

        assert document.update_todo("t1", {"completed": True, "assignedTo": "u9", "content": "New text"})

        todo = document.get_todo("t1")
        assert todo.completed is True
        assert todo.assigned_to == "u9"
        assert todo.content == "New text"
        assert todo.updated_at is not None
        assert calls == [True]

    def test_update_todo_unknown_id(self, make_doc, make_todo):
        document = EditorDocument(make_doc(make_todo("t1", "A")))
        assert document.update_todo("nope", {"completed": True}) is False
        assert document.version == 0

    def test_update_todo_rejects_unknown_attributes(self, make_doc, make_todo):
        document = EditorDocument(make_doc(make_todo("t1", "A")))
        with pytest.raises(DocumentError):
            document.update_todo("t1", {"id": "other"})

    def test_update_todo_matches_numeric_node_id(self, make_doc, make_todo):
        document = EditorDocument(make_doc(make_todo(5, "Numbered")))
        assert document.update_todo("5", {"completed": True}) is True
        todo = document.get_todo("5")
        assert todo.completed is True
        assert document.version == 1
