from datetime import datetime, timezone

from todosync.changes import diff_todo, has_changed
from todosync.models import TodoNode


def record(**overrides):
    base = {
        "id": "t1",
        "content": "Buy milk",
        "completed": False,
        "project_id": None,
        "assigned_to": None,
        "due_date": None,
        "created_by": "owner",
        "created_at": datetime(2025, 1, 10, tzinfo=timezone.utc),
        "updated_at": datetime(2025, 1, 10, tzinfo=timezone.utc),
    }
    base.update(overrides)
    return base


def node(**overrides):
    base = dict(id="t1", content="Buy milk", completed=False)
    base.update(overrides)
    return TodoNode(**base)


class TestChangeDetector:
    def test_identical_is_unchanged(self):
        assert not has_changed(record(), node())

    def test_only_changed_field_is_reported(self):
        assert diff_todo(record(), node(completed=True)) == {"completed": True}

    def test_updated_at_is_ignored(self):
        later = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert not has_changed(record(updated_at=later), node(updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc)))
        assert not has_changed(record(), node(), fields=("content", "updated_at"))

    def test_due_date_string_and_datetime_compare_equal(self):
        due = datetime(2025, 2, 1, 12, tzinfo=timezone.utc)
        assert not has_changed(record(due_date="2025-02-01T12:00:00Z"), node(due_date=due))
        assert has_changed(record(due_date="2025-02-02T12:00:00Z"), node(due_date=due))

    def test_empty_string_ids_equal_none(self):
        assert not has_changed(record(project_id="", assigned_to=""), node())

    def test_restricted_field_set(self):
        assert not has_changed(record(content="Other"), node(), fields=("completed",))
        assert diff_todo(record(content="Other", assigned_to="u1"), node()) == {
            "content": "Buy milk",
            "assigned_to": None,
        }
