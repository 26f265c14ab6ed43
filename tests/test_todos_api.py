from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from todosync.main import app
from todosync.utils import parse_timestamp

USER = {"X-User-Id": "user-1"}
OTHER_USER = {"X-User-Id": "user-2"}


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        c.headers.update(USER)
        yield c


def create_todo_payload(
    content="Test Task",
    completed=False,
    due_date=None,
    **extra,
):
    payload = {
        "content": content,
        "completed": completed,
    }
    if due_date is not None:
        payload["due_date"] = due_date
    payload.update(extra)
    return payload


def assert_todo_shape(todo: dict):
    # Basic structure validation
    for key in ["id", "content", "completed", "created_by", "created_at", "updated_at"]:
        assert key in todo
    # Optional fields
    for key in ["project_id", "assigned_to", "due_date"]:
        assert key in todo
    assert isinstance(todo["id"], str)
    assert isinstance(todo["content"], str)
    assert isinstance(todo["completed"], bool)
    # Timestamps are ISO8601 strings, UTC serialized with a 'Z' suffix
    parse_timestamp(todo["created_at"])
    parse_timestamp(todo["updated_at"])
    if todo["due_date"] is not None:
        parse_timestamp(todo["due_date"])


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")
        assert data["remote"] in ("local", "postgrest")
        assert isinstance(data["sessions"], int)


class TestIdentity:
    def test_missing_user_header_is_rejected(self, client):
        res = client.get("/api/v1/todos/", headers={"X-User-Id": ""})
        assert res.status_code == 401
        assert res.json()["detail"] == "Missing X-User-Id header"


class TestTodosCRUD:
    def test_create_todo_minimal(self, client):
        res = client.post("/api/v1/todos/", json=create_todo_payload(content="Buy milk"))
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        assert todo["content"] == "Buy milk"
        assert todo["completed"] is False
        assert todo["created_by"] == "user-1"
        assert todo["project_id"] is None

    def test_create_with_client_id_and_duplicate(self, client):
        payload = create_todo_payload(content="Pinned id", id="node-abc", assigned_to="user-7")
        res = client.post("/api/v1/todos/", json=payload)
        assert res.status_code == 201
        assert res.json()["id"] == "node-abc"
        assert res.json()["assigned_to"] == "user-7"

        res_dup = client.post("/api/v1/todos/", json=payload)
        assert res_dup.status_code == 409
        assert res_dup.json()["detail"] == "Todo node-abc already exists"

    def test_create_todo_with_due_date_date_string(self, client):
        payload = create_todo_payload(content="Pay bills", due_date="2099-12-25")
        res = client.post("/api/v1/todos/", json=payload)
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        # Due date should be promoted to midnight
        assert todo["due_date"].startswith("2099-12-25T00:00:00")

    def test_get_todo_and_not_found(self, client):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(content="Read book"))
        assert res_create.status_code == 201
        tid = res_create.json()["id"]

        res_get = client.get(f"/api/v1/todos/{tid}")
        assert res_get.status_code == 200
        fetched = res_get.json()
        assert fetched["id"] == tid
        assert fetched["content"] == "Read book"

        res_404 = client.get("/api/v1/todos/does-not-exist")
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Todo not found"

    def test_put_replace_todo(self, client):
        res_create = client.post(
            "/api/v1/todos/", json=create_todo_payload(content="Initial", project_id="p1")
        )
        assert res_create.status_code == 201
        tid = res_create.json()["id"]

        new_payload = create_todo_payload(content="Replaced", completed=True, due_date="2100-01-01")
        res_put = client.put(f"/api/v1/todos/{tid}", json=new_payload)
        assert res_put.status_code == 200
        updated = res_put.json()
        assert updated["id"] == tid
        assert updated["content"] == "Replaced"
        assert updated["project_id"] is None
        assert updated["completed"] is True
        assert updated["due_date"].startswith("2100-01-01")
        assert parse_timestamp(updated["updated_at"]) >= parse_timestamp(updated["created_at"])

        res_put_nf = client.put("/api/v1/todos/missing", json=new_payload)
        assert res_put_nf.status_code == 404
        assert res_put_nf.json()["detail"] == "Todo not found"

    def test_patch_partial_update(self, client):
        res_create = client.post(
            "/api/v1/todos/", json=create_todo_payload(content="Partial", assigned_to="user-3")
        )
        assert res_create.status_code == 201
        tid = res_create.json()["id"]

        res_patch = client.patch(f"/api/v1/todos/{tid}", json={"content": "Partial Updated", "completed": True})
        assert res_patch.status_code == 200
        patched = res_patch.json()
        assert patched["id"] == tid
        assert patched["content"] == "Partial Updated"
        assert patched["completed"] is True
        # assignee should remain unchanged
        assert patched["assigned_to"] == "user-3"

        res_clear = client.patch(f"/api/v1/todos/{tid}", json={"assigned_to": None})
        assert res_clear.status_code == 200
        assert res_clear.json()["assigned_to"] is None

        res_patch_nf = client.patch("/api/v1/todos/missing", json={"content": "Nope"})
        assert res_patch_nf.status_code == 404
        assert res_patch_nf.json()["detail"] == "Todo not found"

    def test_delete_todo(self, client):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(content="ToDelete"))
        tid = res_create.json()["id"]

        res_del = client.delete(f"/api/v1/todos/{tid}")
        assert res_del.status_code == 204
        assert res_del.text == ""

        res_get = client.get(f"/api/v1/todos/{tid}")
        assert res_get.status_code == 404
        res_del_again = client.delete(f"/api/v1/todos/{tid}")
        assert res_del_again.status_code == 404
        assert res_del_again.json()["detail"] == "Todo not found"


class TestListPaginationFilteringSorting:
    def seed_todos(self, client, count=10, project_id=None):
        base = datetime.now()
        created_ids = []
        for i in range(count):
            due = (base + timedelta(days=i)).date().isoformat()
            payload = create_todo_payload(
                content=f"Task {i}",
                completed=(i % 2 == 0),
                due_date=due,
                project_id=project_id,
            )
            res = client.post("/api/v1/todos/", json=payload)
            assert res.status_code == 201
            created_ids.append(res.json()["id"])
        return created_ids

    def test_list_basic_pagination(self, client):
        self.seed_todos(client, 7)
        res1 = client.get("/api/v1/todos/?limit=3&offset=0")
        assert res1.status_code == 200
        page1 = res1.json()
        assert "items" in page1 and "total" in page1
        assert page1["limit"] == 3
        assert page1["offset"] == 0
        assert len(page1["items"]) == 3
        assert page1["total"] >= 7

        res2 = client.get("/api/v1/todos/?limit=3&offset=3")
        assert res2.status_code == 200
        page2 = res2.json()
        assert page2["offset"] == 3
        assert not {t["id"] for t in page1["items"]} & {t["id"] for t in page2["items"]}

    def test_list_filter_completed_true_false(self, client):
        self.seed_todos(client, 6)

        data_true = client.get("/api/v1/todos/?completed=true&limit=1000").json()
        assert data_true["items"]
        assert all(item["completed"] is True for item in data_true["items"])

        data_false = client.get("/api/v1/todos/?completed=false&limit=1000").json()
        assert data_false["items"]
        assert all(item["completed"] is False for item in data_false["items"])

    def test_list_filter_project(self, client):
        ids = self.seed_todos(client, 3, project_id="project-x")
        data = client.get("/api/v1/todos/?project_id=project-x&limit=1000").json()
        assert sorted(t["id"] for t in data["items"]) == sorted(ids)
        assert data["total"] == 3

    def test_list_mine_only(self, client):
        res = client.post(
            "/api/v1/todos/", json=create_todo_payload(content="Someone else's"), headers=OTHER_USER
        )
        assert res.status_code == 201
        other_id = res.json()["id"]

        mine = client.get("/api/v1/todos/?mine=true&limit=1000").json()["items"]
        assert all(t["created_by"] == "user-1" for t in mine)
        assert other_id not in {t["id"] for t in mine}

        everyone = client.get("/api/v1/todos/?limit=1000").json()["items"]
        assert other_id in {t["id"] for t in everyone}

    def test_list_search_q_matches_content(self, client):
        self.seed_todos(client, 5)
        data = client.get("/api/v1/todos/?q=task 1&limit=1000").json()
        assert data["items"]
        assert all("task 1" in item["content"].lower() for item in data["items"])

    def test_list_sort_and_order(self, client):
        self.seed_todos(client, 5)
        # Default sort is -created_at (desc)
        default_items = client.get("/api/v1/todos/?limit=5").json()["items"]
        created_ts = [parse_timestamp(t["created_at"]) for t in default_items]
        assert created_ts == sorted(created_ts, reverse=True)

        items_asc = client.get("/api/v1/todos/?sort=created_at&limit=5").json()["items"]
        created_ts_asc = [parse_timestamp(t["created_at"]) for t in items_asc]
        assert created_ts_asc == sorted(created_ts_asc)

        items_due = client.get("/api/v1/todos/?sort=due_date&order=asc&limit=1000").json()["items"]
        due = [parse_timestamp(t["due_date"]) for t in items_due if t["due_date"] is not None]
        assert due == sorted(due)
        # todos without a due date come last
        seen_none = False
        for t in items_due:
            if t["due_date"] is None:
                seen_none = True
            else:
                assert not seen_none

    def test_list_invalid_order_param(self, client):
        res = client.get("/api/v1/todos/?order=invalid")
        assert res.status_code == 400
        assert res.json()["detail"] == "order must be 'asc' or 'desc'"


class TestValidationErrors:
    def test_create_validation_error_content_empty(self, client):
        res = client.post("/api/v1/todos/", json={"content": "  "})
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_patch_validation_error_bad_due_date(self, client):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(content="Due date bad"))
        assert res_create.status_code == 201
        tid = res_create.json()["id"]

        res_patch = client.patch(f"/api/v1/todos/{tid}", json={"due_date": "not-a-date"})
        assert res_patch.status_code == 422
        body = res_patch.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)
