from __future__ import annotations

from errors import UpstreamError


def _create(client, **payload):
    resp = client.post("/tasks", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_lifespan_initializes_store(client, store) -> None:
    assert store.initialized


def test_create_returns_envelope_with_defaults(client) -> None:
    resp = client.post("/tasks", json={"title": "  Buy milk  ", "description": "  "})

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["error"] is None
    task = body["data"]
    assert task["title"] == "Buy milk"
    assert task["description"] is None
    assert task["status"] == "pending"
    assert task["priority"] == "medium"
    assert task["parent_id"] is None
    assert "subtasks" not in task


def test_create_reports_every_validation_error(client) -> None:
    resp = client.post("/tasks", json={"title": "", "status": "done"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["data"] is None
    assert "title must not be empty" in body["error"]
    assert "status must be one of" in body["error"]


def test_create_with_missing_parent(client) -> None:
    resp = client.post("/tasks", json={"title": "orphan", "parent_id": 42})
    assert resp.status_code == 400
    assert resp.json()["error"] == "parent task does not exist"


def test_malformed_json_is_bad_request(client) -> None:
    resp = client.post("/tasks", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_list_top_level_only(client) -> None:
    root = _create(client, title="root")
    _create(client, title="child", parent_id=root["id"])

    resp = client.get("/tasks", params={"parent_id": "null"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [t["title"] for t in data] == ["root"]
    assert all(t["parent_id"] is None for t in data)


def test_list_ignores_pagination_params(client) -> None:
    for i in range(3):
        _create(client, title=f"task {i}")
    resp = client.get("/tasks", params={"page": 2, "limit": 1})
    assert len(resp.json()["data"]) == 3


def test_list_store_failure_is_500(client, store) -> None:
    store.fail_with = "relation tasks does not exist"
    resp = client.get("/tasks")
    assert resp.status_code == 500
    assert "relation tasks does not exist" in resp.json()["error"]


def test_get_task_includes_subtasks(client) -> None:
    parent = _create(client, title="parent")
    _create(client, title="one", parent_id=parent["id"])
    _create(client, title="two", parent_id=parent["id"])

    resp = client.get(f"/tasks/{parent['id']}")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [t["title"] for t in data["subtasks"]] == ["one", "two"]


def test_get_missing_and_invalid_ids(client) -> None:
    missing = client.get("/tasks/999")
    assert missing.status_code == 404
    assert missing.json()["success"] is False

    for bad in ("abc", "0", "-3"):
        resp = client.get(f"/tasks/{bad}")
        assert resp.status_code == 400
        assert resp.json()["success"] is False


def test_patch_updates_only_supplied_fields(client) -> None:
    task = _create(client, title="write", priority="low")

    resp = client.patch(f"/tasks/{task['id']}", json={"status": "completed"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "completed"
    assert data["priority"] == "low"
    assert data["title"] == "write"


def test_patch_empty_body_is_rejected(client) -> None:
    task = _create(client, title="write")
    resp = client.patch(f"/tasks/{task['id']}", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "no fields to update were provided"


def test_patch_self_parent_fails_regardless_of_other_fields(client) -> None:
    task = _create(client, title="self")
    resp = client.patch(
        f"/tasks/{task['id']}",
        json={"parent_id": task["id"], "title": "renamed", "status": "completed"},
    )
    assert resp.status_code == 400
    assert resp.json()["success"] is False

    unchanged = client.get(f"/tasks/{task['id']}").json()["data"]
    assert unchanged["title"] == "self"


def test_patch_cycle_is_rejected(client) -> None:
    a = _create(client, title="A")
    b = _create(client, title="B", parent_id=a["id"])

    resp = client.patch(f"/tasks/{a['id']}", json={"parent_id": b["id"]})

    assert resp.status_code == 400
    assert "circular" in resp.json()["error"]


def test_patch_missing_task_is_404(client) -> None:
    resp = client.patch("/tasks/77", json={"title": "ghost"})
    assert resp.status_code == 404


def test_patch_can_detach_from_parent(client) -> None:
    a = _create(client, title="A")
    b = _create(client, title="B", parent_id=a["id"])

    resp = client.patch(f"/tasks/{b['id']}", json={"parent_id": None})

    assert resp.status_code == 200
    assert resp.json()["data"]["parent_id"] is None


def test_delete_parent_removes_children(client) -> None:
    parent = _create(client, title="parent")
    child = _create(client, title="child", parent_id=parent["id"])
    leaf = _create(client, title="separate")

    resp = client.delete(f"/tasks/{parent['id']}")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["message"] == "task deleted"
    assert data["deleted"]["id"] == parent["id"]
    assert client.get(f"/tasks/{child['id']}").status_code == 404
    assert client.get(f"/tasks/{leaf['id']}").status_code == 200


def test_delete_missing_and_invalid_ids(client) -> None:
    assert client.delete("/tasks/31").status_code == 404
    assert client.delete("/tasks/x1").status_code == 400


def test_unsupported_method_lists_allowed_methods(client) -> None:
    resp = client.put("/tasks/1", json={"title": "x"})

    assert resp.status_code == 405
    assert resp.json()["success"] is False
    allowed = {m.strip() for m in resp.headers["allow"].split(",")}
    assert {"GET", "PATCH", "DELETE"} <= allowed

    resp = client.delete("/tasks")
    assert resp.status_code == 405
    assert {m.strip() for m in resp.headers["allow"].split(",")} == {"GET", "POST"}


def test_breakdown_route_only_allows_post(client) -> None:
    for method in ("GET", "PATCH", "DELETE", "PUT"):
        resp = client.request(method, "/tasks/breakdown", json={"title": "x"})
        assert resp.status_code == 405, method
        assert resp.json()["success"] is False
        assert resp.headers["allow"] == "POST"


def test_unicode_digit_ids_are_bad_requests(client) -> None:
    assert client.get("/tasks/²").status_code == 400
    assert client.delete("/tasks/²").status_code == 400
    resp = client.post("/tasks/breakdown", json={"taskId": "²"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "taskId must be a positive integer"


def test_breakdown_by_task_id(client, generator) -> None:
    parent = _create(client, title="Launch website")
    generator.next_text = '```json\n["Buy domain", "Design pages", "Deploy", "Announce"]\n```'

    resp = client.post("/tasks/breakdown", json={"taskId": parent["id"]})

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert 3 <= len(data) <= 5
    assert [t["title"] for t in data] == ["Buy domain", "Design pages", "Deploy", "Announce"]
    assert {t["parent_id"] for t in data} == {parent["id"]}

    subtasks = client.get(f"/tasks/{parent['id']}").json()["data"]["subtasks"]
    assert len(subtasks) == 4


def test_breakdown_by_title(client) -> None:
    resp = client.post("/tasks/breakdown", json={"taskTitle": "Learn piano"})
    assert resp.status_code == 201
    assert all(t["parent_id"] is None for t in resp.json()["data"])


def test_breakdown_errors(client, generator) -> None:
    assert client.post("/tasks/breakdown", json={}).status_code == 400
    assert client.post("/tasks/breakdown", json={"taskId": 404}).status_code == 404

    generator.next_text = "no idea"
    assert client.post("/tasks/breakdown", json={"taskTitle": "vague"}).status_code == 400

    generator.error = UpstreamError("LLM call failed: timeout")
    resp = client.post("/tasks/breakdown", json={"taskTitle": "vague"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "LLM call failed: timeout"


def test_breakdown_insert_failure_is_500(client, store) -> None:
    store.fail_with = "insert failed"
    resp = client.post("/tasks/breakdown", json={"taskTitle": "Clean garage"})
    assert resp.status_code == 500
    assert resp.json()["success"] is False
