import json

import pytest

from notifier.api import create_app
from notifier.model import NotificationTask, TaskStatus


class FakeRepo:
    def __init__(self, error=None):
        self.error = error
        self.calls = []
        self.created = []
        self.tasks = {}
        self.list_result = ([], 0)

    def create(self, task):
        self.calls.append(("create",))
        if self.error:
            raise self.error
        task.id = 123
        self.created.append(task)
        return task

    def reset_to_retry(self, task_id):
        self.calls.append(("reset_to_retry", task_id))
        if self.error:
            raise self.error

    def list_by_status(self, status, page, page_size):
        self.calls.append(("list_by_status", status, page, page_size))
        if self.error:
            raise self.error
        return self.list_result

    def get_by_id(self, task_id):
        self.calls.append(("get_by_id", task_id))
        if self.error:
            raise self.error
        return self.tasks[task_id]


def client_for(repo):
    return create_app(repo).test_client()


def post_json(client, payload):
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return client.post(
        "/api/v1/notifications", data=data, content_type="application/json"
    )


# --- submit -----------------------------------------------------------------


def test_submit_invalid_json():
    repo = FakeRepo()
    resp = post_json(client_for(repo), "invalid json")
    assert resp.status_code == 400
    assert "error" in resp.get_json()
    assert repo.calls == []


def test_submit_missing_required_fields():
    repo = FakeRepo()
    payload = {
        "target_url": "",
        "http_method": "POST",
        "headers": None,
        "body": "",
        "source_system": "",
        "trace_id": "",
        "max_retries": 0,
    }
    resp = post_json(client_for(repo), payload)
    assert resp.status_code == 400
    assert repo.calls == []


def test_submit_repo_create_error():
    repo = FakeRepo(error=RuntimeError("db error"))
    resp = post_json(
        client_for(repo), {"target_url": "http://example.com", "http_method": "POST"}
    )
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "failed to save task"}


def test_submit_success():
    repo = FakeRepo()
    resp = post_json(
        client_for(repo), {"target_url": "http://example.com", "http_method": "POST"}
    )
    assert resp.status_code == 202
    assert resp.get_json() == {"task_id": 123}


def test_submit_builds_task_from_request():
    repo = FakeRepo()
    payload = {
        "target_url": "http://example.com/hook",
        "http_method": "PUT",
        "headers": {"X-B": "2", "Authorization": "Bearer token"},
        "body": '{"k":"v"}',
        "source_system": "billing",
        "trace_id": "trace-123",
        "max_retries": 5,
    }
    resp = post_json(client_for(repo), payload)
    assert resp.status_code == 202
    (task,) = repo.created
    assert task.target_url == "http://example.com/hook"
    assert task.http_method == "PUT"
    assert json.loads(task.headers) == payload["headers"]
    assert task.body == '{"k":"v"}'
    assert task.source_system == "billing"
    assert task.trace_id == "trace-123"
    assert task.max_retries == 5


@pytest.mark.parametrize("max_retries", [0, -2, None])
def test_submit_defaults_max_retries(max_retries):
    repo = FakeRepo()
    payload = {"target_url": "http://example.com", "http_method": "POST"}
    if max_retries is not None:
        payload["max_retries"] = max_retries
    post_json(client_for(repo), payload)
    assert repo.created[0].max_retries == 3
    assert repo.created[0].headers == ""


@pytest.mark.parametrize(
    "payload",
    [
        {"target_url": "http://example.com", "http_method": "GET"},
        {"target_url": "not a url", "http_method": "POST"},
        {"target_url": "http://example.com"},
        {"target_url": "http://example.com", "http_method": "POST", "headers": ["a"]},
        {"target_url": "http://example.com", "http_method": "POST", "max_retries": "3"},
        [1, 2],
    ],
)
def test_submit_rejects_invalid_payloads(payload):
    repo = FakeRepo()
    resp = post_json(client_for(repo), payload)
    assert resp.status_code == 400
    assert repo.calls == []


# --- manual retry -------------------------------------------------------------


def test_manual_retry_invalid_task_id():
    repo = FakeRepo()
    resp = client_for(repo).post("/api/v1/notifications/abc/retry")
    assert resp.status_code == 400
    assert repo.calls == []


def test_manual_retry_repo_error():
    repo = FakeRepo(error=RuntimeError("db error"))
    resp = client_for(repo).post("/api/v1/notifications/123/retry")
    assert resp.status_code == 404
    assert repo.calls == [("reset_to_retry", 123)]


def test_manual_retry_success():
    repo = FakeRepo()
    resp = client_for(repo).post("/api/v1/notifications/123/retry")
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "task reset to PENDING"}
    assert repo.calls == [("reset_to_retry", 123)]


# --- list --------------------------------------------------------------------


def test_list_tasks_default_pagination():
    repo = FakeRepo()
    resp = client_for(repo).get("/api/v1/notifications")
    assert resp.status_code == 200
    assert repo.calls == [("list_by_status", "", 1, 20)]


def test_list_tasks_with_status_and_pagination():
    repo = FakeRepo()
    resp = client_for(repo).get("/api/v1/notifications?status=FAILED&page=2&page_size=10")
    assert resp.status_code == 200
    assert repo.calls == [("list_by_status", "FAILED", 2, 10)]
    body = resp.get_json()
    assert body["page"] == 2
    assert body["page_size"] == 10


def test_list_tasks_repo_error():
    repo = FakeRepo(error=RuntimeError("db error"))
    resp = client_for(repo).get("/api/v1/notifications")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "db error"}


@pytest.mark.parametrize(
    "query", ["?page=-1&page_size=500", "?page=x&page_size=0", "?page=&page_size=abc"]
)
def test_list_tasks_clamps_pagination(query):
    repo = FakeRepo()
    client_for(repo).get("/api/v1/notifications" + query)
    assert repo.calls == [("list_by_status", "", 1, 20)]


def test_list_tasks_returns_tasks_and_total():
    repo = FakeRepo()
    repo.list_result = ([NotificationTask(id=1, status=TaskStatus.FAILED)], 7)
    body = client_for(repo).get("/api/v1/notifications?status=FAILED").get_json()
    assert body["total"] == 7
    assert [t["id"] for t in body["tasks"]] == [1]
    assert body["tasks"][0]["status"] == "FAILED"


# --- get ---------------------------------------------------------------------


def test_get_task_invalid_task_id():
    repo = FakeRepo()
    resp = client_for(repo).get("/api/v1/notifications/abc")
    assert resp.status_code == 400
    assert repo.calls == []


def test_get_task_repo_error():
    repo = FakeRepo(error=RuntimeError("db error"))
    resp = client_for(repo).get("/api/v1/notifications/123")
    assert resp.status_code == 404
    assert repo.calls == [("get_by_id", 123)]


def test_get_task_success():
    repo = FakeRepo()
    repo.tasks[123] = NotificationTask(id=123)
    resp = client_for(repo).get("/api/v1/notifications/123")
    assert resp.status_code == 200
    assert resp.get_json()["id"] == 123


# --- routes ------------------------------------------------------------------


@pytest.mark.parametrize(
    "method, path",
    [
        ("POST", "/api/v1/notifications"),
        ("POST", "/api/v1/notifications/1/retry"),
        ("GET", "/api/v1/notifications"),
        ("GET", "/api/v1/notifications/1"),
    ],
)
def test_register_routes(method, path):
    repo = FakeRepo()
    repo.tasks[1] = NotificationTask(id=1)
    resp = client_for(repo).open(path, method=method)
    assert resp.status_code != 404
    assert resp.status_code in (200, 202, 400)


def test_unknown_route_is_not_found():
    resp = client_for(FakeRepo()).get("/api/v2/notifications")
    assert resp.status_code == 404