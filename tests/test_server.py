import asyncio

import pytest
from fastapi.testclient import TestClient

from liteflow import Liteflow
from liteflow.server import create_app

AUTH = ("admin", "secret")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "api.db"


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("LITEFLOW_AUTH_USERNAME", AUTH[0])
    monkeypatch.setenv("LITEFLOW_AUTH_PASSWORD", AUTH[1])


def _client(db_path) -> TestClient:
    return TestClient(create_app(Liteflow(str(db_path), batch_delay=30)))


@pytest.fixture
def client(db_path, credentials):
    with _client(db_path) as test_client:
        yield test_client


def _reopen(db_path, fn):
    async def run():
        async with Liteflow(str(db_path)) as lf:
            return await fn(lf)

    return asyncio.run(run())


def test_requests_without_credentials_are_rejected(client):
    assert client.get("/stats").status_code == 401
    assert client.get("/stats", auth=("admin", "wrong")).status_code == 401


def test_missing_server_credentials_reject_everyone(db_path, monkeypatch):
    monkeypatch.delenv("LITEFLOW_AUTH_USERNAME", raising=False)
    monkeypatch.delenv("LITEFLOW_AUTH_PASSWORD", raising=False)
    with TestClient(create_app(Liteflow(str(db_path)))) as test_client:
        assert test_client.get("/stats", auth=AUTH).status_code == 401


def test_create_workflow(client):
    response = client.post(
        "/workflows",
        json={"name": "checkout", "identifiers": [{"key": "order", "value": "1"}]},
        auth=AUTH,
    )

    assert response.status_code == 201
    workflow_id = response.json()["id"]

    listing = client.get("/workflows", auth=AUTH).json()
    assert listing["total"] == 1
    assert listing["workflows"][0]["id"] == workflow_id
    assert listing["workflows"][0]["identifiers"] == [{"key": "order", "value": "1"}]


def test_create_workflow_requires_name_and_identifiers(client):
    assert client.post("/workflows", json={"name": "x"}, auth=AUTH).status_code == 400
    assert (
        client.post("/workflows", json={"identifiers": []}, auth=AUTH).status_code == 400
    )


def test_steps_and_completion_are_persisted(db_path, credentials):
    # closing the client shuts the tracker down, flushing its buffer
    with _client(db_path) as client:
        workflow_id = client.post(
            "/workflows", json={"name": "w", "identifiers": []}, auth=AUTH
        ).json()["id"]

        step = client.post(
            f"/workflows/{workflow_id}/steps", json={"step": "s1", "data": {"n": 1}}, auth=AUTH
        )
        assert step.status_code == 201
        missing = client.post(f"/workflows/{workflow_id}/steps", json={}, auth=AUTH)
        assert missing.status_code == 400
        assert client.put(f"/workflows/{workflow_id}/complete", auth=AUTH).status_code == 200

    async def read(lf):
        return await lf.get_workflow(workflow_id), await lf.get_steps(workflow_id)

    workflow, steps = _reopen(db_path, read)
    assert workflow.status == "completed"
    assert [(s.step, s.data) for s in steps] == [("s1", {"n": 1})]


def test_fail_with_and_without_reason(db_path, credentials):
    with _client(db_path) as client:
        body = {"identifiers": []}
        first = client.post("/workflows", json={"name": "a", **body}, auth=AUTH).json()["id"]
        second = client.post("/workflows", json={"name": "b", **body}, auth=AUTH).json()["id"]

        failed = client.put(f"/workflows/{first}/fail", json={"reason": "boom"}, auth=AUTH)
        assert failed.status_code == 200
        assert client.put(f"/workflows/{second}/fail", auth=AUTH).status_code == 200

    async def read(lf):
        return await lf.get_workflows(status="failed")

    assert _reopen(db_path, read).total == 2


def test_delete_workflow(client):
    workflow_id = client.post(
        "/workflows", json={"name": "w", "identifiers": []}, auth=AUTH
    ).json()["id"]

    assert client.delete(f"/workflows/{workflow_id}", auth=AUTH).status_code == 200
    assert client.delete(f"/workflows/{workflow_id}", auth=AUTH).status_code == 404


def test_stats(client):
    for name in ("a", "b"):
        client.post("/workflows", json={"name": name, "identifiers": []}, auth=AUTH)

    body = client.get("/stats", auth=AUTH).json()
    assert body == {"total": 2, "completed": 0, "pending": 2, "avg_steps": 0.0, "failed": 0}


def test_list_pagination_and_validation(client):
    for i in range(5):
        client.post("/workflows", json={"name": f"w{i}", "identifiers": []}, auth=AUTH)

    page = client.get("/workflows", params={"page": 2, "pageSize": 2}, auth=AUTH).json()
    assert (page["page"], page["page_size"], page["total"], page["total_pages"]) == (2, 2, 5, 3)
    assert len(page["workflows"]) == 2

    assert client.get("/workflows", params={"orderBy": "name"}, auth=AUTH).status_code == 422
    assert client.get("/workflows", params={"status": "bogus"}, auth=AUTH).status_code == 422
