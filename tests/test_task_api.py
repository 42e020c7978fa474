"""Tests for the task hierarchy HTTP API."""

from __future__ import annotations

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from task_hierarchy.server import create_app
from task_hierarchy.service import TaskService
from task_hierarchy.storage import InMemoryTaskRepository

JAN_1 = "2024-01-01T00:00:00+00:00"


@pytest.fixture
def app(tmp_path: Path):
    """Create a test app with a temp project directory."""
    project_dir = tmp_path / "test_project"
    project_dir.mkdir()
    return create_app(project_dir=project_dir, enable_cors=False, user_id="tester")


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create(client: AsyncClient, **body) -> dict:
    resp = await client.post("/api/tasks", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["task"]


@pytest.mark.anyio
class TestTaskCRUD:
    async def test_root(self, client: AsyncClient) -> None:
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "running"

    async def test_list_empty(self, client: AsyncClient) -> None:
        resp = await client.get("/api/tasks")
        assert resp.status_code == 200
        assert resp.json() == {"tasks": [], "total": 0}

    async def test_create_and_get(self, client: AsyncClient) -> None:
        project = await _create(client, title="Project", start_date=JAN_1)
        a = await _create(client, title="A", parent_task_id=project["id"], duration_days=2)
        await _create(client, title="B", parent_task_id=project["id"], duration_days=3)

        resp = await client.get(f"/api/tasks/{project['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["task"]["due_date"] == "2024-01-06T00:00:00+00:00"
        assert data["task"]["duration_days"] == 5
        assert [c["id"] for c in data["children"]][0] == a["id"]
        assert a["creator"] == "tester"

    async def test_get_missing(self, client: AsyncClient) -> None:
        resp = await client.get("/api/tasks/nope")
        assert resp.status_code == 404

    async def test_create_errors(self, client: AsyncClient) -> None:
        resp = await client.post("/api/tasks", json={"title": "x", "parent_task_id": "ghost"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "NotFound"

        resp = await client.post("/api/tasks", json={"title": "x", "start_date": "someday"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "InvalidDate"

    async def test_update(self, client: AsyncClient) -> None:
        project = await _create(client, title="Project", start_date=JAN_1)
        a = await _create(client, title="A", parent_task_id=project["id"], duration_days=2)
        resp = await client.patch(f"/api/tasks/{a['id']}", json={"duration_days": 4, "is_complete": True})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["task"]["due_date"] == "2024-01-05T00:00:00+00:00"

    async def test_delete(self, client: AsyncClient) -> None:
        project = await _create(client, title="Project", start_date=JAN_1)
        await _create(client, title="A", parent_task_id=project["id"], duration_days=2)
        resp = await client.delete(f"/api/tasks/{project['id']}")
        assert resp.status_code == 200
        assert len(resp.json()["data"]["deleted_ids"]) == 2
        resp = await client.get("/api/tasks")
        assert resp.json()["total"] == 0

    async def test_list_filters(self, client: AsyncClient) -> None:
        await _create(client, title="Project", start_date=JAN_1)
        await _create(client, title="Template", origin="template")
        resp = await client.get("/api/tasks", params={"origin": "template"})
        assert [t["title"] for t in resp.json()["tasks"]] == ["Template"]
        resp = await client.get("/api/tasks", params={"origin": "bogus"})
        assert resp.status_code == 400


@pytest.mark.anyio
class TestHierarchyEndpoints:
    async def test_move(self, client: AsyncClient) -> None:
        project = await _create(client, title="Project", start_date=JAN_1)
        a = await _create(client, title="A", parent_task_id=project["id"], duration_days=2)
        b = await _create(client, title="B", parent_task_id=project["id"], duration_days=3)
        resp = await client.post(f"/api/tasks/{b['id']}/move", json={"parent_task_id": project["id"], "index": 0})
        assert resp.status_code == 200
        resp = await client.get(f"/api/tasks/{project['id']}")
        assert [c["id"] for c in resp.json()["children"]] == [b["id"], a["id"]]

    async def test_move_into_descendant(self, client: AsyncClient) -> None:
        project = await _create(client, title="Project", start_date=JAN_1)
        a = await _create(client, title="A", parent_task_id=project["id"])
        resp = await client.post(f"/api/tasks/{project['id']}/move", json={"parent_task_id": a["id"]})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "InvalidHierarchy"

    async def test_start_date(self, client: AsyncClient) -> None:
        project = await _create(client, title="Project", start_date=JAN_1)
        resp = await client.post(f"/api/tasks/{project['id']}/start-date", json={"start_date": "2024-02-01"})
        assert resp.status_code == 200
        assert resp.json()["data"]["task"]["start_date"] == "2024-02-01T00:00:00+00:00"

    async def test_clone_template(self, client: AsyncClient) -> None:
        template = await _create(client, title="Template", origin="template")
        await _create(client, title="T1", parent_task_id=template["id"], default_duration=1)
        await _create(client, title="T2", parent_task_id=template["id"], default_duration=4)
        resp = await client.post(
            f"/api/tasks/templates/{template['id']}/clone",
            json={"start_date": "2024-03-01", "title": "Launch"},
        )
        assert resp.status_code == 201
        task = resp.json()["data"]["task"]
        assert task["origin"] == "instance"
        assert task["title"] == "Launch"
        assert task["due_date"] == "2024-03-06T00:00:00+00:00"

    async def test_refresh_and_check(self, client: AsyncClient) -> None:
        await _create(client, title="Project", start_date=JAN_1)
        resp = await client.post("/api/tasks/refresh")
        assert resp.json() == {"success": True, "total": 1}
        resp = await client.get("/api/tasks/check")
        assert resp.json() == {"ok": True, "problems": []}


@pytest.mark.anyio
async def test_injected_service() -> None:
    service = TaskService(InMemoryTaskRepository(), user_id="svc")
    app = create_app(enable_cors=False, service=service)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post("/api/tasks", json={"title": "Project", "start_date": JAN_1})
        assert resp.status_code == 201
    assert len(service.tree) == 1
