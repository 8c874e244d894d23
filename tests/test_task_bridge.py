"""Task bridge tools against a fake Kanban backend."""
from __future__ import annotations

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

import pytest

from kanban_pm.engine.errors import BackendError
from kanban_pm.engine.mcp_server.task_bridge import (
    BackendClient,
    TaskBridge,
    calculate_progress,
    is_duplicate_title,
)

PROJECT = "11111111-2222-3333-4444-555555555555"


def _ok(data=None) -> web.Response:
    return web.json_response({"success": True, "data": data, "message": None})


class _FakeBackend:
    """In-memory stand-in for the Kanban REST API."""

    def __init__(self) -> None:
        self.tasks: dict[str, dict] = {
            "t1": {"id": "t1", "project_id": PROJECT, "title": "Set up CI pipeline", "status": "done"},
            "t2": {"id": "t2", "project_id": PROJECT, "title": "Write login page", "status": "inprogress"},
            "t3": {"id": "t3", "project_id": PROJECT, "title": "Design schema", "status": "todo"},
            "t4": {"id": "t4", "project_id": PROJECT, "title": "Deploy", "status": "done"},
        }
        self.pm_docs: str | None = "# Roadmap"
        self.requests: list[tuple[str, str, dict | None]] = []
        self.fail_project_listing = False
        self._next_id = 100

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/tasks", self.list_tasks)
        app.router.add_post("/api/tasks", self.create_task)
        app.router.add_get("/api/tasks/{task_id}", self.get_task)
        app.router.add_put("/api/tasks/{task_id}", self.update_task)
        app.router.add_delete("/api/tasks/{task_id}", self.delete_task)
        app.router.add_put("/api/tasks/{task_id}/dependencies", self.set_dependencies)
        app.router.add_get("/api/projects/{project_id}", self.get_project)
        app.router.add_get("/api/projects/{project_id}/tasks", self.project_tasks)
        app.router.add_put("/api/projects/{project_id}/pm-chat/docs", self.put_docs)
        return app

    async def _record(self, request: web.Request) -> dict | None:
        body = await request.json() if request.can_read_body else None
        self.requests.append((request.method, request.path, body))
        return body

    async def list_tasks(self, request: web.Request) -> web.Response:
        await self._record(request)
        project_id = request.query.get("project_id")
        return _ok([t for t in self.tasks.values() if t["project_id"] == project_id])

    async def project_tasks(self, request: web.Request) -> web.Response:
        await self._record(request)
        if self.fail_project_listing:
            return web.json_response({"success": False, "data": None, "message": "boom"})
        return _ok(list(self.tasks.values()))

    async def create_task(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        self._next_id += 1
        task = {"id": f"t{self._next_id}", "status": "todo", **body}
        self.tasks[task["id"]] = task
        return _ok(task)

    async def get_task(self, request: web.Request) -> web.Response:
        await self._record(request)
        task = self.tasks.get(request.match_info["task_id"])
        if task is None:
            return web.json_response(
                {"success": False, "data": None, "message": "Task not found"}, status=404,
            )
        return _ok(task)

    async def update_task(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        task = self.tasks[request.match_info["task_id"]]
        task.update(body)
        return _ok(task)

    async def delete_task(self, request: web.Request) -> web.Response:
        await self._record(request)
        self.tasks.pop(request.match_info["task_id"], None)
        return _ok()

    async def set_dependencies(self, request: web.Request) -> web.Response:
        await self._record(request)
        return _ok()

    async def get_project(self, request: web.Request) -> web.Response:
        await self._record(request)
        return _ok({"id": request.match_info["project_id"], "name": "Demo", "pm_docs": self.pm_docs})

    async def put_docs(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        self.pm_docs = body["pm_docs"]
        return _ok({"id": request.match_info["project_id"], "pm_docs": self.pm_docs})


class TestTaskBridge(AioHTTPTestCase):
    async def get_application(self):
        self.backend = _FakeBackend()
        return self.backend.app()

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.backend_client = BackendClient(str(self.server.make_url("")))
        self.bridge = TaskBridge(self.backend_client)

    async def asyncTearDown(self):
        await self.backend_client.close()
        await super().asyncTearDown()

    async def test_list_tasks_filters_and_limits(self):
        result = await self.bridge.list_tasks(PROJECT, status="done", limit=1)
        assert result["count"] == 1
        assert result["tasks"][0]["id"] == "t1"
        assert result["applied_filters"] == {"status": "done", "limit": 1}

        everything = await self.bridge.list_tasks(PROJECT)
        assert everything["count"] == 4
        assert everything["applied_filters"]["limit"] == 50

    async def test_list_tasks_rejects_unknown_status(self):
        with pytest.raises(ValueError, match="Invalid status"):
            await self.bridge.list_tasks(PROJECT, status="blocked")

    async def test_get_task_and_missing_task(self):
        result = await self.bridge.get_task("t2")
        assert result["task"]["title"] == "Write login page"

        with pytest.raises(BackendError, match="404"):
            await self.bridge.get_task("nope")

    async def test_create_task_with_dependencies_and_labels(self):
        result = await self.bridge.create_task(
            PROJECT, "Add logout button",
            description="Top right corner",
            priority="HIGH",
            depends_on=["t2"],
            label_ids=["lbl-ui"],
        )
        assert result["is_new"] is True
        assert result["message"] == "Created new task: 'Add logout button'"
        task_id = result["task_id"]

        calls = [(m, p) for m, p, _ in self.backend.requests]
        assert ("POST", "/api/tasks") in calls
        assert ("PUT", f"/api/tasks/{task_id}/dependencies") in calls
        assert ("PUT", f"/api/tasks/{task_id}") in calls
        bodies = {(m, p): b for m, p, b in self.backend.requests}
        assert bodies[("POST", "/api/tasks")]["priority"] == "high"
        assert bodies[("PUT", f"/api/tasks/{task_id}/dependencies")] == {"dependency_ids": ["t2"]}
        assert bodies[("PUT", f"/api/tasks/{task_id}")] == {"label_ids": ["lbl-ui"]}

    async def test_create_task_returns_duplicate(self):
        result = await self.bridge.create_task(PROJECT, "login page", check_duplicate=True)
        assert result == {
            "task_id": "t2",
            "is_new": False,
            "message": (
                "Found existing similar task: 'Write login page'. "
                "Returning existing task instead of creating duplicate."
            ),
        }
        assert not any(m == "POST" for m, _, _ in self.backend.requests)

    async def test_duplicate_check_failure_still_creates(self):
        self.backend.fail_project_listing = True
        result = await self.bridge.create_task(PROJECT, "Write login page", check_duplicate=True)
        assert result["is_new"] is True

    async def test_update_and_delete(self):
        updated = await self.bridge.update_task("t3", status="InProgress")
        assert updated["task"]["status"] == "inprogress"

        deleted = await self.bridge.delete_task("t3")
        assert deleted == {"deleted_task_id": "t3"}
        assert "t3" not in self.backend.tasks

    async def test_project_progress(self):
        progress = await self.bridge.get_project_progress(PROJECT)
        assert progress["total_tasks"] == 4
        assert progress["completed_tasks"] == 2
        assert progress["in_progress_tasks"] == 1
        assert progress["blocked_tasks"] == 0
        assert progress["progress_percent"] == 50.0
        assert progress["status_summary"] == {"done": 2, "inprogress": 1, "todo": 1}

    async def test_pm_docs_append_then_replace(self):
        appended = await self.bridge.update_pm_docs(PROJECT, "## Sprint 1")
        assert appended["pm_docs"] == "# Roadmap\n\n## Sprint 1"
        assert self.backend.pm_docs == "# Roadmap\n\n## Sprint 1"

        replaced = await self.bridge.update_pm_docs(PROJECT, "# New", mode="replace")
        assert replaced["pm_docs"] == "# New"

    async def test_pm_docs_append_to_empty(self):
        self.backend.pm_docs = None
        result = await self.bridge.update_pm_docs(PROJECT, "first")
        assert result["pm_docs"] == "first"

    async def test_unsuccessful_envelope_raises(self):
        self.backend.fail_project_listing = True
        with pytest.raises(BackendError, match="boom"):
            await self.bridge.get_project_progress(PROJECT)


@pytest.mark.asyncio
async def test_connection_failure_is_backend_error():
    client = BackendClient("http://127.0.0.1:1", timeout_seconds=2.0)
    try:
        with pytest.raises(BackendError, match="Failed to connect"):
            await client.request("GET", "/api/tasks")
    finally:
        await client.close()


def test_duplicate_title_rules():
    assert is_duplicate_title("Login Page", "login page")
    assert is_duplicate_title("login", "Write login page")
    assert is_duplicate_title("Write login page and tests", "login page")
    assert not is_duplicate_title("Logout", "Write login page")


def test_progress_percent():
    assert calculate_progress(0, 0) == 0.0
    assert calculate_progress(3, 1) == pytest.approx(33.333, rel=1e-3)
