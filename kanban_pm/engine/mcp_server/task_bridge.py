"""MCP task tool bridge for PM chat agents.

Standalone FastMCP server that agent CLIs launch as an MCP subprocess
(the ephemeral config written by mcp_config.py points at it). Speaks
MCP on stdin/stdout and relays each tool call to the Kanban backend
REST API.

Usage:
    python -m kanban_pm.engine.mcp_server.task_bridge [--backend-url URL]

The backend URL defaults to $KANBAN_BACKEND_URL, which the config file
sets for the child. Every backend response is wrapped as
``{"success": bool, "data": ..., "message": str | null}``.

Tool call flow:
    CLI -> MCP stdin/stdout -> task_bridge -> HTTP -> Kanban backend
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
from mcp.server.fastmcp import Context, FastMCP

from kanban_pm.engine.config import DEFAULT_BACKEND_PORT
from kanban_pm.engine.errors import BackendError

logger = logging.getLogger(__name__)

BACKEND_URL_ENV = "KANBAN_BACKEND_URL"
DEFAULT_BACKEND_URL = f"http://localhost:{DEFAULT_BACKEND_PORT}"

VALID_STATUSES = ("todo", "inprogress", "inreview", "done", "cancelled")
VALID_PRIORITIES = ("urgent", "high", "medium", "low")
DEFAULT_LIST_LIMIT = 50

# Backend URL: set from CLI args / env before the server starts
_backend_url: str = os.getenv(BACKEND_URL_ENV, DEFAULT_BACKEND_URL)


class BackendClient:
    """HTTP client for the Kanban backend API."""

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @property
    def base_url(self) -> str:
        return self._base_url

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        expect_data: bool = True,
    ) -> Any:
        """Send a request and unwrap the response envelope.

        Raises BackendError on connection failures, non-2xx statuses,
        unparseable bodies and ``success: false`` envelopes.
        """
        session = await self._get_session()
        url = self.url(path)
        logger.debug("%s %s", method, url)
        try:
            async with session.request(
                method, url, json=json_body, params=params,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise BackendError(
                        f"Backend API returned error status: {resp.status}",
                        body[:500] or None,
                    )
                try:
                    envelope = await resp.json(content_type=None)
                except (json.JSONDecodeError, aiohttp.ContentTypeError) as exc:
                    raise BackendError(
                        "Failed to parse backend API response", str(exc),
                    ) from exc
        except aiohttp.ClientError as exc:
            raise BackendError("Failed to connect to backend API", str(exc)) from exc

        if not isinstance(envelope, dict):
            raise BackendError("Failed to parse backend API response", "not an object")
        if not envelope.get("success", False):
            raise BackendError(
                "Backend API returned error",
                envelope.get("message") or "Unknown error",
            )
        if expect_data and envelope.get("data") is None:
            raise BackendError("Backend API response missing data field")
        return envelope.get("data")


def is_duplicate_title(new_title: str, existing_title: str) -> bool:
    """Case-insensitive equality or containment in either direction."""
    new_lower = new_title.lower()
    existing_lower = existing_title.lower()
    return (
        existing_lower == new_lower
        or new_lower in existing_lower
        or existing_lower in new_lower
    )


def calculate_progress(total_tasks: int, completed_tasks: int) -> float:
    if total_tasks > 0:
        return completed_tasks / total_tasks * 100.0
    return 0.0


def _validate_status(status: str) -> str:
    normalized = status.strip().lower()
    if normalized not in VALID_STATUSES:
        raise ValueError(
            "Invalid status. Valid values: "
            + ", ".join(f"'{s}'" for s in VALID_STATUSES)
            + f" (got '{status}')"
        )
    return normalized


def _task_summary(task: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(task.get("id", "")),
        "title": task.get("title", ""),
        "status": task.get("status"),
        "created_at": task.get("created_at"),
        "updated_at": task.get("updated_at"),
        "has_in_progress_attempt": task.get("has_in_progress_attempt"),
        "last_attempt_failed": task.get("last_attempt_failed"),
    }


def _task_details(task: dict[str, Any]) -> dict[str, Any]:
    details = _task_summary(task)
    details["description"] = task.get("description")
    return details


class TaskBridge:
    """Task-management operations exposed to agents as MCP tools."""

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def list_tasks(
        self,
        project_id: str,
        status: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        wanted = _validate_status(status) if status else None
        tasks = await self._client.request(
            "GET", "/api/tasks", params={"project_id": project_id},
        )
        task_limit = max(DEFAULT_LIST_LIMIT if limit is None else limit, 0)
        filtered = [
            t for t in tasks
            if wanted is None or str(t.get("status", "")).lower() == wanted
        ][:task_limit]
        summaries = [_task_summary(t) for t in filtered]
        return {
            "tasks": summaries,
            "count": len(summaries),
            "project_id": project_id,
            "applied_filters": {"status": status, "limit": task_limit},
        }

    async def get_task(self, task_id: str) -> dict[str, Any]:
        task = await self._client.request("GET", f"/api/tasks/{task_id}")
        return {"task": _task_details(task)}

    async def create_task(
        self,
        project_id: str,
        title: str,
        description: str | None = None,
        priority: str | None = None,
        depends_on: list[str] | None = None,
        check_duplicate: bool = False,
        label_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        if check_duplicate:
            try:
                existing_tasks = await self._client.request(
                    "GET", f"/api/projects/{project_id}/tasks",
                )
            except BackendError as exc:
                # Duplicate check is advisory; creation proceeds.
                logger.warning("Duplicate check skipped for '%s': %s", title, exc)
                existing_tasks = []
            for existing in existing_tasks:
                existing_title = existing.get("title", "")
                if is_duplicate_title(title, existing_title):
                    return {
                        "task_id": str(existing.get("id", "")),
                        "is_new": False,
                        "message": (
                            f"Found existing similar task: '{existing_title}'. "
                            "Returning existing task instead of creating duplicate."
                        ),
                    }

        payload: dict[str, Any] = {
            "project_id": project_id,
            "title": title,
            "description": description,
        }
        if priority and priority.lower() in VALID_PRIORITIES:
            payload["priority"] = priority.lower()
        elif priority:
            logger.warning("Ignoring unknown priority '%s'", priority)

        task = await self._client.request("POST", "/api/tasks", json_body=payload)
        task_id = str(task.get("id", ""))

        if depends_on:
            try:
                await self._client.request(
                    "PUT", f"/api/tasks/{task_id}/dependencies",
                    json_body={"dependency_ids": depends_on},
                    expect_data=False,
                )
                logger.debug("Dependencies set for task %s", task_id)
            except BackendError as exc:
                logger.warning("Failed to set dependencies for task %s: %s", task_id, exc)

        if label_ids:
            try:
                await self._client.request(
                    "PUT", f"/api/tasks/{task_id}",
                    json_body={"label_ids": label_ids},
                    expect_data=False,
                )
                logger.debug("Labels attached to task %s", task_id)
            except BackendError as exc:
                logger.warning("Failed to attach labels to task %s: %s", task_id, exc)

        return {
            "task_id": task_id,
            "is_new": True,
            "message": f"Created new task: '{title}'",
        }

    async def update_task(
        self,
        task_id: str,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if description is not None:
            payload["description"] = description
        if status is not None:
            payload["status"] = _validate_status(status)
        task = await self._client.request(
            "PUT", f"/api/tasks/{task_id}", json_body=payload,
        )
        return {"task": _task_details(task)}

    async def delete_task(self, task_id: str) -> dict[str, Any]:
        await self._client.request(
            "DELETE", f"/api/tasks/{task_id}", expect_data=False,
        )
        return {"deleted_task_id": task_id}

    async def get_project_progress(self, project_id: str) -> dict[str, Any]:
        tasks = await self._client.request("GET", f"/api/projects/{project_id}/tasks")
        status_summary: dict[str, int] = {}
        completed = 0
        in_progress = 0
        for task in tasks:
            status = str(task.get("status", "")).lower()
            status_summary[status] = status_summary.get(status, 0) + 1
            if status == "done":
                completed += 1
            elif status == "inprogress":
                in_progress += 1

        total = len(tasks)
        return {
            "total_tasks": total,
            "completed_tasks": completed,
            "in_progress_tasks": in_progress,
            # Needs dependency data the task listing does not carry.
            "blocked_tasks": 0,
            "progress_percent": calculate_progress(total, completed),
            "status_summary": status_summary,
        }

    async def update_pm_docs(
        self,
        project_id: str,
        content: str,
        mode: str = "append",
    ) -> dict[str, Any]:
        project = await self._client.request("GET", f"/api/projects/{project_id}")
        existing = project.get("pm_docs") or ""
        if mode == "replace" or not existing:
            new_docs = content
        else:
            new_docs = f"{existing}\n\n{content}"

        await self._client.request(
            "PUT", f"/api/projects/{project_id}/pm-chat/docs",
            json_body={"pm_docs": new_docs},
            expect_data=False,
        )
        return {"project_id": project_id, "success": True, "pm_docs": new_docs}


# ── FastMCP lifespan ──────────────────────────────────────────────

@asynccontextmanager
async def bridge_lifespan(server: FastMCP):
    """Open the backend HTTP session on startup, close it on shutdown."""
    client = BackendClient(_backend_url)
    logger.info("Task bridge relaying to %s", client.base_url)
    try:
        yield {"tasks": TaskBridge(client)}
    finally:
        await client.close()


# ── FastMCP server ────────────────────────────────────────────────

mcp = FastMCP(
    name="kanban-pm-tasks",
    instructions=(
        "Task management tools for the project's Kanban board. Use "
        "list_tasks before create_task to avoid duplicates, and pass "
        "check_duplicate=true when unsure. Use update_pm_docs to record "
        "specifications and architecture notes."
    ),
    lifespan=bridge_lifespan,
)


def _tasks(ctx: Context) -> TaskBridge:
    """Get the TaskBridge from the lifespan context."""
    return ctx.request_context.lifespan_context["tasks"]


def _dump(result: dict[str, Any]) -> str:
    return json.dumps(result, indent=2)


async def _call(coro) -> str:
    """Await a TaskBridge call; backend failures become tool errors."""
    try:
        return _dump(await coro)
    except BackendError as exc:
        logger.error("Tool call failed: %s", exc)
        raise ValueError(str(exc)) from exc


# ── Tool registrations ────────────────────────────────────────────

@mcp.tool(
    name="list_tasks",
    description=(
        "List tasks in a project. Optional status filter: 'todo', "
        "'inprogress', 'inreview', 'done', 'cancelled'. Returns at most "
        "`limit` tasks (default 50)."
    ),
)
async def list_tasks(
    project_id: str,
    status: str | None = None,
    limit: int | None = None,
    ctx: Context = None,
) -> str:
    return await _call(_tasks(ctx).list_tasks(project_id, status, limit))


@mcp.tool(
    name="get_task",
    description="Get detailed information (including description) about one task.",
)
async def get_task(task_id: str, ctx: Context = None) -> str:
    return await _call(_tasks(ctx).get_task(task_id))


@mcp.tool(
    name="create_task",
    description=(
        "Create a new task in a project. Priority is 'urgent', 'high', "
        "'medium' or 'low'. depends_on lists task IDs that must be done "
        "first. With check_duplicate, an existing task with a similar "
        "title is returned instead of creating a new one."
    ),
)
async def create_task(
    project_id: str,
    title: str,
    description: str | None = None,
    priority: str | None = None,
    depends_on: list[str] | None = None,
    check_duplicate: bool = False,
    label_ids: list[str] | None = None,
    ctx: Context = None,
) -> str:
    return await _call(_tasks(ctx).create_task(
        project_id, title,
        description=description, priority=priority, depends_on=depends_on,
        check_duplicate=check_duplicate, label_ids=label_ids,
    ))


@mcp.tool(
    name="update_task",
    description="Update a task's title, description or status.",
)
async def update_task(
    task_id: str,
    title: str | None = None,
    description: str | None = None,
    status: str | None = None,
    ctx: Context = None,
) -> str:
    return await _call(_tasks(ctx).update_task(
        task_id, title=title, description=description, status=status,
    ))


@mcp.tool(name="delete_task", description="Delete a task.")
async def delete_task(task_id: str, ctx: Context = None) -> str:
    return await _call(_tasks(ctx).delete_task(task_id))


@mcp.tool(
    name="get_project_progress",
    description=(
        "Get the completion status of a project: task counts by status "
        "and the completion percentage."
    ),
)
async def get_project_progress(project_id: str, ctx: Context = None) -> str:
    return await _call(_tasks(ctx).get_project_progress(project_id))


@mcp.tool(
    name="update_pm_docs",
    description=(
        "Save project documentation (specifications, requirements, "
        "architecture notes) as markdown. mode is 'append' (default) or "
        "'replace'."
    ),
)
async def update_pm_docs(
    project_id: str,
    content: str,
    mode: str = "append",
    ctx: Context = None,
) -> str:
    return await _call(_tasks(ctx).update_pm_docs(project_id, content, mode))


def main() -> None:
    """Entry point when launched by an agent CLI as an MCP subprocess."""
    global _backend_url

    parser = argparse.ArgumentParser(
        prog="kanban-pm-task-bridge",
        description="MCP task tools relaying to the Kanban backend",
    )
    parser.add_argument(
        "--backend-url", default=None,
        help=f"Backend base URL (default: ${BACKEND_URL_ENV} or {DEFAULT_BACKEND_URL})",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()
    if args.backend_url:
        _backend_url = args.backend_url

    # Logging goes to stderr (stdout is the MCP transport)
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logger.info(
        "Starting task bridge (backend=%s, pid=%d)", _backend_url, os.getpid(),
    )

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
