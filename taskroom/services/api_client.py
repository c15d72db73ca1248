"""Async client for the task/project REST API.

Every endpoint answers with an envelope ``{success, data?, error?, message?}``.
This client unwraps it into domain models and turns any failure into an
ApiError; it never retries a request on its own.

Usage:
    async with ApiClient("http://localhost:5000/api", token=token) as api:
        project = await api.get_project(42)
        task = await api.create_task("Write docs", "User guide", "2030-01-01", project_id=42)
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Union

import httpx

from ..models import Project, Task


logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A REST call failed.

    Attributes:
        status: HTTP status code, or 0 for network failures
        data: Decoded response body, if any
    """

    def __init__(self, message: str, status: int = 0, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data or {}

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_conflict(self) -> bool:
        return self.status == 409

    @property
    def is_network_error(self) -> bool:
        return self.status == 0


class ApiClient:
    """Thin async wrapper over the REST collaborator."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. ``http://localhost:5000/api``.
            token: Bearer token sent with every request.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token or None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request and return the decoded success envelope.

        Raises:
            ApiError: On network failure, non-2xx status or ``success: false``.
        """
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.debug(f"API request: {method} {path}")
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            raise ApiError(str(e) or "Network error", 0) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.is_error or body.get("success") is False:
            message = (
                body.get("message")
                or body.get("error")
                or response.reason_phrase
                or f"Request failed with status {response.status_code}"
            )
            logger.warning(f"API {method} {path} failed ({response.status_code}): {message}")
            raise ApiError(str(message), response.status_code, body)

        return body

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def list_tasks(
        self,
        project_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Task]:
        params: Dict[str, Any] = {}
        if project_id is not None:
            params["project_id"] = project_id
        if search:
            params["search"] = search
        body = await self._request("GET", "/tasks", params=params or None)
        return [Task.from_dict(t) for t in body.get("data") or []]

    async def get_task(self, task_id: int) -> Task:
        body = await self._request("GET", f"/tasks/{task_id}")
        return Task.from_dict(body["data"])

    async def create_task(
        self,
        title: str,
        description: str,
        due_date: Union[date, str, None],
        project_id: int,
    ) -> Task:
        body = await self._request(
            "POST",
            "/tasks",
            json={
                "title": title,
                "description": description,
                "due_date": due_date.isoformat() if isinstance(due_date, date) else due_date,
                "project_id": project_id,
            },
        )
        return Task.from_dict(body["data"])

    async def update_task(self, task: Task) -> Task:
        """Replace a task's editable fields with those of ``task``."""
        payload = task.to_dict()
        body = await self._request("PUT", f"/tasks/{task.id}", json=payload)
        return Task.from_dict(body["data"])

    async def delete_task(self, task_id: int) -> int:
        body = await self._request("DELETE", f"/tasks/{task_id}")
        data = body.get("data") or {}
        return int(data.get("deletedTaskId", task_id))

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def list_projects(self, with_tasks: bool = False) -> List[Project]:
        path = "/projects/with-tasks" if with_tasks else "/projects"
        body = await self._request("GET", path)
        return [Project.from_dict(p) for p in body.get("data") or []]

    async def get_project(self, project_id: int) -> Project:
        """Fetch a project including its tasks."""
        body = await self._request("GET", f"/projects/{project_id}")
        return Project.from_dict(body["data"])

    async def create_project(self, name: str, description: str = "") -> Project:
        body = await self._request(
            "POST", "/projects", json={"name": name, "description": description}
        )
        return Project.from_dict(body["data"])

    async def update_project(
        self,
        project_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        body = await self._request("PUT", f"/projects/{project_id}", json=changes)
        return Project.from_dict(body["data"])

    async def delete_project(self, project_id: int) -> None:
        await self._request("DELETE", f"/projects/{project_id}")
