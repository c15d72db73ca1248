"""Unit tests for the FastAPI status API.

Tests cover:
- Status, task view, statistics and notification endpoints
- Room join/leave requests
- Task toggle and delete with REST error mapping
- Request validation
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeClientFactory, make_task_payload
from status_server.api import TaskResponse, create_app
from taskroom.models import Task
from taskroom.notifications import NotificationLevel
from taskroom.services.api_client import ApiClient
from taskroom.services.session_coordinator import SessionCoordinator


class RestStub:
    def __init__(self):
        self.responses = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        status, body = self.responses.get(
            (request.method, request.url.path),
            (404, {"success": False, "error": "Task not found"}),
        )
        return httpx.Response(status, json=body)


@pytest.fixture
def rest():
    return RestStub()


@pytest.fixture
def factory():
    return FakeClientFactory()


@pytest.fixture
def coordinator(taskroom_config, factory, rest):
    api = ApiClient("http://rooms.test/api", transport=httpx.MockTransport(rest.handler))
    session = SessionCoordinator(taskroom_config, api=api, client_factory=factory)
    session.tasks.replace_all([
        Task.from_dict(make_task_payload(3, title="Deploy")),
        Task.from_dict(make_task_payload(2, title="Review", completed=True)),
        Task.from_dict(make_task_payload(1, title="Design")),
    ])
    return session


@pytest.fixture
def client(coordinator):
    """Test client without lifespan so the coordinator stays open."""
    return TestClient(create_app(coordinator))


class TestStatusEndpoints:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_status_disconnected(self, client):
        data = client.get("/api/status").json()

        assert data["connection_state"] == "disconnected"
        assert data["current_room"] is None
        assert data["active_users"] == []
        assert data["task_stats"] == {"total": 3, "completed": 1, "pending": 2, "completion_rate": 33}

    def test_status_with_room_and_presence(self, coordinator, factory, client):
        asyncio.run(coordinator.set_token("tok"))
        asyncio.run(factory.last.fire("joined_project", {"projectId": 1, "projectName": "Website"}))
        asyncio.run(factory.last.fire("user_joined_project", {"user": {"username": "dave"}}))

        data = client.get("/api/status").json()

        assert data["connection_state"] == "connected"
        assert data["current_room"] == {"project_id": 1, "project_name": "Website"}
        assert data["active_users"] == ["dave"]

    def test_notifications(self, coordinator, client):
        coordinator.notifications.add("dave joined the project", NotificationLevel.INFO)

        data = client.get("/api/notifications").json()

        assert [n["message"] for n in data["notifications"]] == ["dave joined the project"]
        assert data["notifications"][0]["level"] == "info"


class TestTaskViews:
    @pytest.mark.parametrize("view, expected", [
        ("all", [3, 2, 1]),
        ("incomplete", [3, 1]),
        ("completed", [2]),
    ])
    def test_views(self, client, view, expected):
        data = client.get("/api/tasks", params={"view": view}).json()

        assert data["view"] == view
        assert [t["id"] for t in data["tasks"]] == expected
        assert data["total"] == len(expected)

    def test_unknown_view_rejected(self, client):
        assert client.get("/api/tasks", params={"view": "archived"}).status_code == 422

    def test_stats(self, client):
        assert client.get("/api/tasks/stats").json()["completed"] == 1

    def test_task_response_serializes_due_date(self):
        response = TaskResponse.from_task(Task.from_dict(make_task_payload(1)))
        assert response.due_date == "2099-01-15"


class TestRoomEndpoints:
    def test_join_requires_connection(self, client):
        assert client.post("/api/room/join", json={"project_id": 5}).status_code == 409

    def test_join_sends_request(self, coordinator, factory, client):
        asyncio.run(coordinator.set_token("tok"))

        response = client.post("/api/room/join", json={"project_id": 5})

        assert response.status_code == 200
        assert response.json() == {"sent": True, "pending_project_id": 5, "current_room": None}
        assert factory.last.emitted == [("join_project", 5)]

    def test_join_rejects_non_positive_id(self, client):
        assert client.post("/api/room/join", json={"project_id": 0}).status_code == 422

    def test_leave_without_room(self, client):
        assert client.post("/api/room/leave").json()["sent"] is False


class TestTaskMutations:
    def test_toggle(self, rest, client):
        rest.responses[("PUT", "/api/tasks/1")] = (
            200, {"success": True, "data": make_task_payload(1, title="Design", completed=True)},
        )

        response = client.post("/api/tasks/1/toggle")

        assert response.status_code == 200
        assert response.json()["completed"] is True

    def test_toggle_unknown_task(self, client):
        assert client.post("/api/tasks/99/toggle").status_code == 404

    def test_delete_maps_api_error(self, client, coordinator):
        response = client.delete("/api/tasks/1")

        assert response.status_code == 404
        assert response.json()["detail"] == "Task not found"
        assert 1 in coordinator.tasks

    def test_delete(self, rest, client, coordinator):
        rest.responses[("DELETE", "/api/tasks/1")] = (200, {"success": True, "data": {"deletedTaskId": 1}})

        assert client.delete("/api/tasks/1").json() == {"deleted": True, "task_id": 1}
        assert 1 not in coordinator.tasks


def test_lifespan_closes_coordinator(coordinator, factory):
    asyncio.run(coordinator.set_token("tok"))

    with TestClient(create_app(coordinator)):
        pass

    assert factory.last.disconnect_calls == 1
