"""FastAPI status API over a SessionCoordinator.

This module exposes the observable state of one taskroom session to a
rendering layer (a browser dashboard, a terminal UI, a test harness):

- Connection state, last error, room membership and active users
- The reconciled task list and its derived views and statistics
- The notification feed
- Room join/leave and the task mutations a dashboard triggers

All endpoints return JSON responses and use Pydantic models for validation.

Usage:
    from status_server.api import create_app
    import uvicorn

    app = create_app(coordinator, token=token, project_id=42)
    uvicorn.run(app, host="127.0.0.1", port=8765)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator

from taskroom import __version__
from taskroom.models import RoomMembership, Task
from taskroom.notifications import Notification
from taskroom.reconciler import TaskStats
from taskroom.services.api_client import ApiError
from taskroom.services.session_coordinator import SessionCoordinator


logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic models for request/response validation
# =============================================================================


class RoomResponse(BaseModel):
    """Confirmed room membership."""

    project_id: int
    project_name: str = ""

    @classmethod
    def from_membership(cls, membership: Optional[RoomMembership]) -> Optional["RoomResponse"]:
        if membership is None:
            return None
        return cls(project_id=membership.project_id, project_name=membership.project_name)


class TaskStatsResponse(BaseModel):
    """Counts derived from the task list."""

    total: int = 0
    completed: int = 0
    pending: int = 0
    completion_rate: int = 0

    @classmethod
    def from_stats(cls, stats: TaskStats) -> "TaskStatsResponse":
        return cls(**stats.to_dict())


class StatusResponse(BaseModel):
    """Session status."""

    connection_state: str
    last_error: Optional[str] = None
    current_room: Optional[RoomResponse] = None
    active_users: List[str] = []
    task_stats: TaskStatsResponse


class TaskResponse(BaseModel):
    """Response model for a task."""

    id: int
    title: str
    description: str = ""
    due_date: Optional[str] = None
    completed: bool = False
    project_id: Optional[int] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        """Create from a Task."""
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            due_date=task.due_date.isoformat() if task.due_date else None,
            completed=task.completed,
            project_id=task.project_id,
        )


class TaskListResponse(BaseModel):
    """Response for a task list view."""

    view: str
    tasks: List[TaskResponse]
    total: int


class NotificationResponse(BaseModel):
    id: int
    message: str
    level: str
    created_at: float

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(**notification.to_dict())


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]


class JoinRoomRequest(BaseModel):
    """Request to join a project room."""

    project_id: int

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("project_id must be a positive integer")
        return v


class RoomActionResponse(BaseModel):
    """Result of a join/leave request.

    ``sent`` only means the request reached the transport; membership
    changes when the server confirms.
    """

    sent: bool
    pending_project_id: Optional[int] = None
    current_room: Optional[RoomResponse] = None


class DeleteTaskResponse(BaseModel):
    deleted: bool
    task_id: int


# =============================================================================
# Dependencies
# =============================================================================


def get_coordinator(request: Request) -> SessionCoordinator:
    """Get the coordinator this app was created for."""
    return request.app.state.coordinator


def _room_action(coordinator: SessionCoordinator, sent: bool) -> RoomActionResponse:
    connection = coordinator.connection
    return RoomActionResponse(
        sent=sent,
        pending_project_id=connection.room.pending_project_id if connection else None,
        current_room=RoomResponse.from_membership(coordinator.current_room),
    )


def _raise_for_api_error(e: ApiError) -> None:
    status = e.status if e.status >= 400 else 502
    raise HTTPException(status_code=status, detail=e.message)


# =============================================================================
# FastAPI application
# =============================================================================


def create_app(
    coordinator: SessionCoordinator,
    token: Optional[str] = None,
    project_id: Optional[int] = None,
) -> FastAPI:
    """Create the status API for one coordinator.

    Args:
        coordinator: Session whose state is exposed.
        token: If given, the session connects on startup.
        project_id: If given with a token, the project is loaded and its
            room joined on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        if token:
            await coordinator.set_token(token)
            if project_id is not None:
                try:
                    await coordinator.load_project(project_id)
                except ApiError as e:
                    logger.warning(f"Could not load project {project_id}: {e.message}")
                await coordinator.join_project(project_id)

        yield

        await coordinator.close()

    app = FastAPI(
        title="Taskroom Status API",
        description="Observable state of a taskroom session",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator

    # Configure CORS for localhost development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Status endpoints
    # -------------------------------------------------------------------------

    @app.get("/api/health")
    async def health_check() -> dict:
        return {"status": "healthy", "version": __version__}

    @app.get("/api/status", response_model=StatusResponse)
    async def get_status(request: Request) -> StatusResponse:
        """Get connection, room and presence state."""
        session = get_coordinator(request)
        return StatusResponse(
            connection_state=session.connection_state.value,
            last_error=session.last_error,
            current_room=RoomResponse.from_membership(session.current_room),
            active_users=list(session.active_users),
            task_stats=TaskStatsResponse.from_stats(session.tasks.stats()),
        )

    @app.get("/api/notifications", response_model=NotificationListResponse)
    async def list_notifications(request: Request) -> NotificationListResponse:
        session = get_coordinator(request)
        return NotificationListResponse(
            notifications=[
                NotificationResponse.from_notification(n) for n in session.notifications.items()
            ]
        )

    # -------------------------------------------------------------------------
    # Room endpoints
    # -------------------------------------------------------------------------

    @app.post("/api/room/join", response_model=RoomActionResponse)
    async def join_room(request: Request, body: JoinRoomRequest) -> RoomActionResponse:
        """Request membership of a project room."""
        session = get_coordinator(request)
        if not session.is_connected:
            raise HTTPException(status_code=409, detail="Not connected")
        sent = await session.join_project(body.project_id)
        return _room_action(session, sent)

    @app.post("/api/room/leave", response_model=RoomActionResponse)
    async def leave_room(request: Request) -> RoomActionResponse:
        session = get_coordinator(request)
        sent = await session.leave_project()
        return _room_action(session, sent)

    # -------------------------------------------------------------------------
    # Task endpoints
    # -------------------------------------------------------------------------

    @app.get("/api/tasks", response_model=TaskListResponse)
    async def list_tasks(
        request: Request,
        view: str = Query("all", pattern="^(all|incomplete|completed)$"),
    ) -> TaskListResponse:
        """List tasks in display order, optionally filtered by completion."""
        session = get_coordinator(request)
        if view == "incomplete":
            tasks = session.tasks.incomplete
        elif view == "completed":
            tasks = session.tasks.completed
        else:
            tasks = session.tasks.tasks
        return TaskListResponse(
            view=view,
            tasks=[TaskResponse.from_task(t) for t in tasks],
            total=len(tasks),
        )

    @app.get("/api/tasks/stats", response_model=TaskStatsResponse)
    async def get_task_stats(request: Request) -> TaskStatsResponse:
        return TaskStatsResponse.from_stats(get_coordinator(request).tasks.stats())

    @app.post("/api/tasks/{task_id}/toggle", response_model=TaskResponse)
    async def toggle_task(request: Request, task_id: int) -> Any:
        """Flip a task's completion flag and confirm it with the server."""
        session = get_coordinator(request)
        if task_id not in session.tasks:
            raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
        try:
            task = await session.toggle_task(task_id)
        except ApiError as e:
            _raise_for_api_error(e)
        return TaskResponse.from_task(task)

    @app.delete("/api/tasks/{task_id}", response_model=DeleteTaskResponse)
    async def delete_task(request: Request, task_id: int) -> DeleteTaskResponse:
        session = get_coordinator(request)
        try:
            deleted = await session.delete_task(task_id)
        except ApiError as e:
            _raise_for_api_error(e)
        return DeleteTaskResponse(deleted=deleted, task_id=task_id)

    return app
