"""Session coordination for the project-room client.

This module provides the SessionCoordinator, the one object a rendering
layer talks to. It composes:

- ConnectionManager: one live connection per credential token
- RoomSession: the confirmed project room of that connection
- EventDispatcher: one UI handler slot per push-event kind
- TaskListReconciler: the task list rendered by the dashboard
- PresenceTracker / NotificationFeed: who is in the room, what just happened
- ApiClient: REST persistence for task mutations

Push events update local state first and then reach the registered UI
handler, so a handler always sees the reconciled task list.

Usage:
    coordinator = SessionCoordinator(config)
    coordinator.on_task_created(lambda event: render())

    await coordinator.set_token(token)
    await coordinator.load_project(42)
    await coordinator.join_project(42)
    ...
    await coordinator.logout()
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional, Tuple, Union

from ..config import TaskroomConfig
from ..connection import ClientFactory, ConnectionManager, ConnectionState, create_socketio_client
from ..dispatcher import EventDispatcher
from ..events import (
    Event,
    EventHandler,
    EventKind,
    EventPayloadError,
    PUSH_EVENT_KINDS,
    ServerEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskUpdatedEvent,
    UserJoinedEvent,
    UserLeftEvent,
    parse_push_event,
)
from ..models import (
    Project,
    RoomMembership,
    Task,
    TaskValidationError,
    coerce_id,
    parse_due_date,
    validate_task_fields,
)
from ..notifications import NotificationFeed, NotificationLevel, PresenceTracker, describe_user
from ..reconciler import TaskListReconciler
from .api_client import ApiClient, ApiError


logger = logging.getLogger(__name__)


class SessionCoordinator:
    """Composes connection, room, dispatch and task state for one user session.

    Independent coordinators (one per tab or dashboard) share no state;
    they converge only through push events.
    """

    def __init__(
        self,
        config: Optional[TaskroomConfig] = None,
        api: Optional[ApiClient] = None,
        client_factory: ClientFactory = create_socketio_client,
    ):
        """Initialize the coordinator.

        Args:
            config: Endpoints, retry budget and policies. Defaults apply if None.
            api: REST client. One is created from the config if None and
                closed again by ``close``.
            client_factory: Transport client factory passed to each
                ConnectionManager.
        """
        self.config = config or TaskroomConfig()
        self._client_factory = client_factory
        self._owns_api = api is None
        self._api = api or ApiClient(self.config.server.api_base_url)

        self.dispatcher = EventDispatcher(error_sink=self._record_error)
        self.tasks = TaskListReconciler()
        self.presence = PresenceTracker()
        self.notifications = NotificationFeed(
            max_items=self.config.notifications.max_items,
            ttl_seconds=self.config.notifications.ttl_seconds,
        )

        self._connection: Optional[ConnectionManager] = None
        self._token: Optional[str] = None
        self._desired_project_id: Optional[int] = None

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def api(self) -> ApiClient:
        return self._api

    @property
    def connection(self) -> Optional[ConnectionManager]:
        return self._connection

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def connection_state(self) -> ConnectionState:
        if self._connection is None:
            return ConnectionState.DISCONNECTED
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.is_connected

    @property
    def last_error(self) -> Optional[str]:
        if self._connection is None:
            return None
        return self._connection.last_error

    @property
    def current_room(self) -> Optional[RoomMembership]:
        if self._connection is None:
            return None
        return self._connection.room.membership

    @property
    def active_users(self) -> Tuple[str, ...]:
        return self.presence.active_users

    def snapshot(self) -> Dict[str, Any]:
        """Observable state for status displays."""
        room = self.current_room
        return {
            "connection_state": self.connection_state.value,
            "last_error": self.last_error,
            "current_room": room.to_dict() if room else None,
            "active_users": list(self.active_users),
            "task_stats": self.tasks.stats().to_dict(),
        }

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    async def set_token(self, token: Optional[str]) -> bool:
        """Install a new credential token.

        The existing connection, if any, is closed before a new one opens,
        and any pending or remembered room join is discarded. An empty token
        only closes. Setting the same token again keeps the live connection.

        Returns:
            True if a connection with the new token is established.
        """
        token = token or None
        if token is not None and token == self._token and self._connection is not None:
            return self._connection.is_connected

        await self._teardown_connection()
        self._token = token
        self._api.set_token(token)

        if token is None:
            return False

        manager = ConnectionManager(
            self.config.server,
            self.config.reconnect,
            on_event=self._on_transport_event,
            client_factory=self._client_factory,
        )
        self._connection = manager
        return await manager.connect(token)

    async def logout(self) -> None:
        """Close the session and drop user-scoped state."""
        await self.set_token(None)
        self.tasks.clear()
        self.notifications.clear()

    async def close(self) -> None:
        """Close the connection and, if owned, the REST client."""
        await self._teardown_connection()
        self._token = None
        if self._owns_api:
            await self._api.aclose()

    async def __aenter__(self) -> "SessionCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _teardown_connection(self) -> None:
        manager = self._connection
        self._connection = None
        self._desired_project_id = None
        self.presence.clear()
        if manager is not None:
            await manager.teardown()

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    async def join_project(self, project_id: Any) -> bool:
        """Request membership of a project room.

        Invalid ids and calls while disconnected are silent no-ops. Once a
        join has been sent, the room is requested again after every
        reconnect until ``leave_project`` is called.

        Returns:
            True if a join request was sent.
        """
        coerced = coerce_id(project_id)
        if coerced is None or self._connection is None:
            return False
        sent = await self._connection.room.join_room(coerced)
        if sent:
            self._desired_project_id = coerced
        return sent

    async def leave_project(self) -> bool:
        """Request leaving the current room.

        Returns:
            True if a leave request was sent.
        """
        self._desired_project_id = None
        if self._connection is None:
            return False
        return await self._connection.room.leave_room()

    # -------------------------------------------------------------------------
    # UI handler registration
    # -------------------------------------------------------------------------

    def on_task_created(self, handler: Optional[EventHandler]) -> None:
        self.dispatcher.set_handler(EventKind.TASK_CREATED, handler)

    def on_task_updated(self, handler: Optional[EventHandler]) -> None:
        self.dispatcher.set_handler(EventKind.TASK_UPDATED, handler)

    def on_task_deleted(self, handler: Optional[EventHandler]) -> None:
        self.dispatcher.set_handler(EventKind.TASK_DELETED, handler)

    def on_user_joined(self, handler: Optional[EventHandler]) -> None:
        self.dispatcher.set_handler(EventKind.USER_JOINED, handler)

    def on_user_left(self, handler: Optional[EventHandler]) -> None:
        self.dispatcher.set_handler(EventKind.USER_LEFT, handler)

    # -------------------------------------------------------------------------
    # Inbound events
    # -------------------------------------------------------------------------

    async def _on_transport_event(self, server_event: ServerEvent, payload: Any) -> None:
        """Route a server message after the ConnectionManager applied it."""
        if server_event == ServerEvent.CONNECT:
            if self._desired_project_id is not None and self._connection is not None:
                logger.info(f"Rejoining project {self._desired_project_id} after connect")
                await self._connection.room.join_room(self._desired_project_id)
        elif server_event in (
            ServerEvent.DISCONNECT,
            ServerEvent.JOINED_PROJECT,
            ServerEvent.LEFT_PROJECT,
        ):
            self.presence.clear()
        elif server_event == ServerEvent.ERROR:
            self.dispatcher.dispatch_error(payload)
        elif server_event in PUSH_EVENT_KINDS:
            await self._handle_push(server_event, payload)

    async def _handle_push(self, server_event: ServerEvent, payload: Any) -> None:
        try:
            event = parse_push_event(server_event, payload)
        except EventPayloadError as e:
            logger.warning(f"Dropping malformed {server_event.value}: {e}")
            return

        self._apply_push(event)
        await self.dispatcher.dispatch(event)

    def _apply_push(self, event: Event) -> None:
        """Fold a push event into tasks, presence and notifications."""
        if isinstance(event, TaskCreatedEvent) and event.task is not None:
            if self.tasks.apply_created(event.task):
                self.notifications.add(
                    f'New task created: "{event.task.title}" by {describe_user(event.created_by.username)}',
                    NotificationLevel.SUCCESS,
                )
        elif isinstance(event, TaskUpdatedEvent) and event.task is not None:
            self.tasks.apply_updated(event.task)
            self.notifications.add(
                f'Task updated: "{event.task.title}" by {describe_user(event.updated_by.username)}',
                NotificationLevel.INFO,
            )
        elif isinstance(event, TaskDeletedEvent):
            self.tasks.apply_deleted(event.task_id)
            self.notifications.add(
                f'Task deleted: "{event.task_title}" by {describe_user(event.deleted_by.username)}',
                NotificationLevel.WARNING,
            )
        elif isinstance(event, UserJoinedEvent):
            self.presence.joined(event.user.username)
            self.notifications.add(
                f"{describe_user(event.user.username)} joined the project",
                NotificationLevel.INFO,
            )
        elif isinstance(event, UserLeftEvent):
            self.presence.left(event.user.username)
            self.notifications.add(
                f"{describe_user(event.user.username)} left the project",
                NotificationLevel.SECONDARY,
            )

    def _record_error(self, message: str) -> None:
        if self._connection is not None:
            self._connection.record_error(message)

    # -------------------------------------------------------------------------
    # REST-backed task operations
    # -------------------------------------------------------------------------

    async def load_project(self, project_id: Any) -> Project:
        """Fetch a project and replace the task list with its tasks.

        Raises:
            TaskValidationError: If the id is not a positive integer.
            ApiError: If the request fails.
        """
        coerced = coerce_id(project_id)
        if coerced is None:
            raise TaskValidationError({"project_id": "Project id must be a positive integer"})
        project = await self._api.get_project(coerced)
        self.tasks.replace_all(project.tasks)
        logger.info(f"Loaded {len(project.tasks)} tasks for project {coerced}")
        return project

    async def create_task(
        self,
        title: str,
        description: str,
        due_date: Union[date, str, None],
        project_id: Any = None,
    ) -> Task:
        """Create a task and prepend it once the server confirms.

        ``project_id`` defaults to the current room.

        Raises:
            TaskValidationError: If fields are invalid; no request is made.
            ApiError: If the request fails; the list is left unchanged.
        """
        errors = validate_task_fields(title, description, due_date)
        if project_id is None and self.current_room is not None:
            project_id = self.current_room.project_id
        resolved_project = coerce_id(project_id)
        if resolved_project is None:
            errors["project_id"] = "Project is required"
        if errors:
            raise TaskValidationError(errors)

        task = await self._api.create_task(
            title.strip(),
            description.strip(),
            parse_due_date(due_date),
            resolved_project,
        )
        self.tasks.apply_created(task)
        return task

    async def update_task(
        self,
        task_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
        due_date: Union[date, str, None] = None,
        completed: Optional[bool] = None,
    ) -> Task:
        """Edit a loaded task and apply the server's version on success.

        Raises:
            KeyError: If the task is not in the local list.
            TaskValidationError: If the merged fields are invalid.
            ApiError: If the request fails; the list is left unchanged.
        """
        current = self.tasks.get(task_id)
        if current is None:
            raise KeyError(f"Task {task_id} is not loaded")

        merged = Task(
            id=current.id,
            title=(title if title is not None else current.title).strip(),
            description=(description if description is not None else current.description).strip(),
            due_date=parse_due_date(due_date) if due_date is not None else current.due_date,
            completed=completed if completed is not None else current.completed,
            project_id=current.project_id,
            user_id=current.user_id,
            created_at=current.created_at,
            updated_at=current.updated_at,
            extra=dict(current.extra),
        )
        errors = validate_task_fields(
            merged.title, merged.description, merged.due_date, completed=merged.completed
        )
        if errors:
            raise TaskValidationError(errors)

        updated = await self._api.update_task(merged)
        self.tasks.apply_updated(updated)
        return updated

    async def toggle_task(self, task_id: int) -> Optional[Task]:
        """Flip completion optimistically, then confirm with the server.

        On failure the ApiError propagates. The local flip stays in place
        unless ``tasks.revert_on_failure`` is enabled.

        Returns:
            The confirmed task, or None if the id is not loaded.
        """
        previous = self.tasks.get(task_id)
        if previous is None:
            return None

        flipped = self.tasks.toggle(task_id)
        try:
            confirmed = await self._api.update_task(flipped)
        except ApiError:
            if self.config.tasks.revert_on_failure:
                self.tasks.set_completed(task_id, previous.completed)
            raise

        self.tasks.apply_updated(confirmed)
        return confirmed

    async def delete_task(self, task_id: int) -> bool:
        """Delete a task and remove it once the server confirms.

        Raises:
            ApiError: If the request fails (404 and 409 included); the list
                is left unchanged.

        Returns:
            True if the task was still present locally.
        """
        await self._api.delete_task(task_id)
        return self.tasks.apply_deleted(task_id)
