"""Message names and typed push events for the project-room channel.

This module defines the vocabulary spoken over the real-time connection:

- ServerEvent: every message name the server may send
- ClientMessage: the message names the client sends
- EventKind: the push-event kinds UI handlers can register for
- Typed event classes built from raw payloads by ``parse_push_event``

Usage:
    from taskroom.events import ServerEvent, parse_push_event

    event = parse_push_event(ServerEvent.TASK_DELETED, {"taskId": 7, "taskTitle": "Draft"})
    print(event.task_id)
"""

from __future__ import annotations

import time
from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from .models import Task, UserRef, coerce_id


class ServerEvent(str, Enum):
    """Messages the server (or the transport itself) delivers to the client."""

    # Transport lifecycle
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"

    # Room confirmations
    JOINED_PROJECT = "joined_project"
    LEFT_PROJECT = "left_project"

    # Task push events
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"

    # Presence push events
    USER_JOINED_PROJECT = "user_joined_project"
    USER_LEFT_PROJECT = "user_left_project"

    # Protocol errors
    ERROR = "error"


class ClientMessage(str, Enum):
    """Messages the client sends to the server."""

    JOIN_PROJECT = "join_project"
    LEAVE_PROJECT = "leave_project"


class EventKind(str, Enum):
    """Push-event kinds a UI handler can be registered for.

    Each kind has exactly one handler slot in the EventDispatcher.
    """

    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"


# Server message name -> handler slot
PUSH_EVENT_KINDS: Dict[ServerEvent, EventKind] = {
    ServerEvent.TASK_CREATED: EventKind.TASK_CREATED,
    ServerEvent.TASK_UPDATED: EventKind.TASK_UPDATED,
    ServerEvent.TASK_DELETED: EventKind.TASK_DELETED,
    ServerEvent.USER_JOINED_PROJECT: EventKind.USER_JOINED,
    ServerEvent.USER_LEFT_PROJECT: EventKind.USER_LEFT,
}


class EventPayloadError(ValueError):
    """Raised when a push payload is missing required fields."""


@dataclass
class Event(ABC):
    """Base class for all push events.

    All events include:
    - kind: The handler slot this event is dispatched to
    - timestamp: Server timestamp from the payload, if any
    - received_at: Local Unix time the event was parsed

    Subclasses add kind-specific data fields.
    """

    kind: EventKind
    timestamp: Optional[str] = None
    received_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "received_at": self.received_at,
        }


# =============================================================================
# Task events
# =============================================================================


@dataclass
class TaskCreatedEvent(Event):
    """Another session created a task in the current project.

    Attributes:
        task: The created task as stored by the server
        created_by: User who created it
    """

    kind: EventKind = field(init=False, default=EventKind.TASK_CREATED)
    task: Optional[Task] = None
    created_by: UserRef = field(default_factory=UserRef)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({
            "task": self.task.to_dict() if self.task else None,
            "created_by": self.created_by.to_dict(),
        })
        return d


@dataclass
class TaskUpdatedEvent(Event):
    """A task in the current project was updated (including completion toggles).

    Attributes:
        task: The full updated task
        updated_by: User who made the change
    """

    kind: EventKind = field(init=False, default=EventKind.TASK_UPDATED)
    task: Optional[Task] = None
    updated_by: UserRef = field(default_factory=UserRef)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({
            "task": self.task.to_dict() if self.task else None,
            "updated_by": self.updated_by.to_dict(),
        })
        return d


@dataclass
class TaskDeletedEvent(Event):
    """A task in the current project was deleted.

    Attributes:
        task_id: Id of the deleted task
        task_title: Title at deletion time, for display
        deleted_by: User who deleted it
    """

    kind: EventKind = field(init=False, default=EventKind.TASK_DELETED)
    task_id: int = 0
    task_title: str = ""
    deleted_by: UserRef = field(default_factory=UserRef)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({
            "task_id": self.task_id,
            "task_title": self.task_title,
            "deleted_by": self.deleted_by.to_dict(),
        })
        return d


# =============================================================================
# Presence events
# =============================================================================


@dataclass
class UserJoinedEvent(Event):
    """Another user joined the current project room."""

    kind: EventKind = field(init=False, default=EventKind.USER_JOINED)
    user: UserRef = field(default_factory=UserRef)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["user"] = self.user.to_dict()
        return d


@dataclass
class UserLeftEvent(Event):
    """Another user left the current project room."""

    kind: EventKind = field(init=False, default=EventKind.USER_LEFT)
    user: UserRef = field(default_factory=UserRef)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["user"] = self.user.to_dict()
        return d


PushEvent = Union[
    TaskCreatedEvent,
    TaskUpdatedEvent,
    TaskDeletedEvent,
    UserJoinedEvent,
    UserLeftEvent,
]

EventHandler = Callable[[Event], Any]  # Can be sync or async


# =============================================================================
# Payload parsing
# =============================================================================


def _require_dict(payload: Any, name: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise EventPayloadError(f"{name} payload must be an object, got {type(payload).__name__}")
    return payload


def _task_from(payload: Dict[str, Any], name: str) -> Task:
    raw = payload.get("task")
    if not isinstance(raw, dict):
        raise EventPayloadError(f"{name} payload has no task")
    try:
        return Task.from_dict(raw)
    except ValueError as e:
        raise EventPayloadError(f"{name} payload has an invalid task: {e}") from e


def _parse_task_created(payload: Dict[str, Any]) -> TaskCreatedEvent:
    return TaskCreatedEvent(
        task=_task_from(payload, "task_created"),
        created_by=UserRef.from_dict(payload.get("createdBy")),
        timestamp=payload.get("timestamp"),
    )


def _parse_task_updated(payload: Dict[str, Any]) -> TaskUpdatedEvent:
    # Older servers send only the username
    updated_by = payload.get("updatedBy", payload.get("updatedByUsername"))
    return TaskUpdatedEvent(
        task=_task_from(payload, "task_updated"),
        updated_by=UserRef.from_dict(updated_by),
        timestamp=payload.get("timestamp"),
    )


def _parse_task_deleted(payload: Dict[str, Any]) -> TaskDeletedEvent:
    task_id = coerce_id(payload.get("taskId"))
    if task_id is None:
        raise EventPayloadError(f"task_deleted payload has no valid taskId: {payload.get('taskId')!r}")
    return TaskDeletedEvent(
        task_id=task_id,
        task_title=str(payload.get("taskTitle") or ""),
        deleted_by=UserRef.from_dict(payload.get("deletedBy")),
        timestamp=payload.get("timestamp"),
    )


def _parse_user_joined(payload: Dict[str, Any]) -> UserJoinedEvent:
    return UserJoinedEvent(
        user=UserRef.from_dict(payload.get("user")),
        timestamp=payload.get("timestamp"),
    )


def _parse_user_left(payload: Dict[str, Any]) -> UserLeftEvent:
    return UserLeftEvent(
        user=UserRef.from_dict(payload.get("user")),
        timestamp=payload.get("timestamp"),
    )


_PARSERS: Dict[ServerEvent, Callable[[Dict[str, Any]], Event]] = {
    ServerEvent.TASK_CREATED: _parse_task_created,
    ServerEvent.TASK_UPDATED: _parse_task_updated,
    ServerEvent.TASK_DELETED: _parse_task_deleted,
    ServerEvent.USER_JOINED_PROJECT: _parse_user_joined,
    ServerEvent.USER_LEFT_PROJECT: _parse_user_left,
}


def parse_push_event(name: Union[ServerEvent, str], payload: Any) -> Event:
    """Build a typed push event from a server message.

    Args:
        name: Server message name (must be one of the push events).
        payload: Raw decoded payload.

    Returns:
        The typed event.

    Raises:
        EventPayloadError: If the payload is malformed.
        ValueError: If ``name`` is not a push event.
    """
    server_event = ServerEvent(name)
    parser = _PARSERS.get(server_event)
    if parser is None:
        raise ValueError(f"Not a push event: {server_event.value}")
    return parser(_require_dict(payload, server_event.value))


def error_message(payload: Any) -> str:
    """Extract a human-readable message from an error payload.

    Transport errors arrive as plain strings or ``{"message": ...}`` objects.
    """
    if isinstance(payload, dict):
        message = payload.get("message")
        if message:
            return str(message)
    if payload is None:
        return "Unknown error"
    return str(payload)
