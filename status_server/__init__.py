"""Status API package for taskroom.

Exposes a running session's state and a few session actions over HTTP for
a rendering layer.
"""

from .api import (
    # App factory
    create_app,
    get_coordinator,
    # Response models
    StatusResponse,
    TaskResponse,
    TaskListResponse,
    TaskStatsResponse,
    NotificationResponse,
    RoomActionResponse,
)

__all__ = [
    "create_app",
    "get_coordinator",
    "StatusResponse",
    "TaskResponse",
    "TaskListResponse",
    "TaskStatsResponse",
    "NotificationResponse",
    "RoomActionResponse",
]
