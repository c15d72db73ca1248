"""Services package for taskroom.

Services are UI-agnostic, so the CLI and the status API share the same
session logic.

Services:
- SessionCoordinator: Connection, room, dispatch and task state of one session
- ApiClient: Async client for the task/project REST API
"""

from .api_client import ApiClient, ApiError
from .session_coordinator import SessionCoordinator

__all__ = [
    "ApiClient",
    "ApiError",
    "SessionCoordinator",
]
