"""Project room membership.

A session belongs to zero or one project rooms. The client only mirrors
what the server confirms: ``join_room`` sends a request, and membership is
populated from the ``joined_project`` payload, never from the requested id.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from .events import ClientMessage
from .models import RoomMembership, coerce_id

if TYPE_CHECKING:
    from .connection import ConnectionManager


logger = logging.getLogger(__name__)


class RoomSession:
    """Join/leave semantics over one established connection.

    A RoomSession lives exactly as long as the ConnectionManager that owns
    it; a replaced connection starts with an empty membership and no
    pending join.
    """

    def __init__(self, connection: "ConnectionManager"):
        self._connection = connection
        self._membership: Optional[RoomMembership] = None
        self._pending_project_id: Optional[int] = None

    @property
    def membership(self) -> Optional[RoomMembership]:
        """The confirmed room, or None."""
        return self._membership

    @property
    def pending_project_id(self) -> Optional[int]:
        """Last project id requested and not yet confirmed."""
        return self._pending_project_id

    @property
    def in_room(self) -> bool:
        return self._membership is not None

    async def join_room(self, project_id: Any) -> bool:
        """Ask the server to add this session to a project room.

        Non-numeric or non-positive ids are dropped without a network call.
        Joining while already in another room is allowed; the server evicts
        the old membership before confirming the new one.

        Returns:
            True if a join request was sent.
        """
        if not self._connection.is_connected:
            logger.debug(f"Not connected, ignoring join for project {project_id!r}")
            return False

        coerced = coerce_id(project_id)
        if coerced is None:
            logger.debug(f"Ignoring join for invalid project id {project_id!r}")
            return False

        sent = await self._connection.emit(ClientMessage.JOIN_PROJECT, coerced)
        if sent:
            self._pending_project_id = coerced
            logger.info(f"Requested to join project {coerced}")
        return sent

    async def leave_room(self) -> bool:
        """Ask the server to remove this session from its current room.

        Returns:
            True if a leave request was sent.
        """
        if not self._connection.is_connected:
            return False
        if self._membership is None:
            return False

        sent = await self._connection.emit(ClientMessage.LEAVE_PROJECT)
        if sent:
            self._pending_project_id = None
            logger.info(f"Requested to leave project {self._membership.project_id}")
        return sent

    def on_joined(self, payload: Any) -> Optional[RoomMembership]:
        """Apply a ``joined_project`` confirmation.

        The payload is authoritative. A payload without a usable
        ``projectId`` leaves membership unchanged.
        """
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring joined_project with payload {payload!r}")
            return self._membership

        project_id = coerce_id(payload.get("projectId"))
        if project_id is None:
            logger.warning(
                f"Ignoring joined_project without valid projectId: {payload.get('projectId')!r}"
            )
            return self._membership

        self._membership = RoomMembership(
            project_id=project_id,
            project_name=str(payload.get("projectName") or ""),
        )
        if self._pending_project_id == project_id:
            self._pending_project_id = None
        logger.info(
            f"Joined project {project_id} ({self._membership.project_name or 'unnamed'})"
        )
        return self._membership

    def on_left(self, payload: Any = None) -> None:
        """Apply a ``left_project`` confirmation."""
        if self._membership is not None:
            logger.info(f"Left project {self._membership.project_id}")
        self._membership = None

    def clear(self) -> None:
        """Drop membership and any pending join (disconnect or teardown)."""
        self._membership = None
        self._pending_project_id = None
