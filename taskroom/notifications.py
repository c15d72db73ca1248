"""Presence tracking and the user-facing notification feed.

Both are fed by push events of the current room and reset when the room
membership is lost.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    SECONDARY = "secondary"


_ids = itertools.count(1)


@dataclass
class Notification:
    """One message shown to the user."""
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    created_at: float = field(default_factory=time.time)
    id: int = field(default_factory=lambda: next(_ids))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "level": self.level.value,
            "created_at": self.created_at,
        }


class NotificationFeed:
    """Newest-first feed holding at most ``max_items`` unexpired entries.

    Expiry is evaluated lazily whenever the feed is read or written.
    """

    def __init__(
        self,
        max_items: int = 5,
        ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: List[Notification] = []

    def add(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> Notification:
        notification = Notification(message=message, level=level, created_at=self._clock())
        self._prune()
        self._items.insert(0, notification)
        del self._items[self.max_items:]
        return notification

    def items(self) -> Tuple[Notification, ...]:
        self._prune()
        return tuple(self._items)

    def dismiss(self, notification_id: int) -> bool:
        before = len(self._items)
        self._items = [n for n in self._items if n.id != notification_id]
        return len(self._items) != before

    def clear(self) -> None:
        self._items = []

    def __len__(self) -> int:
        return len(self.items())

    def _prune(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        self._items = [n for n in self._items if n.created_at > cutoff]


class PresenceTracker:
    """Usernames of other users currently seen in the room."""

    def __init__(self) -> None:
        self._users: Set[str] = set()

    @property
    def active_users(self) -> Tuple[str, ...]:
        return tuple(sorted(self._users))

    def joined(self, username: str) -> bool:
        if not username or username in self._users:
            return False
        self._users.add(username)
        return True

    def left(self, username: str) -> bool:
        if username not in self._users:
            return False
        self._users.discard(username)
        return True

    def clear(self) -> None:
        self._users.clear()

    def __contains__(self, username: object) -> bool:
        return username in self._users


def describe_user(username: Optional[str]) -> str:
    return username or "someone"
