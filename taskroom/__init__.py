"""Taskroom - real-time project-room sync client for a collaborative task tracker."""

__all__ = [
    "__version__",
    "config",
    "models",
    "events",
    "connection",
    "rooms",
    "dispatcher",
    "reconciler",
    "notifications",
    "services",
]

__version__ = "0.1.0"

from taskroom import config
from taskroom import models
from taskroom import events
from taskroom import connection
from taskroom import rooms
from taskroom import dispatcher
from taskroom import reconciler
from taskroom import notifications
from taskroom import services
