"""
Shared test fixtures for taskroom tests.

This module provides pytest fixtures for unit tests, including:
- A fake Socket.IO client and factory standing in for the transport
- Fast retry configuration
- Task payload builders
- Environment isolation for config and token lookup
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from socketio import exceptions as sio_exceptions

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from taskroom.config import ReconnectConfig, ServerConfig, TaskroomConfig


# =============================================================================
# Fake transport
# =============================================================================


class FakeSocketClient:
    """In-memory stand-in for socketio.AsyncClient.

    ``connect`` fails ``fail_times`` times before succeeding, or never
    returns when ``hang`` is set. Server messages are injected with ``fire``.
    """

    def __init__(self, fail_times: int = 0, error: str = "Connection refused", hang: bool = False):
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.emitted: List[Tuple[str, Any]] = []
        self.connect_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.disconnect_calls = 0
        self.shutdown_calls = 0
        self.reconnecting = False
        self.reconnect_aborted = False
        self.connected = False
        self.sid: Optional[str] = None
        self._fail_times = fail_times
        self._error = error
        self._hang = hang

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_calls.append((url, kwargs))
        if self._hang:
            await asyncio.sleep(3600)
        if len(self.connect_calls) <= self._fail_times:
            raise sio_exceptions.ConnectionError(self._error)
        self.connected = True
        self.sid = f"sid-{len(self.connect_calls)}"
        await self.fire("connect")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def shutdown(self) -> None:
        """Mirror AsyncClient.shutdown: disconnect, or abort a pending reconnect."""
        self.shutdown_calls += 1
        if self.connected:
            await self.disconnect()
        elif self.reconnecting:
            self.reconnecting = False
            self.reconnect_aborted = True

    async def drop(self, reason: str = "transport close") -> None:
        """Simulate a server-side drop that starts the reconnect loop."""
        self.connected = False
        self.reconnecting = True
        await self.fire("disconnect", reason)

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    async def fire(self, event: str, *args: Any) -> None:
        """Deliver a server message through the registered handler."""
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)


class FakeClientFactory:
    """Client factory recording every FakeSocketClient it builds."""

    def __init__(self, **client_kwargs: Any):
        self.client_kwargs = client_kwargs
        self.clients: List[FakeSocketClient] = []
        self.reconnect_configs: List[ReconnectConfig] = []

    def __call__(self, reconnect: ReconnectConfig) -> FakeSocketClient:
        self.reconnect_configs.append(reconnect)
        client = FakeSocketClient(**self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeSocketClient:
        return self.clients[-1]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's environment out of config and token lookup."""
    monkeypatch.delenv("TASKROOM_CONFIG", raising=False)
    monkeypatch.delenv("TASKROOM_TOKEN", raising=False)


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def fast_reconnect() -> ReconnectConfig:
    """Retry budget without delays."""
    return ReconnectConfig(attempts=3, delay=0.0, handshake_timeout=5.0)


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(url="http://rooms.test", api_base_url="http://rooms.test/api")


@pytest.fixture
def taskroom_config(server_config, fast_reconnect) -> TaskroomConfig:
    return TaskroomConfig(server=server_config, reconnect=fast_reconnect)


def make_task_payload(
    task_id: int,
    title: str = "Write report",
    completed: bool = False,
    project_id: int = 1,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a task dict as the server sends it."""
    payload = {
        "id": task_id,
        "title": title,
        "description": f"Description of {title}",
        "due_date": "2099-01-15T00:00:00.000Z",
        "completed": completed,
        "project_id": project_id,
        "user_id": 7,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def task_payload() -> Callable[..., Dict[str, Any]]:
    return make_task_payload
