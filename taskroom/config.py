"""Configuration loader for taskroom.

Loads and validates taskroom.yml against schemas/taskroom-config.schema.json
and exposes it as structured dataclasses.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from jsonschema import Draft7Validator


SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"

CONFIG_ENV_VAR = "TASKROOM_CONFIG"
TOKEN_ENV_VAR = "TASKROOM_TOKEN"


def _read_schema(schema_name: str) -> Dict[str, Any]:
    """Load a JSON schema from the package schemas directory."""
    schema_path = SCHEMA_DIR / schema_name
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))


def validate_against_schema(data: Any, schema_name: str) -> Tuple[bool, List[str]]:
    """Validate data against a JSON schema.

    Args:
        data: The data to validate
        schema_name: Name of schema file in the schemas directory

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    schema = _read_schema(schema_name)
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))

    if not errors:
        return True, []

    messages: List[str] = []
    for err in errors[:50]:
        location = ".".join([str(p) for p in err.absolute_path]) or "<root>"
        messages.append(f"{location}: {err.message}")

    if len(errors) > 50:
        messages.append(f"... and {len(errors) - 50} more errors")

    return False, messages


@dataclass
class ServerConfig:
    """Where the real-time and REST endpoints live."""
    url: str = "http://localhost:5000"
    api_base_url: str = "http://localhost:5000/api"
    socketio_path: str = "socket.io"
    transports: List[str] = field(default_factory=lambda: ["websocket", "polling"])


@dataclass
class ReconnectConfig:
    """Connection retry budget.

    The delay is fixed between attempts; there is no backoff.
    """
    attempts: int = 5
    delay: float = 1.0
    handshake_timeout: float = 20.0


@dataclass
class NotificationConfig:
    """Notification feed limits."""
    max_items: int = 5
    ttl_seconds: float = 5.0


@dataclass
class TaskPolicyConfig:
    """Task mutation policy."""
    revert_on_failure: bool = False


@dataclass
class TaskroomConfig:
    """Full taskroom configuration with structured access."""

    path: Optional[Path] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)

    server: ServerConfig = field(default_factory=ServerConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    tasks: TaskPolicyConfig = field(default_factory=TaskPolicyConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server": {
                "url": self.server.url,
                "api_base_url": self.server.api_base_url,
                "socketio_path": self.server.socketio_path,
                "transports": list(self.server.transports),
            },
            "reconnect": {
                "attempts": self.reconnect.attempts,
                "delay": self.reconnect.delay,
                "handshake_timeout": self.reconnect.handshake_timeout,
            },
            "notifications": {
                "max_items": self.notifications.max_items,
                "ttl_seconds": self.notifications.ttl_seconds,
            },
            "tasks": {
                "revert_on_failure": self.tasks.revert_on_failure,
            },
        }


def _parse_server(server_data: Dict[str, Any]) -> ServerConfig:
    """Parse server configuration dict."""
    url = server_data.get("url", "http://localhost:5000").rstrip("/")
    return ServerConfig(
        url=url,
        api_base_url=server_data.get("api_base_url", f"{url}/api").rstrip("/"),
        socketio_path=server_data.get("socketio_path", "socket.io"),
        transports=server_data.get("transports", ["websocket", "polling"]),
    )


def _parse_reconnect(reconnect_data: Dict[str, Any]) -> ReconnectConfig:
    """Parse reconnect configuration dict."""
    return ReconnectConfig(
        attempts=reconnect_data.get("attempts", 5),
        delay=float(reconnect_data.get("delay", 1.0)),
        handshake_timeout=float(reconnect_data.get("handshake_timeout", 20.0)),
    )


def _parse_notifications(notification_data: Dict[str, Any]) -> NotificationConfig:
    return NotificationConfig(
        max_items=notification_data.get("max_items", 5),
        ttl_seconds=float(notification_data.get("ttl_seconds", 5.0)),
    )


def parse_config(raw_data: Dict[str, Any], path: Optional[Path] = None) -> TaskroomConfig:
    """Validate and parse an already-loaded configuration mapping.

    Raises:
        ValueError: If the data is invalid against the schema.
    """
    valid, errors = validate_against_schema(raw_data, "taskroom-config.schema.json")
    if not valid:
        where = f" in {path}" if path else ""
        raise ValueError(
            f"Invalid configuration{where}:\n" +
            "\n".join(f"  - {e}" for e in errors)
        )

    tasks_data = raw_data.get("tasks", {})

    return TaskroomConfig(
        path=path,
        raw_data=raw_data,
        server=_parse_server(raw_data.get("server", {})),
        reconnect=_parse_reconnect(raw_data.get("reconnect", {})),
        notifications=_parse_notifications(raw_data.get("notifications", {})),
        tasks=TaskPolicyConfig(
            revert_on_failure=tasks_data.get("revert_on_failure", False),
        ),
    )


def load_config(
    config_path: Optional[Path] = None,
    base_dir: Optional[Path] = None,
) -> TaskroomConfig:
    """Load and validate taskroom configuration from a YAML file.

    An explicitly given path (argument or TASKROOM_CONFIG) must exist. When
    neither is given and the default file is absent, defaults are returned.

    Args:
        config_path: Path to taskroom.yml.
        base_dir: Directory holding .taskroom/. Defaults to the current
            working directory.

    Returns:
        TaskroomConfig instance with parsed configuration.

    Raises:
        FileNotFoundError: If an explicitly requested config file doesn't exist.
        ValueError: If config is invalid against schema.
    """
    explicit = config_path is not None

    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        config_path = Path(env_config)
        explicit = True

    if config_path is None:
        config_path = get_default_config_path(base_dir)
    config_path = config_path.resolve()

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        return TaskroomConfig()

    raw_data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    return parse_config(raw_data, path=config_path)


def get_default_config_path(base_dir: Optional[Path] = None) -> Path:
    """Get the default configuration file path."""
    if base_dir is None:
        base_dir = Path.cwd()
    return base_dir / ".taskroom" / "taskroom.yml"


def get_token(explicit: Optional[str] = None) -> Optional[str]:
    """Resolve the credential token from an explicit value or TASKROOM_TOKEN."""
    token = explicit or os.environ.get(TOKEN_ENV_VAR)
    return token or None
