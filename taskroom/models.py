"""Domain models for tasks, projects and room membership.

Tasks reach the client from two places, REST responses and push-event
payloads. Both carry the same JSON shape, so a single ``from_dict`` handles
them. Unknown keys are kept in ``extra`` and written back by ``to_dict`` so
a round trip through the client never drops server fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


TITLE_MIN_LENGTH = 3

_TASK_FIELDS = {
    "id",
    "title",
    "description",
    "due_date",
    "completed",
    "project_id",
    "user_id",
    "created_at",
    "updated_at",
}


def coerce_id(value: Any) -> Optional[int]:
    """Coerce an identifier to a positive int.

    Accepts ints and strings of ASCII digits (surrounding whitespace allowed).
    Returns None for anything else, including booleans, floats and zero.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            number = int(text)
            return number if number > 0 else None
    return None


def parse_due_date(value: Any) -> Optional[date]:
    """Parse a due date from a date, datetime or ISO 8601 string.

    The server returns timestamps such as ``2025-03-01T00:00:00.000Z``; only
    the calendar date is significant.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValueError(f"Invalid due date: {value!r}")


@dataclass
class UserRef:
    """A user as referenced in push payloads (``createdBy``, ``user``...)."""
    id: Optional[int] = None
    username: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username}

    @classmethod
    def from_dict(cls, data: Any) -> "UserRef":
        """Create from a payload value.

        A bare string is treated as a username, which is how the server
        reports ``updatedByUsername``.
        """
        if isinstance(data, str):
            return cls(username=data)
        if not isinstance(data, dict):
            return cls()
        return cls(
            id=coerce_id(data.get("id")),
            username=str(data.get("username") or ""),
        )


@dataclass
class Task:
    """A task as held in the local collection."""
    id: int
    title: str
    description: str = ""
    due_date: Optional[date] = None
    completed: bool = False
    project_id: Optional[int] = None
    user_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = dict(self.extra)
        result.update({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed": self.completed,
            "project_id": self.project_id,
        })
        if self.user_id is not None:
            result["user_id"] = self.user_id
        if self.created_at is not None:
            result["created_at"] = self.created_at
        if self.updated_at is not None:
            result["updated_at"] = self.updated_at
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from a REST or push-event payload.

        Raises:
            ValueError: If the payload has no usable id.
        """
        task_id = coerce_id(data.get("id"))
        if task_id is None:
            raise ValueError(f"Task payload has no valid id: {data.get('id')!r}")
        return cls(
            id=task_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            due_date=parse_due_date(data.get("due_date")),
            completed=bool(data.get("completed", False)),
            project_id=coerce_id(data.get("project_id")),
            user_id=coerce_id(data.get("user_id")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            extra={k: v for k, v in data.items() if k not in _TASK_FIELDS},
        )


@dataclass
class ProjectStatistics:
    """Per-project task counts reported by ``/projects/with-tasks``."""
    total_tasks: int = 0
    completed_tasks: int = 0

    @property
    def pending_tasks(self) -> int:
        return self.total_tasks - self.completed_tasks


@dataclass
class Project:
    """A project as returned by the REST API."""
    id: int
    name: str
    description: str = ""
    user_id: Optional[int] = None
    statistics: ProjectStatistics = field(default_factory=ProjectStatistics)
    tasks: List[Task] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "user_id": self.user_id,
            "statistics": {
                "total_tasks": self.statistics.total_tasks,
                "completed_tasks": self.statistics.completed_tasks,
            },
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        project_id = coerce_id(data.get("id"))
        if project_id is None:
            raise ValueError(f"Project payload has no valid id: {data.get('id')!r}")
        stats = data.get("statistics") or {}
        return cls(
            id=project_id,
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            user_id=coerce_id(data.get("user_id")),
            statistics=ProjectStatistics(
                total_tasks=int(stats.get("total_tasks") or 0),
                completed_tasks=int(stats.get("completed_tasks") or 0),
            ),
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
        )


@dataclass(frozen=True)
class RoomMembership:
    """The project room this session currently belongs to."""
    project_id: int
    project_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"project_id": self.project_id, "project_name": self.project_name}


# =============================================================================
# Field validation
# =============================================================================


class TaskValidationError(ValueError):
    """Raised when task fields fail local validation.

    Attributes:
        errors: Mapping of field name to a human-readable message.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__(
            "; ".join(f"{name}: {message}" for name, message in self.errors.items())
        )


def validate_task_fields(
    title: Optional[str],
    description: Optional[str],
    due_date: Any,
    completed: bool = False,
    today: Optional[date] = None,
) -> Dict[str, str]:
    """Validate task form fields.

    A due date in the past is only accepted for tasks that are already
    completed.

    Returns:
        Mapping of field name to error message; empty when valid.
    """
    errors: Dict[str, str] = {}
    today = today or date.today()

    clean_title = (title or "").strip()
    if not clean_title:
        errors["title"] = "Title is required"
    elif len(clean_title) < TITLE_MIN_LENGTH:
        errors["title"] = f"Title must be at least {TITLE_MIN_LENGTH} characters long"

    if not (description or "").strip():
        errors["description"] = "Description is required"

    try:
        parsed = parse_due_date(due_date)
    except ValueError:
        errors["due_date"] = "Due date is invalid"
    else:
        if parsed is None:
            errors["due_date"] = "Due date is required"
        elif parsed < today and not completed:
            errors["due_date"] = "Due date cannot be in the past"

    return errors
