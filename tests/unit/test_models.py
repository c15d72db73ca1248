"""Unit tests for taskroom.models.

Tests cover:
- Identifier coercion
- Due date parsing
- Task and Project payload conversion
- Task field validation
"""

from datetime import date, datetime

import pytest

from taskroom.models import (
    Project,
    RoomMembership,
    Task,
    TaskValidationError,
    UserRef,
    coerce_id,
    parse_due_date,
    validate_task_fields,
)


class TestCoerceId:
    @pytest.mark.parametrize("value, expected", [
        (42, 42),
        ("42", 42),
        (" 7 ", 7),
    ])
    def test_accepts_positive_integers(self, value, expected):
        assert coerce_id(value) == expected

    @pytest.mark.parametrize("value", [0, -3, "0", "abc", "4.5", 4.0, None, True, "", "٣"])
    def test_rejects_everything_else(self, value):
        assert coerce_id(value) is None


class TestParseDueDate:
    def test_server_timestamp_keeps_calendar_date(self):
        assert parse_due_date("2025-03-01T00:00:00.000Z") == date(2025, 3, 1)

    def test_datetime_and_date_inputs(self):
        assert parse_due_date(datetime(2025, 3, 1, 12, 30)) == date(2025, 3, 1)
        assert parse_due_date(date(2025, 3, 1)) == date(2025, 3, 1)

    def test_empty_is_none(self):
        assert parse_due_date(None) is None
        assert parse_due_date("") is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_due_date("next tuesday")


class TestTask:
    def test_from_dict_reads_server_payload(self, task_payload):
        task = Task.from_dict(task_payload(5, title="Ship it", completed=True, project_id=3))

        assert task.id == 5
        assert task.title == "Ship it"
        assert task.completed is True
        assert task.project_id == 3
        assert task.due_date == date(2099, 1, 15)

    def test_unknown_fields_survive_round_trip(self, task_payload):
        task = Task.from_dict(task_payload(5, priority="high"))

        assert task.extra == {"priority": "high"}
        assert task.to_dict()["priority"] == "high"

    def test_to_dict_serializes_due_date(self):
        task = Task(id=1, title="Plan", due_date=date(2030, 2, 1))
        assert task.to_dict()["due_date"] == "2030-02-01"

    def test_from_dict_without_id_raises(self):
        with pytest.raises(ValueError, match="no valid id"):
            Task.from_dict({"title": "Orphan"})


class TestProject:
    def test_from_dict_with_tasks_and_statistics(self, task_payload):
        project = Project.from_dict({
            "id": "3",
            "name": "Website",
            "statistics": {"total_tasks": 4, "completed_tasks": 1},
            "tasks": [task_payload(1), task_payload(2)],
        })

        assert project.id == 3
        assert [t.id for t in project.tasks] == [1, 2]
        assert project.statistics.pending_tasks == 3

    def test_from_dict_without_id_raises(self):
        with pytest.raises(ValueError):
            Project.from_dict({"name": "Nameless"})


class TestUserRef:
    def test_bare_string_is_username(self):
        assert UserRef.from_dict("alice") == UserRef(username="alice")

    def test_non_dict_is_anonymous(self):
        assert UserRef.from_dict(None) == UserRef()


def test_room_membership_to_dict():
    assert RoomMembership(3, "Website").to_dict() == {"project_id": 3, "project_name": "Website"}


class TestValidateTaskFields:
    today = date(2030, 1, 10)

    def test_valid_fields(self):
        assert validate_task_fields("Write docs", "User guide", "2030-01-11", today=self.today) == {}

    def test_required_fields(self):
        errors = validate_task_fields("  ", "", None, today=self.today)

        assert errors == {
            "title": "Title is required",
            "description": "Description is required",
            "due_date": "Due date is required",
        }

    def test_short_title(self):
        errors = validate_task_fields("ab", "desc", "2030-01-11", today=self.today)
        assert errors["title"] == "Title must be at least 3 characters long"

    def test_past_due_date_rejected_unless_completed(self):
        errors = validate_task_fields("Write docs", "desc", "2030-01-01", today=self.today)
        assert errors["due_date"] == "Due date cannot be in the past"

        assert validate_task_fields(
            "Write docs", "desc", "2030-01-01", completed=True, today=self.today
        ) == {}

    def test_invalid_due_date(self):
        errors = validate_task_fields("Write docs", "desc", "soon", today=self.today)
        assert errors["due_date"] == "Due date is invalid"

    def test_validation_error_carries_fields(self):
        error = TaskValidationError({"title": "Title is required"})

        assert error.errors == {"title": "Title is required"}
        assert "title: Title is required" in str(error)
