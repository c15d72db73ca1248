"""Unit tests for push-event parsing.

Tests cover:
- Typed event construction for every push message
- Malformed payload rejection
- Error message extraction
"""

import pytest

from taskroom.events import (
    EventKind,
    EventPayloadError,
    PUSH_EVENT_KINDS,
    ServerEvent,
    TaskCreatedEvent,
    TaskDeletedEvent,
    TaskUpdatedEvent,
    UserJoinedEvent,
    UserLeftEvent,
    error_message,
    parse_push_event,
)


class TestParsePushEvent:
    def test_task_created(self, task_payload):
        event = parse_push_event(
            "task_created",
            {"task": task_payload(9, title="New"), "createdBy": {"id": 2, "username": "bob"}},
        )

        assert isinstance(event, TaskCreatedEvent)
        assert event.kind == EventKind.TASK_CREATED
        assert event.task.id == 9
        assert event.created_by.username == "bob"

    def test_task_updated_accepts_username_only(self, task_payload):
        event = parse_push_event(
            ServerEvent.TASK_UPDATED,
            {"task": task_payload(9, completed=True), "updatedByUsername": "carol"},
        )

        assert isinstance(event, TaskUpdatedEvent)
        assert event.task.completed is True
        assert event.updated_by.username == "carol"

    def test_task_deleted(self):
        event = parse_push_event(
            "task_deleted",
            {"taskId": "9", "taskTitle": "Old", "deletedBy": {"username": "bob"}},
        )

        assert isinstance(event, TaskDeletedEvent)
        assert event.task_id == 9
        assert event.task_title == "Old"

    def test_presence_events(self):
        joined = parse_push_event("user_joined_project", {"user": {"id": 4, "username": "dave"}})
        left = parse_push_event("user_left_project", {"user": {"id": 4, "username": "dave"}})

        assert isinstance(joined, UserJoinedEvent)
        assert isinstance(left, UserLeftEvent)
        assert joined.user.username == left.user.username == "dave"

    def test_every_push_event_has_a_slot(self):
        assert set(PUSH_EVENT_KINDS.values()) == set(EventKind)

    @pytest.mark.parametrize("name, payload", [
        ("task_created", None),
        ("task_created", {"createdBy": {}}),
        ("task_updated", {"task": {"title": "no id"}}),
        ("task_deleted", {"taskId": "x"}),
        ("user_joined_project", ["dave"]),
    ])
    def test_malformed_payloads_raise(self, name, payload):
        with pytest.raises(EventPayloadError):
            parse_push_event(name, payload)

    def test_non_push_event_raises(self):
        with pytest.raises(ValueError, match="Not a push event"):
            parse_push_event("joined_project", {"projectId": 1})

    def test_to_dict_includes_kind(self, task_payload):
        event = parse_push_event("task_created", {"task": task_payload(1)})
        data = event.to_dict()

        assert data["kind"] == "task_created"
        assert data["task"]["id"] == 1


class TestErrorMessage:
    def test_dict_with_message(self):
        assert error_message({"message": "Not authorized"}) == "Not authorized"

    def test_plain_string(self):
        assert error_message("boom") == "boom"

    def test_missing(self):
        assert error_message(None) == "Unknown error"
