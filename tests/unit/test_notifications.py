"""Unit tests for the notification feed and presence tracker."""

import pytest

from taskroom.notifications import NotificationFeed, NotificationLevel, PresenceTracker, describe_user


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestNotificationFeed:
    def test_newest_first_and_capped(self, clock):
        feed = NotificationFeed(max_items=3, ttl_seconds=5.0, clock=clock)
        for i in range(5):
            feed.add(f"message {i}")

        assert [n.message for n in feed.items()] == ["message 4", "message 3", "message 2"]

    def test_entries_expire(self, clock):
        feed = NotificationFeed(ttl_seconds=5.0, clock=clock)
        feed.add("old", NotificationLevel.WARNING)
        clock.now += 3
        feed.add("new")

        clock.now += 2.5
        assert [n.message for n in feed.items()] == ["new"]

        clock.now += 3
        assert len(feed) == 0

    def test_dismiss(self, clock):
        feed = NotificationFeed(clock=clock)
        keep = feed.add("keep")
        drop = feed.add("drop")

        assert feed.dismiss(drop.id) is True
        assert feed.dismiss(drop.id) is False
        assert [n.id for n in feed.items()] == [keep.id]

    def test_to_dict(self, clock):
        notification = NotificationFeed(clock=clock).add("hi", NotificationLevel.SUCCESS)

        assert notification.to_dict()["level"] == "success"
        assert notification.to_dict()["created_at"] == 1000.0


class TestPresenceTracker:
    def test_join_and_leave(self):
        presence = PresenceTracker()

        assert presence.joined("dave") is True
        assert presence.joined("dave") is False
        assert presence.joined("") is False
        assert presence.joined("carol") is True
        assert presence.active_users == ("carol", "dave")

        assert presence.left("dave") is True
        assert presence.left("dave") is False
        assert "dave" not in presence

    def test_clear(self):
        presence = PresenceTracker()
        presence.joined("dave")
        presence.clear()

        assert presence.active_users == ()


def test_describe_user():
    assert describe_user("bob") == "bob"
    assert describe_user("") == "someone"
