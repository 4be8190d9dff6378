"""Tests for web push delivery and the notification sink."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pywebpush import WebPushException

from db_stores import NotificationStoreDB
from errors import ValidationError
from events import DomainEvent
from notifications import NotificationSink
from push import save_subscription, send_push

SUBSCRIPTION = {
    "endpoint": "https://push.example.org/sub/abc",
    "keys": {"p256dh": "pkey", "auth": "akey"},
}


def _subscriptions(db, learner_id=1):
    return db.execute(
        "SELECT * FROM push_subscriptions WHERE learner_id = ?", (learner_id,)
    ).fetchall()


class TestSaveSubscription:
    def test_save_and_refresh(self, db):
        save_subscription(1, SUBSCRIPTION)
        save_subscription(1, {**SUBSCRIPTION, "keys": {"p256dh": "new", "auth": "akey"}})
        rows = _subscriptions(db)
        assert len(rows) == 1
        assert rows[0]["p256dh"] == "new"

    def test_endpoint_required(self, app):
        with app.app_context():
            with pytest.raises(ValidationError):
                save_subscription(1, {"keys": {}})


class TestSendPush:
    def test_no_vapid_key_sends_nothing(self, db):
        save_subscription(1, SUBSCRIPTION)
        with patch("pywebpush.webpush") as mock_push:
            assert send_push(1, "Title", "Body") == 0
        mock_push.assert_not_called()

    def test_delivers_to_subscriptions(self, app, db):
        app.config["VAPID_PRIVATE_KEY"] = "private"
        save_subscription(1, SUBSCRIPTION)
        with patch("pywebpush.webpush") as mock_push:
            assert send_push(1, "Title", "Body", "/badges") == 1
        kwargs = mock_push.call_args.kwargs
        assert kwargs["subscription_info"]["endpoint"] == SUBSCRIPTION["endpoint"]
        assert '"url": "/badges"' in kwargs["data"]

    def test_expired_subscription_pruned(self, app, db):
        app.config["VAPID_PRIVATE_KEY"] = "private"
        save_subscription(1, SUBSCRIPTION)
        gone = WebPushException("gone", response=MagicMock(status_code=410))
        with patch("pywebpush.webpush", side_effect=gone):
            assert send_push(1, "Title", "Body") == 0
        assert _subscriptions(db) == []

    def test_other_failures_keep_subscription(self, app, db):
        app.config["VAPID_PRIVATE_KEY"] = "private"
        save_subscription(1, SUBSCRIPTION)
        err = WebPushException("server error", response=MagicMock(status_code=500))
        with patch("pywebpush.webpush", side_effect=err):
            assert send_push(1, "Title", "Body") == 0
        assert len(_subscriptions(db)) == 1


class TestNotificationSink:
    def test_streak_milestone(self, db):
        NotificationSink().handle(DomainEvent("streak_updated", 1, {"current_streak": 7, "max_streak": 7}))
        notif, = NotificationStoreDB(1).recent()
        assert notif.type == "streak_milestone"
        assert notif.title == "7-day study streak!"

    def test_non_milestone_streak_ignored(self, db):
        NotificationSink().handle(DomainEvent("streak_updated", 1, {"current_streak": 4, "max_streak": 4}))
        assert NotificationStoreDB(1).recent() == []

    def test_unrelated_event_ignored(self, db):
        NotificationSink().handle(DomainEvent("flashcard_reviewed", 1, {"card_id": "x", "outcome": "easy"}))
        assert NotificationStoreDB(1).unread_count() == 0
