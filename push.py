"""
Web Push delivery.

Uses pywebpush with VAPID authentication to send push notifications to a
learner's subscribed browsers. Delivery is best-effort: expired subscriptions
are pruned, other failures are logged and skipped.
"""

from __future__ import annotations

import json
import logging

from flask import current_app

from database import get_db
from errors import ValidationError
from models import to_iso, utcnow

logger = logging.getLogger(__name__)


def save_subscription(learner_id: int, subscription: dict) -> None:
    """Store (or refresh) a browser PushSubscription for a learner."""
    endpoint = subscription.get("endpoint") if isinstance(subscription, dict) else None
    keys = subscription.get("keys", {}) if isinstance(subscription, dict) else {}
    if not endpoint:
        raise ValidationError("subscription endpoint is required")
    db = get_db()
    db.execute(
        "INSERT INTO push_subscriptions (learner_id, endpoint, p256dh, auth, created_at) "
        "VALUES (?, ?, ?, ?, ?) "
        "ON CONFLICT(endpoint) DO UPDATE SET learner_id=excluded.learner_id, "
        "p256dh=excluded.p256dh, auth=excluded.auth",
        (learner_id, endpoint, keys.get("p256dh", ""), keys.get("auth", ""), to_iso(utcnow())),
    )
    db.commit()


def send_push(learner_id: int, title: str, body: str, url: str = "") -> int:
    """Send a push notification to all subscriptions for a learner.

    Returns the number of successful deliveries.
    """
    private_key = current_app.config.get("VAPID_PRIVATE_KEY", "")
    claims_email = current_app.config.get("VAPID_CLAIMS_EMAIL", "mailto:admin@example.com")
    if not private_key:
        return 0

    from pywebpush import WebPushException, webpush

    db = get_db()
    rows = db.execute(
        "SELECT endpoint, p256dh, auth FROM push_subscriptions WHERE learner_id = ?",
        (learner_id,),
    ).fetchall()

    payload = json.dumps({"title": title, "body": body, "url": url})
    sent = 0
    for row in rows:
        subscription_info = {
            "endpoint": row["endpoint"],
            "keys": {"p256dh": row["p256dh"], "auth": row["auth"]},
        }
        try:
            webpush(
                subscription_info=subscription_info,
                data=payload,
                vapid_private_key=private_key,
                vapid_claims={"sub": claims_email},
            )
            sent += 1
        except WebPushException as e:
            # Expired subscription
            if e.response is not None and e.response.status_code in (404, 410):
                db.execute("DELETE FROM push_subscriptions WHERE endpoint = ?", (row["endpoint"],))
                db.commit()
            else:
                logger.warning("Push to learner %d failed: %s", learner_id, e)
    return sent
