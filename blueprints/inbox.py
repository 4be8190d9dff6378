"""Notification inbox and push subscription routes."""

from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, jsonify, request

from blueprints import json_body
from db_stores import NotificationStoreDB
from extensions import EngineManager
from push import save_subscription

bp = Blueprint("inbox", __name__)


@bp.route("/api/learners/<int:learner_id>/notifications")
def api_notifications(learner_id):
    EngineManager.get_engine().get_learner(learner_id)
    store = NotificationStoreDB(learner_id)
    limit = request.args.get("limit", 20, type=int)
    return jsonify({
        "notifications": [asdict(n) for n in store.recent(limit)],
        "unread_count": store.unread_count(),
    })


@bp.route("/api/learners/<int:learner_id>/notifications/<notif_id>/read", methods=["POST"])
def api_notification_read(learner_id, notif_id):
    EngineManager.get_engine().get_learner(learner_id)
    NotificationStoreDB(learner_id).mark_read(notif_id)
    return jsonify({"success": True})


@bp.route("/api/learners/<int:learner_id>/push/subscribe", methods=["POST"])
def api_push_subscribe(learner_id):
    EngineManager.get_engine().get_learner(learner_id)
    save_subscription(learner_id, json_body())
    return jsonify({"success": True}), 201
