"""Tutoring chat backed by the content generation service."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify

from blueprints import json_body
from content_generation import ContentGenerationError, generate_content
from errors import ValidationError
from extensions import EngineManager, limiter

logger = logging.getLogger(__name__)

bp = Blueprint("chat", __name__)


@bp.route("/api/learners/<int:learner_id>/chat", methods=["POST"])
@limiter.limit(lambda: current_app.config.get("CHAT_RATE_LIMIT", "30 per hour"))
def api_chat(learner_id):
    data = json_body()
    message = str(data.get("message", "")).strip()
    if not message:
        raise ValidationError("message is required")

    learner = EngineManager.get_engine().get_learner(learner_id)
    try:
        content = generate_content(
            message,
            {"preferences": learner.preferences, "subject": data.get("subject")},
            provider=current_app.config.get("CONTENT_PROVIDER"),
            model=current_app.config.get("CONTENT_MODEL") or None,
        )
    except ContentGenerationError as e:
        logger.warning("Chat for learner %d failed: %s", learner_id, e)
        return jsonify({
            "error": "The tutor is unavailable right now. Please try again.",
            "kind": "ContentGenerationError",
        }), 502
    return jsonify(content.to_dict())
