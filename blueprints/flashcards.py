"""Flashcard creation, due queue and review routes."""

from __future__ import annotations

from itertools import islice

from flask import Blueprint, current_app, jsonify, request

from blueprints import json_body
from content_generation import ContentGenerationError, generate_flashcards
from errors import ValidationError
from extensions import EngineManager, limiter

bp = Blueprint("flashcards", __name__)


@bp.route("/api/learners/<int:learner_id>/flashcards", methods=["POST"])
def api_flashcard_create(learner_id):
    data = json_body()
    cards = data.get("cards")
    if cards is None and data.get("front"):
        cards = [data]
    engine = EngineManager.get_engine()
    saved = engine.add_cards(learner_id, cards)
    return jsonify({"cards": [c.to_dict() for c in saved]}), 201


@bp.route("/api/learners/<int:learner_id>/flashcards/due")
def api_flashcards_due(learner_id):
    engine = EngineManager.get_engine()
    limit = request.args.get("limit", 50, type=int)
    due = engine.due_cards(learner_id)
    return jsonify({
        "cards": [c.to_dict() for c in islice(due, max(0, limit))],
        "due_count": len(due),
    })


@bp.route("/api/flashcards/<card_id>/review", methods=["POST"])
def api_flashcard_review(card_id):
    engine = EngineManager.get_engine()
    card = engine.review_card(card_id, json_body().get("outcome", ""))
    return jsonify(card.to_dict())


@bp.route("/api/learners/<int:learner_id>/flashcards/generate", methods=["POST"])
@limiter.limit(lambda: current_app.config.get("CHAT_RATE_LIMIT", "30 per hour"))
def api_flashcard_generate(learner_id):
    data = json_body()
    content = str(data.get("content", "")).strip()
    if not content:
        raise ValidationError("content is required")
    engine = EngineManager.get_engine()
    engine.get_learner(learner_id)

    try:
        drafts = generate_flashcards(
            content,
            provider=current_app.config.get("CONTENT_PROVIDER"),
            model=current_app.config.get("CONTENT_MODEL") or None,
        )
    except ContentGenerationError as e:
        return jsonify({"error": str(e), "kind": "ContentGenerationError"}), 502
    if not drafts:
        return jsonify({"cards": []})

    subject = str(data.get("subject", "")).strip()
    for draft in drafts:
        draft["subject"] = subject
    saved = engine.add_cards(learner_id, drafts)
    return jsonify({"cards": [c.to_dict() for c in saved]}), 201
