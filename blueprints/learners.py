"""Learner registration and profile routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from blueprints import json_body
from extensions import EngineManager

bp = Blueprint("learners", __name__)


@bp.route("/api/learners", methods=["POST"])
def api_register_learner():
    data = json_body()
    engine = EngineManager.get_engine()
    learner = engine.register_learner(
        data.get("name", ""),
        data.get("timezone", "UTC"),
        data.get("preferences"),
    )
    return jsonify(learner.to_dict()), 201


@bp.route("/api/learners/<int:learner_id>")
def api_learner(learner_id):
    engine = EngineManager.get_engine()
    learner = engine.get_learner(learner_id)
    streak = engine.get_streak(learner_id)
    active = engine.active_session(learner_id)
    return jsonify({
        **learner.to_dict(),
        "current_streak": streak.current_streak,
        "max_streak": streak.max_streak,
        "active_session": active.to_dict(engine.clock()) if active else None,
    })
