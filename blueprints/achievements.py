"""Badge catalog and per-learner badge progress."""

from __future__ import annotations

from flask import Blueprint, jsonify

from blueprints import json_body
from extensions import EngineManager

bp = Blueprint("achievements", __name__)


@bp.route("/api/badges")
def api_badge_catalog():
    engine = EngineManager.get_engine()
    return jsonify({"badges": [b.to_dict() for b in engine.registry.values()]})


@bp.route("/api/learners/<int:learner_id>/badges")
def api_learner_badges(learner_id):
    engine = EngineManager.get_engine()
    progress = engine.badge_progress(learner_id)
    return jsonify({
        "badges": progress,
        "earned_count": sum(1 for p in progress if p["earned"]),
    })


@bp.route("/api/learners/<int:learner_id>/badges/evaluate", methods=["POST"])
def api_evaluate_badges(learner_id):
    engine = EngineManager.get_engine()
    earned = engine.evaluate(learner_id, json_body().get("trigger"))
    return jsonify({"new_badges": [b.to_dict() for b in earned]})
