"""Stats dashboard route."""

from __future__ import annotations

from flask import Blueprint, jsonify

from extensions import EngineManager

bp = Blueprint("dashboard", __name__)


@bp.route("/api/learners/<int:learner_id>/stats")
def api_stats(learner_id):
    engine = EngineManager.get_engine()
    return jsonify(engine.get_stats(learner_id).to_dict())
