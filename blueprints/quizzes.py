"""Quiz creation, attempts and submission."""

from __future__ import annotations

from flask import Blueprint, jsonify

from blueprints import json_body
from errors import ValidationError
from extensions import EngineManager

bp = Blueprint("quizzes", __name__)


def _learner_id(data: dict) -> int:
    learner_id = data.get("learner_id")
    if isinstance(learner_id, bool) or not isinstance(learner_id, int):
        raise ValidationError("learner_id is required")
    return learner_id


@bp.route("/api/learners/<int:learner_id>/quizzes", methods=["POST"])
def api_create_quiz(learner_id):
    data = json_body()
    engine = EngineManager.get_engine()
    quiz = engine.create_quiz(
        learner_id,
        data.get("subject", ""),
        data.get("difficulty", 1),
        data.get("questions"),
    )
    return jsonify(quiz.to_dict()), 201


@bp.route("/api/learners/<int:learner_id>/quizzes/results")
def api_quiz_results(learner_id):
    engine = EngineManager.get_engine()
    return jsonify({"results": [r.to_dict() for r in engine.results_for(learner_id)]})


@bp.route("/api/quizzes/<int:quiz_id>/attempts", methods=["POST"])
def api_open_attempt(quiz_id):
    engine = EngineManager.get_engine()
    attempt = engine.open_attempt(quiz_id, _learner_id(json_body()))
    return jsonify({"attempt_id": attempt.id, "quiz_id": quiz_id, "status": attempt.status}), 201


@bp.route("/api/quizzes/<int:quiz_id>/submit", methods=["POST"])
def api_submit_quiz(quiz_id):
    data = json_body()
    engine = EngineManager.get_engine()
    result = engine.submit_quiz(
        quiz_id,
        _learner_id(data),
        data.get("answers"),
        data.get("attempt_id"),
    )
    return jsonify(result.to_dict())
