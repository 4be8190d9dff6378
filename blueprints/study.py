"""Study session routes: start, pause, resume, tick, complete."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from blueprints import json_body
from extensions import EngineManager

bp = Blueprint("study", __name__)


def _session_json(engine, session, status=200):
    return jsonify(session.to_dict(engine.clock())), status


@bp.route("/api/learners/<int:learner_id>/sessions", methods=["POST"])
def api_start_session(learner_id):
    engine = EngineManager.get_engine()
    session = engine.start_session(learner_id, json_body().get("subject", ""))
    return _session_json(engine, session, 201)


@bp.route("/api/learners/<int:learner_id>/sessions")
def api_sessions(learner_id):
    engine = EngineManager.get_engine()
    limit = request.args.get("limit", type=int)
    now = engine.clock()
    return jsonify({
        "sessions": [s.to_dict(now) for s in engine.sessions_for(learner_id, limit)],
    })


@bp.route("/api/sessions/<int:session_id>/pause", methods=["POST"])
def api_pause_session(session_id):
    engine = EngineManager.get_engine()
    return _session_json(engine, engine.pause_session(session_id))


@bp.route("/api/sessions/<int:session_id>/resume", methods=["POST"])
def api_resume_session(session_id):
    engine = EngineManager.get_engine()
    return _session_json(engine, engine.resume_session(session_id))


@bp.route("/api/sessions/<int:session_id>/tick", methods=["POST"])
def api_tick_session(session_id):
    engine = EngineManager.get_engine()
    return _session_json(engine, engine.tick_session(session_id, json_body().get("metrics")))


@bp.route("/api/sessions/<int:session_id>/complete", methods=["POST"])
def api_complete_session(session_id):
    engine = EngineManager.get_engine()
    session = engine.complete_session(session_id)
    streak = engine.get_streak(session.learner_id)
    body = session.to_dict(engine.clock())
    body["streak"] = {"current": streak.current_streak, "max": streak.max_streak}
    return jsonify(body)
