"""Raw learner event ingest."""

from __future__ import annotations

from flask import Blueprint, jsonify

from blueprints import json_body
from extensions import EngineManager
from models import StudySession

bp = Blueprint("ingest", __name__)


@bp.route("/api/events", methods=["POST"])
def api_ingest_event():
    engine = EngineManager.get_engine()
    outcome = engine.ingest(json_body())
    if isinstance(outcome, StudySession):
        body = outcome.to_dict(engine.clock())
    else:
        body = outcome.to_dict()
    return jsonify({"kind": type(outcome).__name__, "result": body}), 202
