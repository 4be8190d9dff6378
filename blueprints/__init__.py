"""
Blueprint registration for the study progress API.

All routes live under /api; blueprints are registered without URL prefixes.
"""

from __future__ import annotations

from flask import request

from errors import ValidationError


def json_body() -> dict:
    """The request's JSON object, or ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def register_blueprints(app):
    from blueprints.learners import bp as learners_bp
    from blueprints.study import bp as study_bp
    from blueprints.quizzes import bp as quizzes_bp
    from blueprints.flashcards import bp as flashcards_bp
    from blueprints.achievements import bp as achievements_bp
    from blueprints.dashboard import bp as dashboard_bp
    from blueprints.ingest import bp as ingest_bp
    from blueprints.chat import bp as chat_bp
    from blueprints.inbox import bp as inbox_bp

    app.register_blueprint(learners_bp)
    app.register_blueprint(study_bp)
    app.register_blueprint(quizzes_bp)
    app.register_blueprint(flashcards_bp)
    app.register_blueprint(achievements_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(ingest_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(inbox_bp)
