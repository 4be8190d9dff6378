"""
Study Progress Companion: Flask web application.

JSON API over the study progress engine: sessions, quizzes, flashcards,
streaks, badges, stats and tutoring chat.
"""

from __future__ import annotations

import os
from typing import Any

from flask import Flask, Response, jsonify

import database
from blueprints import register_blueprints
from errors import register_error_handlers
from extensions import limiter


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    # Load config
    from config import config_by_name
    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()

    app.secret_key = app.config.get("SECRET_KEY", "dev-key-change-in-production")

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    # Register database teardown
    database.init_app(app)

    # Typed engine errors -> JSON responses
    register_error_handlers(app)

    # Rate limiter (disabled in testing unless asked for)
    limiter.init_app(app)
    if app.config.get("TESTING") and not app.config.get("RATELIMIT_ENABLED"):
        limiter.enabled = False

    register_blueprints(app)

    # Persist the badge catalog once so progress rows reference real badges
    with app.app_context():
        from db_stores import BadgeCatalogDB
        from extensions import EngineManager
        database.init_db()
        database.run_migrations()
        app._db_initialized = True
        engine = EngineManager.get_engine()
        inserted = BadgeCatalogDB.sync(list(engine.registry.values()))
        if inserted:
            app.logger.info("Stored %d badge definition(s)", inserted)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
