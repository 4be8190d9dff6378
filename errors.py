"""
Typed failures raised by the progress engine.

Engine operations raise these; the HTTP layer maps each kind to a status code
via register_error_handlers().
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify

logger = logging.getLogger(__name__)


class StudyEngineError(Exception):
    """Base class for every failure the engine reports to callers."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ConflictError(StudyEngineError):
    """An invariant would be violated, e.g. a second open session."""

    status_code = 409


class InvalidStateError(StudyEngineError):
    """The requested transition is not allowed from the current state."""

    status_code = 409


class NotFoundError(StudyEngineError):
    status_code = 404


class ValidationError(StudyEngineError):
    """Malformed input (empty answers, bad outcome, missing field)."""

    status_code = 400


def register_error_handlers(app: Flask) -> None:
    """Render engine errors as JSON with the matching status code."""

    @app.errorhandler(StudyEngineError)
    def _handle_engine_error(exc: StudyEngineError):
        if exc.status_code >= 500:
            logger.error("engine error: %s", exc.message)
        else:
            logger.info("%s: %s", exc.kind, exc.message)
        return jsonify(exc.to_dict()), exc.status_code
