"""
Singleton management for the study engine and the rate limiter.

The engine is built lazily from app config so that sinks and the clock can
be swapped per app (tests build their own).
"""

from __future__ import annotations

from flask import Flask, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["200 per hour"])


class EngineManager:
    """Lazy-loaded StudyEngine, one per app."""

    @staticmethod
    def build(app: Flask, clock=None):
        from badges import BadgeRegistry, create_initial_badges
        from engine import StudyEngine
        from models import utcnow
        from notifications import DocumentSink, NotificationSink

        sinks = []
        if app.config.get("NOTIFICATIONS_ENABLED", True):
            sinks.append(NotificationSink())
        if app.config.get("DOCUMENTS_ENABLED", True):
            sinks.append(DocumentSink())
        engine = StudyEngine(
            registry=BadgeRegistry(create_initial_badges()),
            sinks=sinks,
            clock=clock or app.config.get("ENGINE_CLOCK") or utcnow,
        )
        app.extensions["study_engine"] = engine
        return engine

    @classmethod
    def get_engine(cls):
        app = current_app._get_current_object()
        engine = app.extensions.get("study_engine")
        if engine is None:
            engine = cls.build(app)
        return engine

    @staticmethod
    def reset(app: Flask) -> None:
        app.extensions.pop("study_engine", None)
