"""
Test fixtures for the study progress engine.

Provides app, client, engine, learner and a controllable clock, backed by a
file-based SQLite database per test.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Callable clock the engine reads instead of the wall clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def app(tmp_path, clock):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "ENGINE_CLOCK": clock,
        "VAPID_PRIVATE_KEY": "",
    })

    with app.app_context():
        from database import init_db, run_migrations, get_db

        init_db()
        run_migrations()

        # Seed test learners
        db = get_db()
        db.execute(
            "INSERT INTO learners (id, name, timezone, preferences, created_at) VALUES (1, ?, 'UTC', ?, ?)",
            ("Test Learner", json.dumps({
                "learning_style": "visual", "pace": "fast", "detail_level": "detailed",
                "example_frequency": "many", "assistant_tone": "encouraging",
                "grade_level": "undergraduate", "research_areas": ["biology"],
            }), "2024-01-01T00:00:00.000000+00:00"),
        )
        db.execute(
            "INSERT INTO learners (id, name, timezone, preferences, created_at) VALUES (2, ?, ?, '{}', ?)",
            ("Pacific Learner", "America/Los_Angeles", "2024-01-01T00:00:00.000000+00:00"),
        )
        db.commit()

        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    from extensions import EngineManager
    return EngineManager.get_engine()


@pytest.fixture
def learner(app):
    from db_stores import LearnerStoreDB
    return LearnerStoreDB.load(1)


@pytest.fixture
def db(app):
    from database import get_db
    return get_db()


@pytest.fixture
def sample_quiz(engine):
    """Four-question quiz owned by learner 1."""
    return engine.create_quiz(1, "Biology", 2, [
        {"question": "Powerhouse of the cell?", "options": ["Mitochondria", "Nucleus", "Ribosome"],
         "correct_answer": "Mitochondria", "explanation": "Mitochondria produce ATP."},
        {"question": "Carrier of genetic code?", "options": ["DNA", "ATP", "Lipid"],
         "correct_answer": "DNA", "explanation": "DNA stores hereditary information."},
        {"question": "Site of photosynthesis?", "options": ["Chloroplast", "Vacuole"],
         "correct_answer": "Chloroplast", "explanation": "Chloroplasts hold chlorophyll."},
        {"question": "Basic unit of life?", "options": ["Cell", "Atom", "Organ"],
         "correct_answer": "Cell", "explanation": "All organisms are made of cells."},
    ])
