"""Tests for the badge catalog and evaluator."""

from __future__ import annotations

from datetime import timedelta

import pytest

from badges import BadgeRegistry, create_initial_badges
from db_stores import BadgeProgressDB
from errors import ValidationError
from models import LearnerBadgeProgress


def _complete_session(engine, clock, subject="Biology", learner_id=1):
    s = engine.start_session(learner_id, subject)
    clock.advance(minutes=15)
    return engine.complete_session(s.id)


class TestCatalog:
    def test_catalog_contents(self):
        badges = create_initial_badges()
        ids = [b.id for b in badges]
        assert len(ids) == len(set(ids)) == 13
        assert {"quick_learner", "quiz_master", "study_streak", "consistent_learner", "card_shark"} <= set(ids)

    def test_image_urls(self):
        registry = BadgeRegistry(create_initial_badges())
        assert registry["hands_on_hero"].image_url == "/badges/hands-on-hero.svg"

    def test_registry_is_read_only(self):
        registry = BadgeRegistry(create_initial_badges())
        with pytest.raises(TypeError):
            registry["new"] = registry["quick_learner"]
        with pytest.raises(TypeError):
            registry._badges["new"] = registry["quick_learner"]

    def test_duplicate_ids_rejected(self):
        badges = create_initial_badges()
        with pytest.raises(ValueError):
            BadgeRegistry(badges + badges[:1])

    def test_for_trigger(self):
        registry = BadgeRegistry(create_initial_badges())
        streak_ids = {b.id for b in registry.for_trigger("streak_updated")}
        assert streak_ids == {"study_streak", "consistent_learner"}
        assert len(registry.for_trigger(None)) == len(registry)

    def test_catalog_persisted_at_startup(self, db):
        count = db.execute("SELECT COUNT(*) AS cnt FROM badges").fetchone()["cnt"]
        assert count == 13


class TestEvaluate:
    def test_first_session_earns_quick_learner(self, engine, clock):
        _complete_session(engine, clock)
        progress = BadgeProgressDB(1).get("quick_learner")
        assert progress.earned is True
        assert progress.current == 1
        assert progress.target == 1
        assert progress.earned_at

    def test_progress_tracks_true_counter(self, engine, clock):
        for subject in ("Biology", "Chemistry", "Physics"):
            _complete_session(engine, clock, subject)
        explorer = BadgeProgressDB(1).get("knowledge_explorer")
        assert explorer.current == 3
        assert explorer.earned is False

        # Replaying the trigger does not inflate the counter
        engine.evaluate(1, "session_completed")
        engine.evaluate(1, "session_completed")
        assert BadgeProgressDB(1).get("knowledge_explorer").current == 3

    def test_earned_is_one_way_latch(self, engine, clock):
        _complete_session(engine, clock)
        earned_at = BadgeProgressDB(1).get("quick_learner").earned_at
        clock.advance(days=3)
        engine.evaluate(1, None)
        engine.evaluate(1, "session_completed")
        progress = BadgeProgressDB(1).get("quick_learner")
        assert progress.earned is True
        assert progress.earned_at == earned_at

    def test_store_refuses_to_unearn(self, engine, clock):
        _complete_session(engine, clock)
        store = BadgeProgressDB(1)
        store.upsert(LearnerBadgeProgress(learner_id=1, badge_id="quick_learner", current=0, target=1))
        assert store.get("quick_learner").earned is True

    def test_newly_earned_returned_once(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(minutes=5)
        engine.sessions.complete(s.id)  # bypasses the cascade
        first = engine.evaluate(1, "session_completed")
        second = engine.evaluate(1, "session_completed")
        assert "quick_learner" in {b.id for b in first}
        assert second == []

    def test_preference_badge_counts_matching_sessions(self, engine, clock):
        for _ in range(5):
            _complete_session(engine, clock)
        # learner 1 studies as a fast-paced visual learner
        assert BadgeProgressDB(1).get("fast_track_master").earned is True
        assert BadgeProgressDB(1).get("deep_dive_scholar").earned is True
        assert BadgeProgressDB(1).get("visual_master").current == 5
        assert BadgeProgressDB(1).get("audio_ace").current == 0

    def test_perfect_quizzes(self, engine, sample_quiz):
        perfect = [(0, "Mitochondria"), (1, "DNA"), (2, "Chloroplast"), (3, "Cell")]
        for _ in range(3):
            engine.submit_quiz(sample_quiz.id, 1, perfect)
        assert BadgeProgressDB(1).get("quiz_master").earned is True

    def test_streak_badge(self, engine, clock):
        for _ in range(7):
            _complete_session(engine, clock)
            clock.advance(days=1)
        assert BadgeProgressDB(1).get("study_streak").earned is True
        assert BadgeProgressDB(1).get("consistent_learner").current == 7

    def test_card_shark(self, engine):
        card, = engine.add_cards(1, [{"front": "Q", "back": "A"}])
        for _ in range(50):
            engine.review_card(card.id, "hard")
        assert BadgeProgressDB(1).get("card_shark").earned is True

    def test_unknown_trigger(self, engine):
        with pytest.raises(ValidationError):
            engine.evaluate(1, "logged_in")

    def test_progress_for_new_learner(self, engine):
        progress = engine.badge_progress(2)
        assert len(progress) == 13
        assert all(p["current"] == 0 and not p["earned"] for p in progress)
