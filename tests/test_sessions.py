"""Tests for the study session lifecycle."""

from __future__ import annotations

import pytest

from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from sessions import merge_metrics


class TestStartSession:
    def test_start_creates_active_session(self, engine, clock):
        session = engine.start_session(1, "Biology")
        assert session.status == "active"
        assert session.started_at == clock.now
        assert session.learner_id == 1

    def test_second_start_conflicts(self, engine):
        engine.start_session(1, "Biology")
        with pytest.raises(ConflictError):
            engine.start_session(1, "Chemistry")

    def test_second_start_conflicts_while_paused(self, engine):
        s = engine.start_session(1, "Biology")
        engine.pause_session(s.id)
        with pytest.raises(ConflictError):
            engine.start_session(1, "Chemistry")

    def test_other_learner_can_start(self, engine):
        engine.start_session(1, "Biology")
        s2 = engine.start_session(2, "History")
        assert s2.status == "active"

    def test_start_after_complete(self, engine):
        s = engine.start_session(1, "Biology")
        engine.complete_session(s.id)
        s2 = engine.start_session(1, "Biology")
        assert s2.id != s.id

    def test_unknown_learner(self, engine):
        with pytest.raises(NotFoundError):
            engine.start_session(999, "Biology")

    def test_blank_subject(self, engine):
        with pytest.raises(ValidationError):
            engine.start_session(1, "   ")

    def test_preferences_snapshot(self, engine):
        s = engine.start_session(1, "Biology")
        stored = engine.sessions.get(s.id)
        assert stored.learning_style == "visual"
        assert stored.pace == "fast"
        assert stored.detail_level == "detailed"


class TestDuration:
    def test_pause_excluded_from_duration(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(seconds=10)
        engine.pause_session(s.id)
        clock.advance(seconds=300)
        engine.resume_session(s.id)
        clock.advance(seconds=5)
        done = engine.complete_session(s.id)
        assert done.accumulated_seconds == 15
        assert engine.sessions.get(s.id).accumulated_seconds == 15

    def test_complete_from_paused(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(seconds=40)
        engine.pause_session(s.id)
        clock.advance(minutes=30)
        done = engine.complete_session(s.id)
        assert done.accumulated_seconds == 40
        assert done.status == "completed"
        assert done.ended_at == clock.now

    def test_live_elapsed_while_active(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(seconds=25)
        ticked = engine.tick_session(s.id)
        assert ticked.elapsed_seconds(clock.now) == 25

    def test_elapsed_frozen_while_paused(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(seconds=12)
        engine.pause_session(s.id)
        clock.advance(hours=2)
        assert engine.sessions.get(s.id).elapsed_seconds(clock.now) == 12

    def test_breaks_recorded(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(seconds=10)
        engine.pause_session(s.id)
        clock.advance(seconds=60)
        engine.resume_session(s.id)
        stored = engine.sessions.get(s.id)
        assert len(stored.breaks) == 1
        assert stored.breaks[0]["seconds"] == 60
        assert stored.breaks[0]["ended_at"] is not None


class TestTransitions:
    def test_pause_paused_session(self, engine):
        s = engine.start_session(1, "Biology")
        engine.pause_session(s.id)
        with pytest.raises(InvalidStateError):
            engine.pause_session(s.id)

    def test_resume_active_session(self, engine):
        s = engine.start_session(1, "Biology")
        with pytest.raises(InvalidStateError):
            engine.resume_session(s.id)

    def test_completed_is_terminal(self, engine):
        s = engine.start_session(1, "Biology")
        engine.complete_session(s.id)
        for op in (engine.pause_session, engine.resume_session, engine.complete_session):
            with pytest.raises(InvalidStateError):
                op(s.id)
        with pytest.raises(InvalidStateError):
            engine.tick_session(s.id, {"focus_score": 50})

    def test_repeated_complete_keeps_duration(self, engine, clock):
        s = engine.start_session(1, "Biology")
        clock.advance(seconds=30)
        engine.complete_session(s.id)
        clock.advance(seconds=30)
        with pytest.raises(InvalidStateError):
            engine.complete_session(s.id)
        assert engine.sessions.get(s.id).accumulated_seconds == 30

    def test_unknown_session(self, engine):
        with pytest.raises(NotFoundError):
            engine.pause_session(12345)


class TestMetrics:
    def test_tick_merges_metrics(self, engine):
        s = engine.start_session(1, "Biology")
        engine.tick_session(s.id, {"focus_score": 80, "milestones": ["read ch. 1"]})
        engine.tick_session(s.id, {"completed_tasks": 2, "milestones": ["read ch. 1", "notes"]})
        stored = engine.sessions.get(s.id)
        assert stored.metrics == {
            "focus_score": 80,
            "completed_tasks": 2,
            "milestones": ["read ch. 1", "notes"],
        }

    def test_unknown_metric_rejected(self):
        with pytest.raises(ValidationError):
            merge_metrics({}, {"mood": "happy"})

    def test_focus_score_range(self):
        with pytest.raises(ValidationError):
            merge_metrics({}, {"focus_score": 150})

    def test_negative_tasks_rejected(self):
        with pytest.raises(ValidationError):
            merge_metrics({}, {"completed_tasks": -1})
