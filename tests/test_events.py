"""Tests for event normalization and routing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from errors import NotFoundError, ValidationError
from events import normalize_event
from models import Flashcard, QuizResult, StudySession


class TestNormalizeEvent:
    def test_camel_case_aliases(self):
        event = normalize_event({
            "type": "quiz_submission",
            "userId": "3",
            "quizId": 7,
            "answers": [{"questionIndex": 0, "selectedAnswer": "A"}],
        })
        assert event.kind == "quiz_submission"
        assert event.learner_id == 3
        assert event.payload == {"quiz_id": 7, "answers": [(0, "A")]}

    def test_occurred_at_parsed(self):
        event = normalize_event({
            "kind": "session_pause", "learner_id": 1, "session_id": 4,
            "occurred_at": "2024-03-04T10:00:00+00:00",
        })
        assert event.occurred_at == datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)

    def test_default_occurred_at(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        event = normalize_event({"kind": "session_start", "learner_id": 1, "subject": "Art"}, now=now)
        assert event.occurred_at == now

    def test_fractional_id_rejected(self):
        with pytest.raises(ValidationError):
            normalize_event({"kind": "session_pause", "learner_id": 1.9, "session_id": 4})
        event = normalize_event({"kind": "session_pause", "learner_id": 2.0, "session_id": 4})
        assert event.learner_id == 2

    @pytest.mark.parametrize("raw", [
        None,
        [],
        {"kind": "teleport", "learner_id": 1},
        {"kind": "session_start", "subject": "Art"},
        {"kind": "session_start", "learner_id": "abc", "subject": "Art"},
        {"kind": "session_start", "learner_id": 1, "subject": ""},
        {"kind": "session_pause", "learner_id": 1},
        {"kind": "flashcard_review", "learner_id": 1, "card_id": "fc_1", "outcome": "meh"},
        {"kind": "quiz_submission", "learner_id": 1, "quiz_id": 1, "answers": []},
        {"kind": "quiz_submission", "learner_id": 1, "quiz_id": 1, "answers": [{"question_index": 0}]},
        {"kind": "session_tick", "learner_id": 1, "session_id": 1, "metrics": "fast"},
        {"kind": "session_pause", "learner_id": 1, "session_id": 1, "occurred_at": "yesterday"},
    ])
    def test_malformed_events(self, raw):
        with pytest.raises(ValidationError):
            normalize_event(raw)


class TestIngest:
    def test_session_lifecycle_via_events(self, engine, clock):
        session = engine.ingest({"kind": "session_start", "learnerId": 1, "subject": "Physics"})
        assert isinstance(session, StudySession)
        clock.advance(seconds=90)
        engine.ingest({"kind": "session_tick", "learner_id": 1, "session_id": session.id,
                       "metrics": {"focus_score": 70}})
        done = engine.ingest({"kind": "session_complete", "learner_id": 1, "sessionId": session.id})
        assert done.status == "completed"
        assert done.accumulated_seconds == 90
        assert done.metrics["focus_score"] == 70

    def test_quiz_submission_event(self, engine, sample_quiz):
        result = engine.ingest({
            "kind": "quiz_submission", "learner_id": 1, "quiz_id": sample_quiz.id,
            "answers": [[0, "Mitochondria"], [1, "DNA"], [2, "Chloroplast"]],
        })
        assert isinstance(result, QuizResult)
        assert result.score == 75

    def test_flashcard_review_event(self, engine):
        card, = engine.add_cards(1, [{"front": "Q", "back": "A"}])
        reviewed = engine.ingest({"kind": "flashcard_review", "learner_id": 1,
                                  "cardId": card.id, "outcome": "hard"})
        assert isinstance(reviewed, Flashcard)
        assert reviewed.difficulty == 4

    def test_session_event_for_wrong_learner(self, engine):
        session = engine.start_session(1, "Physics")
        with pytest.raises(NotFoundError):
            engine.ingest({"kind": "session_pause", "learner_id": 2, "session_id": session.id})
        assert engine.sessions.get(session.id).status == "active"

    def test_card_event_for_wrong_learner(self, engine):
        card, = engine.add_cards(1, [{"front": "Q", "back": "A"}])
        with pytest.raises(NotFoundError):
            engine.ingest({"kind": "flashcard_review", "learner_id": 2, "card_id": card.id, "outcome": "easy"})

    def test_reported_time_does_not_stamp_state(self, engine, clock):
        session = engine.ingest({
            "kind": "session_start", "learner_id": 1, "subject": "Physics",
            "occurred_at": "2024-03-01T08:00:00+00:00",
        })
        assert session.started_at == clock.now
