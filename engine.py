"""
Study progress engine facade.

Every state-changing operation follows the same shape: look up the owning
learner, take that learner's lock scope(s), apply the primary mutation, run
the derived recomputations (streaks, badges) as explicit calls, release the
locks, then hand the emitted DomainEvents to the sinks.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from badges import (
    FLASHCARD_REVIEWED,
    QUIZ_SCORED,
    SESSION_COMPLETED,
    STREAK_UPDATED,
    BadgeEvaluator,
    BadgeRegistry,
    create_initial_badges,
)
from database import get_db
from db_stores import LearnerStoreDB
from errors import NotFoundError, ValidationError
from events import (
    FLASHCARD_REVIEW,
    QUIZ_SUBMISSION,
    SESSION_COMPLETE,
    SESSION_PAUSE,
    SESSION_RESUME,
    SESSION_START,
    SESSION_TICK,
    DomainEvent,
    LearnerEvent,
    normalize_event,
    require_text,
)
from locks import LearnerLockRegistry
from models import (
    ASSISTANT_TONES,
    DETAIL_LEVELS,
    EXAMPLE_FREQUENCIES,
    LEARNING_STYLES,
    PACES,
    Badge,
    Flashcard,
    Learner,
    LearnerStreak,
    LearningPreferences,
    Quiz,
    QuizAttempt,
    QuizResult,
    StudySession,
    StudyStatsView,
    utcnow,
)
from quiz_scoring import QuizScorer
from sessions import SessionManager
from spaced_repetition import DueCards, SpacedRepetitionScheduler
from stats import StatsAggregator
from streaks import StreakCalculator

logger = logging.getLogger(__name__)

_PREFERENCE_CHOICES = {
    "learning_style": LEARNING_STYLES,
    "pace": PACES,
    "detail_level": DETAIL_LEVELS,
    "example_frequency": EXAMPLE_FREQUENCIES,
    "assistant_tone": ASSISTANT_TONES,
}


class EventSink(Protocol):
    def handle(self, event: DomainEvent) -> None: ...


def parse_preferences(raw: Optional[dict]) -> LearningPreferences:
    if raw is not None and not isinstance(raw, dict):
        raise ValidationError("preferences must be an object")
    prefs = LearningPreferences.from_dict(raw)
    for name, choices in _PREFERENCE_CHOICES.items():
        if getattr(prefs, name) not in choices:
            raise ValidationError(f"{name} must be one of: {', '.join(choices)}")
    if not isinstance(prefs.research_areas, list) or not all(isinstance(a, str) for a in prefs.research_areas):
        raise ValidationError("research_areas must be a list of strings")
    return prefs


class StudyEngine:
    def __init__(
        self,
        registry: Optional[BadgeRegistry] = None,
        locks: Optional[LearnerLockRegistry] = None,
        sinks: Iterable[EventSink] = (),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.clock = clock
        self.registry = registry if registry is not None else BadgeRegistry(create_initial_badges())
        self.locks = locks or LearnerLockRegistry()
        self.sinks = list(sinks)
        self.sessions = SessionManager(clock)
        self.streaks = StreakCalculator()
        self.quizzes = QuizScorer(clock)
        self.scheduler = SpacedRepetitionScheduler(clock)
        self.badges = BadgeEvaluator(self.registry, clock)
        self.stats = StatsAggregator(self.registry, clock)

    # ── Learners ─────────────────────────────────────────────────

    def register_learner(self, name: str, timezone: str = "UTC",
                         preferences: Optional[dict] = None) -> Learner:
        name = require_text(name, "name")
        if not isinstance(timezone, str):
            raise ValidationError("timezone must be an IANA zone name")
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError, TypeError):
            raise ValidationError(f"unknown timezone: {timezone}") from None
        learner = LearnerStoreDB.create(name, timezone, parse_preferences(preferences))
        logger.info("Registered learner %d", learner.id)
        return learner

    def get_learner(self, learner_id: int) -> Learner:
        learner = LearnerStoreDB.load(learner_id)
        if learner is None:
            raise NotFoundError(f"Learner {learner_id} not found")
        return learner

    # ── Sessions ─────────────────────────────────────────────────

    def start_session(self, learner_id: int, subject: str) -> StudySession:
        learner = self.get_learner(learner_id)
        with self.locks.session_scope(learner.id):
            return self.sessions.start(learner, subject)

    def pause_session(self, session_id: int) -> StudySession:
        learner_id = self.sessions.get(session_id).learner_id
        with self.locks.session_scope(learner_id):
            return self.sessions.pause(session_id)

    def resume_session(self, session_id: int) -> StudySession:
        learner_id = self.sessions.get(session_id).learner_id
        with self.locks.session_scope(learner_id):
            return self.sessions.resume(session_id)

    def tick_session(self, session_id: int, metrics: Optional[dict] = None) -> StudySession:
        learner_id = self.sessions.get(session_id).learner_id
        with self.locks.session_scope(learner_id):
            return self.sessions.tick(session_id, metrics)

    def complete_session(self, session_id: int) -> StudySession:
        learner = self.get_learner(self.sessions.get(session_id).learner_id)
        with self.locks.session_scope(learner.id):
            session = self.sessions.complete(session_id)
            events = [DomainEvent(SESSION_COMPLETED, learner.id, {
                "session_id": session.id,
                "subject": session.subject,
                "duration": session.accumulated_seconds,
                "metrics": session.metrics,
            })]
            with self.locks.progress_scope(learner.id):
                events += self._after_completion(learner, session.id, session.ended_at)
        self._dispatch(events)
        return session

    def replay_completion(self, session_id: int) -> LearnerStreak:
        """Re-deliver a completion to the streak and badge recomputation."""
        session = self.sessions.get(session_id)
        if session.ended_at is None:
            raise ValidationError(f"Session {session_id} is not completed")
        learner = self.get_learner(session.learner_id)
        with self.locks.progress_scope(learner.id):
            events = self._after_completion(learner, session.id, session.ended_at)
        self._dispatch(events)
        return self.streaks.get_streak(learner, learner.local_date(self.clock()))

    def active_session(self, learner_id: int) -> Optional[StudySession]:
        self.get_learner(learner_id)
        return self.sessions.active_for(learner_id)

    def sessions_for(self, learner_id: int, limit: Optional[int] = None) -> list[StudySession]:
        self.get_learner(learner_id)
        return self.sessions.sessions_for(learner_id, limit)

    def _after_completion(self, learner: Learner, session_id: int,
                          completed_at: datetime) -> list[DomainEvent]:
        streak, changed = self.streaks.record_completion(learner, session_id, completed_at)
        events: list[DomainEvent] = []
        if changed:
            events.append(DomainEvent(STREAK_UPDATED, learner.id, {
                "current_streak": streak.current_streak,
                "max_streak": streak.max_streak,
            }))
        earned = self.badges.evaluate(learner, SESSION_COMPLETED)
        if changed:
            earned += self.badges.evaluate(learner, STREAK_UPDATED)
        return events + self._badge_events(learner.id, earned)

    # ── Quizzes ──────────────────────────────────────────────────

    def create_quiz(self, learner_id: int, subject: str, difficulty: int, questions: Any) -> Quiz:
        self.get_learner(learner_id)
        return self.quizzes.create_quiz(learner_id, subject, difficulty, questions)

    def open_attempt(self, quiz_id: int, learner_id: int) -> QuizAttempt:
        self.get_learner(learner_id)
        return self.quizzes.open_attempt(quiz_id, learner_id)

    def submit_quiz(self, quiz_id: int, learner_id: int, answers: Any,
                    attempt_id: Optional[int] = None) -> QuizResult:
        learner = self.get_learner(learner_id)
        events: list[DomainEvent] = []
        with self.locks.progress_scope(learner.id):
            result, scored = self.quizzes.submit(quiz_id, learner.id, answers, attempt_id)
            if scored:
                events.append(DomainEvent(QUIZ_SCORED, learner.id, {
                    "quiz_id": result.quiz_id,
                    "result_id": result.id,
                    "subject": result.subject,
                    "score": result.score,
                    "recommendations": result.recommendations,
                }))
                events += self._badge_events(learner.id, self.badges.evaluate(learner, QUIZ_SCORED))
        self._dispatch(events)
        return result

    def results_for(self, learner_id: int) -> list[QuizResult]:
        self.get_learner(learner_id)
        return self.quizzes.results_for(learner_id)

    # ── Flashcards ───────────────────────────────────────────────

    def add_cards(self, learner_id: int, cards: list[Any]) -> list[Flashcard]:
        self.get_learner(learner_id)
        return self.scheduler.add_cards(learner_id, cards)

    def review_card(self, card_id: str, outcome: str) -> Flashcard:
        learner = self.get_learner(self.scheduler.get_card(card_id).learner_id)
        with self.locks.progress_scope(learner.id):
            card = self.scheduler.review_card(card_id, outcome)
            events = [DomainEvent(FLASHCARD_REVIEWED, learner.id, {"card_id": card.id, "outcome": outcome})]
            events += self._badge_events(learner.id, self.badges.evaluate(learner, FLASHCARD_REVIEWED))
        self._dispatch(events)
        return card

    def due_cards(self, learner_id: int, now: Optional[datetime] = None) -> DueCards:
        self.get_learner(learner_id)
        return self.scheduler.due_cards(learner_id, now)

    # ── Badges & stats ───────────────────────────────────────────

    def evaluate(self, learner_id: int, trigger: Optional[str] = None) -> list[Badge]:
        learner = self.get_learner(learner_id)
        with self.locks.progress_scope(learner.id):
            earned = self.badges.evaluate(learner, trigger)
        self._dispatch(self._badge_events(learner.id, earned))
        return earned

    def badge_progress(self, learner_id: int) -> list[dict]:
        self.get_learner(learner_id)
        return self.badges.progress_for(learner_id)

    def get_streak(self, learner_id: int) -> LearnerStreak:
        learner = self.get_learner(learner_id)
        return self.streaks.get_streak(learner, learner.local_date(self.clock()))

    def get_stats(self, learner_id: int, now: Optional[datetime] = None) -> StudyStatsView:
        return self.stats.get_stats(learner_id, now)

    # ── Event ingest ─────────────────────────────────────────────

    def ingest(self, raw: Any):
        """Normalize a raw event and route it to the owning operation."""
        event = normalize_event(raw, now=self.clock())
        return self.handle_event(event)

    def handle_event(self, event: LearnerEvent):
        p = event.payload
        logger.debug("Handling %s for learner %d (reported at %s)",
                     event.kind, event.learner_id, event.occurred_at.isoformat())
        if event.kind == SESSION_START:
            return self.start_session(event.learner_id, p["subject"])
        if event.kind == QUIZ_SUBMISSION:
            return self.submit_quiz(p["quiz_id"], event.learner_id, p["answers"], p.get("attempt_id"))
        if event.kind == FLASHCARD_REVIEW:
            self._check_owner(self.scheduler.get_card(p["card_id"]).learner_id, event,
                              f"Flashcard {p['card_id']}")
            return self.review_card(p["card_id"], p["outcome"])

        self._check_owner(self.sessions.get(p["session_id"]).learner_id, event,
                          f"Session {p['session_id']}")
        if event.kind == SESSION_PAUSE:
            return self.pause_session(p["session_id"])
        if event.kind == SESSION_RESUME:
            return self.resume_session(p["session_id"])
        if event.kind == SESSION_TICK:
            return self.tick_session(p["session_id"], p.get("metrics"))
        if event.kind == SESSION_COMPLETE:
            return self.complete_session(p["session_id"])
        raise ValidationError(f"unhandled event kind: {event.kind}")

    @staticmethod
    def _check_owner(owner_id: int, event: LearnerEvent, label: str) -> None:
        if owner_id != event.learner_id:
            raise NotFoundError(f"{label} not found for learner {event.learner_id}")

    # ── Sinks ────────────────────────────────────────────────────

    @staticmethod
    def _badge_events(learner_id: int, earned: list[Badge]) -> list[DomainEvent]:
        return [
            DomainEvent("badge_earned", learner_id, {
                "badge_id": b.id, "name": b.name, "description": b.description, "rarity": b.rarity,
            })
            for b in earned
        ]

    def _dispatch(self, events: list[DomainEvent]) -> None:
        for event in events:
            if self.locks.holds_any(event.learner_id):
                raise RuntimeError("sinks must run after learner locks are released")
            for sink in self.sinks:
                try:
                    sink.handle(event)
                except Exception:
                    logger.exception("Sink %s failed on %s for learner %d",
                                     type(sink).__name__, event.kind, event.learner_id)
                    # Engine writes are already committed; drop the sink's partial ones
                    get_db().rollback()
