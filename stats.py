"""Read-only study statistics for dashboards."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Callable, Optional

from badges import BadgeRegistry
from database import read_snapshot
from db_stores import (
    BadgeProgressDB,
    DocumentStoreDB,
    FlashcardDeckDB,
    LearnerStoreDB,
    QuizStoreDB,
    StudySessionStoreDB,
)
from errors import NotFoundError
from models import SESSION_COMPLETED, Learner, StudySession, StudyStatsView, utcnow
from streaks import StreakCalculator

RECENT_LIMIT = 5


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def _rounded_mean(total: float, count: int) -> int:
    return int(total / count + 0.5) if count else 0


def _study_patterns(learner: Learner, sessions: list[StudySession]) -> dict[str, int]:
    patterns = {"morning": 0, "afternoon": 0, "evening": 0, "night": 0}
    for s in sessions:
        patterns[time_of_day(s.started_at.astimezone(learner.tz).hour)] += 1
    return patterns


def _quiz_stats(learner_id: int) -> dict:
    results = QuizStoreDB(learner_id).results()
    by_subject: dict[str, dict] = {}
    for r in results:
        entry = by_subject.setdefault(r.subject, {"attempts": 0, "total": 0})
        entry["attempts"] += 1
        entry["total"] += r.score
    return {
        "total_quizzes": len(results),
        "average_score": _rounded_mean(sum(r.score for r in results), len(results)),
        "perfect_scores": sum(1 for r in results if r.score == 100),
        "by_subject": {
            subject: {"attempts": e["attempts"], "avg_score": _rounded_mean(e["total"], e["attempts"])}
            for subject, e in by_subject.items()
        },
    }


class StatsAggregator:
    def __init__(self, registry: BadgeRegistry, clock: Callable[[], datetime] = utcnow):
        self.registry = registry
        self.clock = clock
        self._streaks = StreakCalculator()

    def get_stats(self, learner_id: int, now: Optional[datetime] = None) -> StudyStatsView:
        """Compose the stats view from one consistent read. Takes no learner lock."""
        now = now or self.clock()
        with read_snapshot():
            learner = LearnerStoreDB.load(learner_id)
            if learner is None:
                raise NotFoundError(f"Learner {learner_id} not found")

            sessions = StudySessionStoreDB(learner_id).all()
            completed = [s for s in sessions if s.status == SESSION_COMPLETED]
            total_time = sum(s.accumulated_seconds for s in completed)

            streak = self._streaks.get_streak(learner, learner.local_date(now))
            deck = FlashcardDeckDB(learner_id)
            docs = DocumentStoreDB(learner_id)
            progress = BadgeProgressDB(learner_id).all()

            return StudyStatsView(
                learner_id=learner_id,
                total_study_time=total_time,
                avg_session_length=_rounded_mean(total_time, len(completed)),
                total_sessions=len(sessions),
                completed_sessions=len(completed),
                current_streak=streak.current_streak,
                max_streak=streak.max_streak,
                study_patterns=_study_patterns(learner, sessions),
                subject_analysis=dict(Counter(s.subject for s in sessions)),
                learning_styles_usage=dict(Counter(s.learning_style for s in sessions if s.learning_style)),
                quiz_stats=_quiz_stats(learner_id),
                flashcard_stats={
                    "total_cards": len(deck.cards()),
                    "due_now": deck.due_count(now),
                    "by_difficulty": deck.count_by_difficulty(),
                },
                document_stats={
                    "total_documents": docs.count(),
                    "by_type": docs.count_by_type(),
                    "recent": [
                        {"id": d.id, "title": d.title, "type": d.type, "created_at": d.created_at}
                        for d in docs.recent(RECENT_LIMIT)
                    ],
                },
                badges={
                    "earned": sorted(p.badge_id for p in progress if p.earned),
                    "in_progress": {
                        p.badge_id: {"current": p.current, "target": p.target}
                        for p in progress if not p.earned and p.current > 0
                    },
                    "available": len(self.registry),
                },
                recent_sessions=[s.to_dict(now) for s in sessions[:RECENT_LIMIT]],
                learning_preferences=learner.preferences.to_dict(),
            )
