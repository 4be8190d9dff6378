"""
Badge catalog and evaluation.

The catalog is built once by create_initial_badges() and wrapped in a
read-only BadgeRegistry that the evaluator receives at construction.
Progress rows always hold the latest true counter value; once a badge is
earned its row is never rewritten.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Optional

from database import get_db
from db_stores import (
    BadgeProgressDB,
    LearnerCountersDB,
    QuizStoreDB,
    StreakStateDB,
    StudySessionStoreDB,
)
from errors import ValidationError
from models import Badge, BadgeRule, Learner, LearnerBadgeProgress, to_iso, utcnow

logger = logging.getLogger(__name__)

SESSION_COMPLETED = "session_completed"
QUIZ_SCORED = "quiz_scored"
STREAK_UPDATED = "streak_updated"
FLASHCARD_REVIEWED = "flashcard_reviewed"
TRIGGERS = (SESSION_COMPLETED, QUIZ_SCORED, STREAK_UPDATED, FLASHCARD_REVIEWED)

RARITIES = ("common", "uncommon", "rare", "epic", "legendary")


def _badge(badge_id: str, name: str, description: str, rarity: str,
           metric: str, threshold: int, triggers: tuple[str, ...],
           preference: Optional[str] = None) -> Badge:
    return Badge(
        id=badge_id,
        name=name,
        description=description,
        rarity=rarity,
        image_url=f"/badges/{badge_id.replace('_', '-')}.svg",
        rule=BadgeRule(metric=metric, threshold=threshold, preference=preference),
        triggers=frozenset(triggers),
    )


def create_initial_badges() -> list[Badge]:
    """The built-in badge catalog."""
    return [
        _badge("quick_learner", "Quick Learner", "Complete your first study session",
               "common", "completed_sessions", 1, (SESSION_COMPLETED,)),
        _badge("quiz_master", "Quiz Master", "Score 100% on 3 quizzes",
               "rare", "perfect_quizzes", 3, (QUIZ_SCORED,)),
        _badge("knowledge_explorer", "Knowledge Explorer", "Study 5 different subjects",
               "uncommon", "unique_subjects", 5, (SESSION_COMPLETED,)),
        _badge("study_streak", "Study Streak", "Study 7 days in a row",
               "epic", "max_streak", 7, (STREAK_UPDATED,)),
        _badge("visual_master", "Visual Master", "Complete 10 sessions as a visual learner",
               "rare", "style_sessions", 10, (SESSION_COMPLETED,), "visual"),
        _badge("audio_ace", "Audio Ace", "Complete 10 sessions as an auditory learner",
               "rare", "style_sessions", 10, (SESSION_COMPLETED,), "auditory"),
        _badge("reading_champion", "Reading Champion", "Complete 10 sessions as a reading learner",
               "rare", "style_sessions", 10, (SESSION_COMPLETED,), "reading"),
        _badge("hands_on_hero", "Hands-on Hero", "Complete 10 sessions as a kinesthetic learner",
               "rare", "style_sessions", 10, (SESSION_COMPLETED,), "kinesthetic"),
        _badge("fast_track_master", "Fast Track Master", "Complete 5 sessions at a fast pace",
               "epic", "pace_sessions", 5, (SESSION_COMPLETED,), "fast"),
        _badge("deep_dive_scholar", "Deep Dive Scholar", "Complete 5 sessions with detailed explanations",
               "epic", "detail_sessions", 5, (SESSION_COMPLETED,), "detailed"),
        _badge("consistent_learner", "Consistent Learner", "Study 14 days in a row",
               "legendary", "max_streak", 14, (STREAK_UPDATED,)),
        _badge("research_pioneer", "Research Pioneer", "Explore 3 research areas",
               "epic", "research_areas", 3, (SESSION_COMPLETED, QUIZ_SCORED)),
        _badge("card_shark", "Card Shark", "Review 50 flashcards",
               "rare", "flashcards_reviewed", 50, (FLASHCARD_REVIEWED,)),
    ]


class BadgeRegistry(Mapping):
    """Read-only badge catalog keyed by badge id."""

    def __init__(self, badges: list[Badge]):
        by_id: dict[str, Badge] = {}
        for badge in badges:
            if badge.id in by_id:
                raise ValueError(f"Duplicate badge id: {badge.id}")
            if badge.rarity not in RARITIES:
                raise ValueError(f"Unknown rarity {badge.rarity!r} for {badge.id}")
            if badge.rule.metric not in METRICS:
                raise ValueError(f"Unknown metric {badge.rule.metric!r} for {badge.id}")
            by_id[badge.id] = badge
        self._badges = MappingProxyType(by_id)

    def __getitem__(self, badge_id: str) -> Badge:
        return self._badges[badge_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._badges)

    def __len__(self) -> int:
        return len(self._badges)

    def for_trigger(self, trigger: Optional[str]) -> list[Badge]:
        if trigger is None:
            return list(self._badges.values())
        return [b for b in self._badges.values() if trigger in b.triggers]


# ── Metrics ──────────────────────────────────────────────────────────
# Each reads the current true value for a learner; never a delta.

def _completed_sessions(learner: Learner, rule: BadgeRule) -> int:
    return StudySessionStoreDB(learner.id).completed_count()


def _perfect_quizzes(learner: Learner, rule: BadgeRule) -> int:
    return QuizStoreDB(learner.id).perfect_count()


def _unique_subjects(learner: Learner, rule: BadgeRule) -> int:
    return StudySessionStoreDB(learner.id).unique_subjects_count()


def _max_streak(learner: Learner, rule: BadgeRule) -> int:
    return StreakStateDB(learner.id).load().max_streak


def _snapshot_sessions(column: str) -> Callable[[Learner, BadgeRule], int]:
    def metric(learner: Learner, rule: BadgeRule) -> int:
        return StudySessionStoreDB(learner.id).completed_count_matching(column, rule.preference or "")
    return metric


def _research_areas(learner: Learner, rule: BadgeRule) -> int:
    return len({a.strip().lower() for a in learner.preferences.research_areas if a.strip()})


def _flashcards_reviewed(learner: Learner, rule: BadgeRule) -> int:
    return LearnerCountersDB(learner.id).flashcards_reviewed


METRICS: dict[str, Callable[[Learner, BadgeRule], int]] = {
    "completed_sessions": _completed_sessions,
    "perfect_quizzes": _perfect_quizzes,
    "unique_subjects": _unique_subjects,
    "max_streak": _max_streak,
    "style_sessions": _snapshot_sessions("learning_style"),
    "pace_sessions": _snapshot_sessions("pace"),
    "detail_sessions": _snapshot_sessions("detail_level"),
    "research_areas": _research_areas,
    "flashcards_reviewed": _flashcards_reviewed,
}


class BadgeEvaluator:
    """Callers hold the learner's progress scope."""

    def __init__(self, registry: BadgeRegistry, clock: Callable[[], datetime] = utcnow):
        self.registry = registry
        self.clock = clock

    def evaluate(self, learner: Learner, trigger: Optional[str]) -> list[Badge]:
        """Re-check badges for `trigger` (all badges when None). Returns newly earned ones."""
        if trigger is not None and trigger not in TRIGGERS:
            raise ValidationError(f"unknown badge trigger: {trigger!r}")

        store = BadgeProgressDB(learner.id)
        now = to_iso(self.clock())
        newly_earned = []
        for badge in self.registry.for_trigger(trigger):
            existing = store.get(badge.id)
            if existing is not None and existing.earned:
                continue
            current = METRICS[badge.rule.metric](learner, badge.rule)
            earned = current >= badge.rule.threshold
            store.upsert(LearnerBadgeProgress(
                learner_id=learner.id,
                badge_id=badge.id,
                current=current,
                target=badge.rule.threshold,
                earned=earned,
                earned_at=now if earned else "",
                updated_at=now,
            ), commit=False)
            if earned:
                newly_earned.append(badge)
        get_db().commit()

        for badge in newly_earned:
            logger.info("Learner %d earned badge %s", learner.id, badge.id)
        return newly_earned

    def progress_for(self, learner_id: int) -> list[dict]:
        """Every catalog badge with the learner's progress (zeroed if never evaluated)."""
        rows = {p.badge_id: p for p in BadgeProgressDB(learner_id).all()}
        out = []
        for badge in self.registry.values():
            p = rows.get(badge.id)
            out.append({
                **badge.to_dict(),
                "current": p.current if p else 0,
                "target": badge.rule.threshold,
                "earned": bool(p and p.earned),
                "earned_at": p.earned_at if p and p.earned else None,
            })
        return out
