"""
Learner, session, quiz, flashcard and badge records used by the progress engine.

Records are plain dataclasses. The db_stores module maps them to and from
SQLite rows; the engine modules only ever see these types.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


# ── Time helpers ──────────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """UTC ISO string with fixed precision so lexical order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Learner ───────────────────────────────────────────────────────

LEARNING_STYLES = ("visual", "auditory", "reading", "kinesthetic")
PACES = ("fast", "moderate", "slow")
DETAIL_LEVELS = ("basic", "detailed", "comprehensive")
EXAMPLE_FREQUENCIES = ("few", "moderate", "many")
ASSISTANT_TONES = ("encouraging", "socratic", "professional", "friendly")


@dataclass
class LearningPreferences:
    learning_style: str = "reading"
    pace: str = "moderate"
    detail_level: str = "detailed"
    example_frequency: str = "moderate"
    assistant_tone: str = "professional"
    grade_level: str = "high_school"
    research_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> LearningPreferences:
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class Learner:
    id: int
    name: str
    timezone: str = "UTC"
    preferences: LearningPreferences = field(default_factory=LearningPreferences)
    created_at: str = ""

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    def local_date(self, moment: datetime) -> date:
        """Calendar day of `moment` in the learner's own timezone."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz).date()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "timezone": self.timezone,
            "preferences": self.preferences.to_dict(),
            "created_at": self.created_at,
        }


# ── Study Sessions ────────────────────────────────────────────────

SESSION_ACTIVE = "active"
SESSION_PAUSED = "paused"
SESSION_COMPLETED = "completed"
OPEN_SESSION_STATUSES = (SESSION_ACTIVE, SESSION_PAUSED)


@dataclass
class StudySession:
    id: int
    learner_id: int
    subject: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    accumulated_seconds: float = 0.0
    active_since: Optional[datetime] = None  # start of the running active interval
    breaks: list[dict] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)
    learning_style: str = ""
    pace: str = ""
    detail_level: str = ""

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_SESSION_STATUSES

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        """Accrued active time, including the interval still running."""
        total = self.accumulated_seconds
        if self.status == SESSION_ACTIVE and self.active_since is not None:
            now = now or utcnow()
            total += max(0.0, (now - self.active_since).total_seconds())
        return total

    def to_dict(self, now: Optional[datetime] = None) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "subject": self.subject,
            "status": self.status,
            "started_at": to_iso(self.started_at),
            "ended_at": to_iso(self.ended_at) if self.ended_at else None,
            "total_duration": self.elapsed_seconds(now),
            "breaks": self.breaks,
            "metrics": self.metrics,
            "learning_style": self.learning_style,
        }


# ── Quizzes ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Question:
    question: str
    options: tuple[str, ...]
    correct_answer: str
    explanation: str = ""

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
        }


@dataclass
class Quiz:
    id: int
    learner_id: int
    subject: str
    difficulty: int
    questions: list[Question]
    created_at: str = ""

    def to_dict(self, include_answers: bool = False) -> dict:
        questions = []
        for q in self.questions:
            item = q.to_dict()
            if not include_answers:
                item.pop("correct_answer")
                item.pop("explanation")
            questions.append(item)
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "subject": self.subject,
            "difficulty": self.difficulty,
            "questions": questions,
            "created_at": self.created_at,
        }


ATTEMPT_OPEN = "open"
ATTEMPT_SUBMITTED = "submitted"


@dataclass
class QuizAttempt:
    id: int
    quiz_id: int
    learner_id: int
    status: str = ATTEMPT_OPEN
    result_id: Optional[int] = None
    created_at: str = ""


@dataclass
class AnswerRecord:
    question_index: int
    selected_answer: str
    is_correct: bool


@dataclass
class QuizResult:
    id: int
    quiz_id: int
    attempt_id: int
    learner_id: int
    subject: str
    score: int
    answers: list[AnswerRecord]
    recommendations: list[dict] = field(default_factory=list)
    completed_at: Optional[datetime] = None

    @property
    def correct_count(self) -> int:
        return sum(1 for a in self.answers if a.is_correct)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "attempt_id": self.attempt_id,
            "learner_id": self.learner_id,
            "subject": self.subject,
            "score": self.score,
            "answers": [asdict(a) for a in self.answers],
            "recommendations": self.recommendations,
            "completed_at": to_iso(self.completed_at) if self.completed_at else None,
        }


# ── Flashcards ────────────────────────────────────────────────────

@dataclass
class Flashcard:
    id: str
    learner_id: int
    front: str
    back: str
    subject: str = ""
    document_id: Optional[int] = None
    difficulty: int = 3
    next_review: Optional[datetime] = None
    last_reviewed: Optional[datetime] = None
    review_count: int = 0
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "front": self.front,
            "back": self.back,
            "subject": self.subject,
            "document_id": self.document_id,
            "difficulty": self.difficulty,
            "next_review": to_iso(self.next_review) if self.next_review else None,
            "last_reviewed": to_iso(self.last_reviewed) if self.last_reviewed else None,
            "review_count": self.review_count,
        }


# ── Badges ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BadgeRule:
    metric: str
    threshold: int
    preference: Optional[str] = None  # value the session snapshot must match


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    rarity: str
    image_url: str
    rule: BadgeRule
    triggers: frozenset[str]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "rarity": self.rarity,
            "image_url": self.image_url,
            "metric": self.rule.metric,
            "threshold": self.rule.threshold,
        }


@dataclass
class LearnerBadgeProgress:
    learner_id: int
    badge_id: str
    current: int = 0
    target: int = 0
    earned: bool = False
    earned_at: str = ""
    updated_at: str = ""


# ── Streaks ───────────────────────────────────────────────────────

@dataclass
class LearnerStreak:
    learner_id: int
    current_streak: int = 0
    max_streak: int = 0
    last_active_date: Optional[date] = None
    last_session_id: Optional[int] = None


# ── Documents & Notifications ─────────────────────────────────────

@dataclass
class SavedDocument:
    id: int
    learner_id: int
    title: str
    content: str
    type: str
    metadata: dict = field(default_factory=dict)
    created_at: str = ""


@dataclass
class Notification:
    id: str
    learner_id: int
    type: str
    title: str
    body: str = ""
    data: dict = field(default_factory=dict)
    read: bool = False
    created_at: str = ""


# ── Stats ─────────────────────────────────────────────────────────

@dataclass
class StudyStatsView:
    """Derived dashboard view. Recomputed on every read, never stored."""
    learner_id: int
    total_study_time: float = 0.0
    avg_session_length: float = 0.0
    total_sessions: int = 0
    completed_sessions: int = 0
    current_streak: int = 0
    max_streak: int = 0
    study_patterns: dict[str, int] = field(default_factory=dict)
    subject_analysis: dict[str, int] = field(default_factory=dict)
    learning_styles_usage: dict[str, int] = field(default_factory=dict)
    quiz_stats: dict = field(default_factory=dict)
    flashcard_stats: dict = field(default_factory=dict)
    document_stats: dict = field(default_factory=dict)
    badges: dict = field(default_factory=dict)
    recent_sessions: list[dict] = field(default_factory=list)
    learning_preferences: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)
