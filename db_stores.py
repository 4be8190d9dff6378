"""
DB-backed store classes for the study progress engine.

Each class wraps one table (or a small group of tables) and converts rows to
the dataclasses in models.py. Learner-scoped stores take the learner id in
their constructor; lookups by record id are static methods.
"""

from __future__ import annotations

import json
import secrets
import sqlite3
from collections.abc import Iterator
from dataclasses import asdict
from datetime import date, datetime
from typing import Optional

from database import get_db
from errors import ConflictError
from models import (
    ATTEMPT_OPEN,
    ATTEMPT_SUBMITTED,
    SESSION_COMPLETED,
    AnswerRecord,
    Badge,
    Flashcard,
    Learner,
    LearnerBadgeProgress,
    LearnerStreak,
    LearningPreferences,
    Notification,
    Question,
    Quiz,
    QuizAttempt,
    QuizResult,
    SavedDocument,
    StudySession,
    from_iso,
    to_iso,
    utcnow,
)


# ── Learners ─────────────────────────────────────────────────────────


class LearnerStoreDB:
    """Learner identity and preferences."""

    @staticmethod
    def create(name: str, timezone: str = "UTC",
               preferences: Optional[LearningPreferences] = None) -> Learner:
        prefs = preferences or LearningPreferences()
        now = to_iso(utcnow())
        db = get_db()
        cur = db.execute(
            "INSERT INTO learners (name, timezone, preferences, created_at) VALUES (?, ?, ?, ?)",
            (name, timezone, json.dumps(prefs.to_dict()), now),
        )
        db.commit()
        return Learner(id=cur.lastrowid, name=name, timezone=timezone,
                       preferences=prefs, created_at=now)

    @staticmethod
    def load(learner_id: int) -> Optional[Learner]:
        db = get_db()
        r = db.execute("SELECT * FROM learners WHERE id = ?", (learner_id,)).fetchone()
        if not r:
            return None
        return Learner(
            id=r["id"], name=r["name"], timezone=r["timezone"],
            preferences=LearningPreferences.from_dict(json.loads(r["preferences"])),
            created_at=r["created_at"],
        )

    @staticmethod
    def exists(learner_id: int) -> bool:
        db = get_db()
        return db.execute("SELECT 1 FROM learners WHERE id = ?", (learner_id,)).fetchone() is not None


# ── Study Sessions ───────────────────────────────────────────────────


def _row_to_session(r) -> StudySession:
    return StudySession(
        id=r["id"], learner_id=r["learner_id"], subject=r["subject"], status=r["status"],
        started_at=from_iso(r["started_at"]), ended_at=from_iso(r["ended_at"]),
        accumulated_seconds=r["accumulated_seconds"], active_since=from_iso(r["active_since"]),
        breaks=json.loads(r["breaks"]), metrics=json.loads(r["metrics"]),
        learning_style=r["learning_style"], pace=r["pace"], detail_level=r["detail_level"],
    )


_SNAPSHOT_COLUMNS = ("learning_style", "pace", "detail_level")

DUE_BATCH_SIZE = 50


class StudySessionStoreDB:
    """DB-backed study sessions for one learner."""

    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def create(self, subject: str, started_at: datetime,
               preferences: Optional[LearningPreferences] = None) -> StudySession:
        prefs = preferences or LearningPreferences()
        db = get_db()
        try:
            cur = db.execute(
                "INSERT INTO study_sessions (learner_id, subject, status, started_at, "
                "accumulated_seconds, active_since, learning_style, pace, detail_level) "
                "VALUES (?, ?, 'active', ?, 0, ?, ?, ?, ?)",
                (self.learner_id, subject, to_iso(started_at), to_iso(started_at),
                 prefs.learning_style, prefs.pace, prefs.detail_level),
            )
            db.commit()
        except sqlite3.IntegrityError as exc:
            db.rollback()
            raise ConflictError(f"Learner {self.learner_id} already has an open session") from exc
        return StudySession(
            id=cur.lastrowid, learner_id=self.learner_id, subject=subject, status="active",
            started_at=started_at, active_since=started_at,
            learning_style=prefs.learning_style, pace=prefs.pace, detail_level=prefs.detail_level,
        )

    def open_session(self) -> Optional[StudySession]:
        db = get_db()
        r = db.execute(
            "SELECT * FROM study_sessions WHERE learner_id = ? AND status IN ('active', 'paused')",
            (self.learner_id,),
        ).fetchone()
        return _row_to_session(r) if r else None

    def all(self, limit: Optional[int] = None) -> list[StudySession]:
        db = get_db()
        sql = "SELECT * FROM study_sessions WHERE learner_id = ? ORDER BY started_at DESC, id DESC"
        params: tuple = (self.learner_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        return [_row_to_session(r) for r in db.execute(sql, params).fetchall()]

    def completed_count(self) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS cnt FROM study_sessions WHERE learner_id = ? AND status = ?",
            (self.learner_id, SESSION_COMPLETED),
        ).fetchone()
        return row["cnt"]

    def unique_subjects_count(self) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(DISTINCT lower(subject)) AS cnt FROM study_sessions "
            "WHERE learner_id = ? AND status = ?",
            (self.learner_id, SESSION_COMPLETED),
        ).fetchone()
        return row["cnt"]

    def completed_count_matching(self, column: str, value: str) -> int:
        """Completed sessions whose preference snapshot `column` equals `value`."""
        if column not in _SNAPSHOT_COLUMNS:
            raise ValueError(f"Unknown snapshot column: {column}")
        db = get_db()
        row = db.execute(
            f"SELECT COUNT(*) AS cnt FROM study_sessions "
            f"WHERE learner_id = ? AND status = ? AND {column} = ?",
            (self.learner_id, SESSION_COMPLETED, value),
        ).fetchone()
        return row["cnt"]

    @staticmethod
    def get(session_id: int) -> Optional[StudySession]:
        db = get_db()
        r = db.execute("SELECT * FROM study_sessions WHERE id = ?", (session_id,)).fetchone()
        return _row_to_session(r) if r else None

    @staticmethod
    def save(session: StudySession) -> None:
        db = get_db()
        db.execute(
            "UPDATE study_sessions SET status=?, ended_at=?, accumulated_seconds=?, "
            "active_since=?, breaks=?, metrics=? WHERE id=? AND status != ?",
            (session.status,
             to_iso(session.ended_at) if session.ended_at else None,
             session.accumulated_seconds,
             to_iso(session.active_since) if session.active_since else None,
             json.dumps(session.breaks), json.dumps(session.metrics),
             session.id, SESSION_COMPLETED),
        )
        db.commit()


# ── Quizzes ──────────────────────────────────────────────────────────


def _row_to_quiz(r) -> Quiz:
    return Quiz(
        id=r["id"], learner_id=r["learner_id"], subject=r["subject"],
        difficulty=r["difficulty"],
        questions=[
            Question(
                question=q["question"], options=tuple(q.get("options", [])),
                correct_answer=q["correct_answer"], explanation=q.get("explanation", ""),
            )
            for q in json.loads(r["questions"])
        ],
        created_at=r["created_at"],
    )


def _row_to_attempt(r) -> QuizAttempt:
    return QuizAttempt(
        id=r["id"], quiz_id=r["quiz_id"], learner_id=r["learner_id"],
        status=r["status"], result_id=r["result_id"], created_at=r["created_at"],
    )


def _row_to_result(r) -> QuizResult:
    return QuizResult(
        id=r["id"], quiz_id=r["quiz_id"], attempt_id=r["attempt_id"],
        learner_id=r["learner_id"], subject=r["subject"], score=r["score"],
        answers=[AnswerRecord(**a) for a in json.loads(r["answers"])],
        recommendations=json.loads(r["recommendations"]),
        completed_at=from_iso(r["completed_at"]),
    )


class QuizStoreDB:
    """Quizzes, attempts and append-only results for one learner."""

    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def create(self, subject: str, difficulty: int, questions: list[Question]) -> Quiz:
        now = to_iso(utcnow())
        db = get_db()
        cur = db.execute(
            "INSERT INTO quizzes (learner_id, subject, difficulty, questions, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (self.learner_id, subject, difficulty,
             json.dumps([q.to_dict() for q in questions]), now),
        )
        db.commit()
        return Quiz(id=cur.lastrowid, learner_id=self.learner_id, subject=subject,
                    difficulty=difficulty, questions=list(questions), created_at=now)

    def open_attempt(self, quiz_id: int) -> QuizAttempt:
        now = to_iso(utcnow())
        db = get_db()
        cur = db.execute(
            "INSERT INTO quiz_attempts (quiz_id, learner_id, status, created_at) VALUES (?, ?, ?, ?)",
            (quiz_id, self.learner_id, ATTEMPT_OPEN, now),
        )
        db.commit()
        return QuizAttempt(id=cur.lastrowid, quiz_id=quiz_id, learner_id=self.learner_id,
                           created_at=now)

    def add_result(self, attempt_id: int, quiz: Quiz, score: int, answers: list[AnswerRecord],
                   recommendations: list[dict], completed_at: datetime) -> QuizResult:
        """Insert the result and close its attempt in one transaction."""
        db = get_db()
        cur = db.execute(
            "INSERT INTO quiz_results (quiz_id, attempt_id, learner_id, subject, score, "
            "answers, recommendations, completed_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (quiz.id, attempt_id, self.learner_id, quiz.subject, score,
             json.dumps([asdict(a) for a in answers]), json.dumps(recommendations),
             to_iso(completed_at)),
        )
        db.execute(
            "UPDATE quiz_attempts SET status=?, result_id=? WHERE id=?",
            (ATTEMPT_SUBMITTED, cur.lastrowid, attempt_id),
        )
        db.commit()
        return QuizResult(
            id=cur.lastrowid, quiz_id=quiz.id, attempt_id=attempt_id,
            learner_id=self.learner_id, subject=quiz.subject, score=score,
            answers=answers, recommendations=recommendations, completed_at=completed_at,
        )

    def results(self) -> list[QuizResult]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM quiz_results WHERE learner_id = ? ORDER BY completed_at DESC, id DESC",
            (self.learner_id,),
        ).fetchall()
        return [_row_to_result(r) for r in rows]

    def perfect_count(self) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS cnt FROM quiz_results WHERE learner_id = ? AND score = 100",
            (self.learner_id,),
        ).fetchone()
        return row["cnt"]

    @staticmethod
    def get(quiz_id: int) -> Optional[Quiz]:
        db = get_db()
        r = db.execute("SELECT * FROM quizzes WHERE id = ?", (quiz_id,)).fetchone()
        return _row_to_quiz(r) if r else None

    @staticmethod
    def get_attempt(attempt_id: int) -> Optional[QuizAttempt]:
        db = get_db()
        r = db.execute("SELECT * FROM quiz_attempts WHERE id = ?", (attempt_id,)).fetchone()
        return _row_to_attempt(r) if r else None

    @staticmethod
    def get_result(result_id: int) -> Optional[QuizResult]:
        db = get_db()
        r = db.execute("SELECT * FROM quiz_results WHERE id = ?", (result_id,)).fetchone()
        return _row_to_result(r) if r else None


# ── Flashcard Deck ───────────────────────────────────────────────────


def _row_to_card(r) -> Flashcard:
    return Flashcard(
        id=r["id"], learner_id=r["learner_id"], front=r["front"], back=r["back"],
        subject=r["subject"], document_id=r["document_id"], difficulty=r["difficulty"],
        next_review=from_iso(r["next_review"]), last_reviewed=from_iso(r["last_reviewed"]),
        review_count=r["review_count"], created_at=r["created_at"],
    )


class FlashcardDeckDB:
    """DB-backed flashcard deck with a difficulty-driven review schedule."""

    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def add(self, card: Flashcard, commit: bool = True) -> Flashcard:
        if not card.id:
            card.id = f"fc_{datetime.now().strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(4)}"
        if not card.next_review:
            card.next_review = utcnow()
        if not card.created_at:
            card.created_at = to_iso(utcnow())
        card.learner_id = self.learner_id
        db = get_db()
        db.execute(
            "INSERT INTO flashcards (id, learner_id, front, back, subject, document_id, "
            "difficulty, next_review, last_reviewed, review_count, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (card.id, self.learner_id, card.front, card.back, card.subject, card.document_id,
             card.difficulty, to_iso(card.next_review),
             to_iso(card.last_reviewed) if card.last_reviewed else "",
             card.review_count, card.created_at),
        )
        if commit:
            db.commit()
        return card

    def add_many(self, cards: list[Flashcard]) -> list[Flashcard]:
        saved = [self.add(card, commit=False) for card in cards]
        get_db().commit()
        return saved

    def cards(self) -> list[Flashcard]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM flashcards WHERE learner_id = ? ORDER BY created_at, id",
            (self.learner_id,),
        ).fetchall()
        return [_row_to_card(r) for r in rows]

    def iter_due(self, now: datetime, batch_size: int = DUE_BATCH_SIZE) -> Iterator[Flashcard]:
        """Yield due cards earliest first, one keyset page at a time.

        No cursor stays open between pages, so callers may review cards
        while walking. A card already yielded in this pass is not yielded
        again even if a review moves it further down the queue.
        """
        db = get_db()
        cutoff = to_iso(now)
        last: Optional[tuple[str, str]] = None
        seen: set[str] = set()
        while True:
            if last is None:
                rows = db.execute(
                    "SELECT * FROM flashcards WHERE learner_id = ? AND next_review <= ? "
                    "ORDER BY next_review ASC, id ASC LIMIT ?",
                    (self.learner_id, cutoff, batch_size),
                ).fetchall()
            else:
                rows = db.execute(
                    "SELECT * FROM flashcards WHERE learner_id = ? AND next_review <= ? "
                    "AND (next_review > ? OR (next_review = ? AND id > ?)) "
                    "ORDER BY next_review ASC, id ASC LIMIT ?",
                    (self.learner_id, cutoff, last[0], last[0], last[1], batch_size),
                ).fetchall()
            if not rows:
                return
            last = (rows[-1]["next_review"], rows[-1]["id"])
            for row in rows:
                if row["id"] in seen:
                    continue
                seen.add(row["id"])
                yield _row_to_card(row)
            if len(rows) < batch_size:
                return

    def due_count(self, now: datetime) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS cnt FROM flashcards WHERE learner_id = ? AND next_review <= ?",
            (self.learner_id, to_iso(now)),
        ).fetchone()
        return row["cnt"]

    def count_by_difficulty(self) -> dict[int, int]:
        db = get_db()
        rows = db.execute(
            "SELECT difficulty, COUNT(*) AS cnt FROM flashcards WHERE learner_id = ? "
            "GROUP BY difficulty ORDER BY difficulty",
            (self.learner_id,),
        ).fetchall()
        return {r["difficulty"]: r["cnt"] for r in rows}

    @staticmethod
    def get(card_id: str) -> Optional[Flashcard]:
        db = get_db()
        r = db.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)).fetchone()
        return _row_to_card(r) if r else None

    @staticmethod
    def save_schedule(card: Flashcard, commit: bool = True) -> None:
        db = get_db()
        db.execute(
            "UPDATE flashcards SET difficulty=?, next_review=?, last_reviewed=?, review_count=? "
            "WHERE id=?",
            (card.difficulty, to_iso(card.next_review),
             to_iso(card.last_reviewed) if card.last_reviewed else "",
             card.review_count, card.id),
        )
        if commit:
            db.commit()


# ── Counters ─────────────────────────────────────────────────────────


class LearnerCountersDB:
    """Running totals that no other table can reproduce."""

    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    @property
    def flashcards_reviewed(self) -> int:
        db = get_db()
        r = db.execute(
            "SELECT flashcards_reviewed FROM learner_counters WHERE learner_id = ?",
            (self.learner_id,),
        ).fetchone()
        return r["flashcards_reviewed"] if r else 0

    def increment_flashcards_reviewed(self, commit: bool = True) -> None:
        db = get_db()
        db.execute(
            "INSERT INTO learner_counters (learner_id, flashcards_reviewed) VALUES (?, 1) "
            "ON CONFLICT(learner_id) DO UPDATE SET flashcards_reviewed = flashcards_reviewed + 1",
            (self.learner_id,),
        )
        if commit:
            db.commit()


# ── Badges ───────────────────────────────────────────────────────────


class BadgeCatalogDB:
    """Persists the badge catalog so progress rows have a referent."""

    @staticmethod
    def sync(badges: list[Badge]) -> int:
        """Insert catalog entries that are not stored yet. Returns count inserted."""
        db = get_db()
        inserted = 0
        for b in badges:
            cur = db.execute(
                "INSERT OR IGNORE INTO badges (id, name, description, rarity, image_url, "
                "metric, threshold) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (b.id, b.name, b.description, b.rarity, b.image_url, b.rule.metric, b.rule.threshold),
            )
            inserted += cur.rowcount
        db.commit()
        return inserted


def _row_to_progress(r) -> LearnerBadgeProgress:
    return LearnerBadgeProgress(
        learner_id=r["learner_id"], badge_id=r["badge_id"], current=r["current"],
        target=r["target"], earned=bool(r["earned"]), earned_at=r["earned_at"],
        updated_at=r["updated_at"],
    )


class BadgeProgressDB:
    """Per-learner badge progress. Earned rows are never rewritten."""

    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def get(self, badge_id: str) -> Optional[LearnerBadgeProgress]:
        db = get_db()
        r = db.execute(
            "SELECT * FROM learner_badge_progress WHERE learner_id = ? AND badge_id = ?",
            (self.learner_id, badge_id),
        ).fetchone()
        return _row_to_progress(r) if r else None

    def all(self) -> list[LearnerBadgeProgress]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM learner_badge_progress WHERE learner_id = ? ORDER BY badge_id",
            (self.learner_id,),
        ).fetchall()
        return [_row_to_progress(r) for r in rows]

    def upsert(self, progress: LearnerBadgeProgress, commit: bool = True) -> None:
        db = get_db()
        db.execute(
            "INSERT INTO learner_badge_progress "
            "(learner_id, badge_id, current, target, earned, earned_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(learner_id, badge_id) DO UPDATE SET "
            "current=excluded.current, target=excluded.target, earned=excluded.earned, "
            "earned_at=excluded.earned_at, updated_at=excluded.updated_at "
            "WHERE learner_badge_progress.earned = 0",
            (self.learner_id, progress.badge_id, progress.current, progress.target,
             1 if progress.earned else 0, progress.earned_at, progress.updated_at),
        )
        if commit:
            db.commit()


# ── Streaks ──────────────────────────────────────────────────────────


class StreakStateDB:
    """Streak counters plus the set of completions already folded in."""

    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def load(self) -> LearnerStreak:
        db = get_db()
        r = db.execute(
            "SELECT * FROM learner_streaks WHERE learner_id = ?", (self.learner_id,)
        ).fetchone()
        if not r:
            return LearnerStreak(learner_id=self.learner_id)
        return LearnerStreak(
            learner_id=self.learner_id,
            current_streak=r["current_streak"],
            max_streak=r["max_streak"],
            last_active_date=date.fromisoformat(r["last_active_date"]) if r["last_active_date"] else None,
            last_session_id=r["last_session_id"],
        )

    def is_processed(self, session_id: int) -> bool:
        db = get_db()
        return db.execute(
            "SELECT 1 FROM streak_processed_sessions WHERE session_id = ?", (session_id,)
        ).fetchone() is not None

    def record(self, streak: LearnerStreak, session_id: int) -> None:
        """Store the new streak and mark `session_id` processed atomically."""
        db = get_db()
        db.execute(
            "INSERT INTO learner_streaks "
            "(learner_id, current_streak, max_streak, last_active_date, last_session_id) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(learner_id) DO UPDATE SET current_streak=excluded.current_streak, "
            "max_streak=excluded.max_streak, last_active_date=excluded.last_active_date, "
            "last_session_id=excluded.last_session_id",
            (self.learner_id, streak.current_streak, streak.max_streak,
             streak.last_active_date.isoformat() if streak.last_active_date else "",
             streak.last_session_id),
        )
        db.execute(
            "INSERT OR IGNORE INTO streak_processed_sessions (session_id, learner_id, processed_at) "
            "VALUES (?, ?, ?)",
            (session_id, self.learner_id, to_iso(utcnow())),
        )
        db.commit()


# ── Documents ────────────────────────────────────────────────────────


def _row_to_document(r) -> SavedDocument:
    return SavedDocument(
        id=r["id"], learner_id=r["learner_id"], title=r["title"], content=r["content"],
        type=r["type"], metadata=json.loads(r["metadata"]), created_at=r["created_at"],
    )


class DocumentStoreDB:
    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def add(self, title: str, content: str, doc_type: str, metadata: Optional[dict] = None) -> SavedDocument:
        now = to_iso(utcnow())
        db = get_db()
        cur = db.execute(
            "INSERT INTO saved_documents (learner_id, title, content, type, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (self.learner_id, title, content, doc_type, json.dumps(metadata or {}), now),
        )
        db.commit()
        return SavedDocument(id=cur.lastrowid, learner_id=self.learner_id, title=title,
                             content=content, type=doc_type, metadata=metadata or {},
                             created_at=now)

    def count(self) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS cnt FROM saved_documents WHERE learner_id = ?", (self.learner_id,)
        ).fetchone()
        return row["cnt"]

    def count_by_type(self) -> dict[str, int]:
        db = get_db()
        rows = db.execute(
            "SELECT type, COUNT(*) AS cnt FROM saved_documents WHERE learner_id = ? GROUP BY type",
            (self.learner_id,),
        ).fetchall()
        return {r["type"]: r["cnt"] for r in rows}

    def recent(self, n: int = 5) -> list[SavedDocument]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM saved_documents WHERE learner_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (self.learner_id, n),
        ).fetchall()
        return [_row_to_document(r) for r in rows]


# ── Notifications ────────────────────────────────────────────────────


class NotificationStoreDB:
    def __init__(self, learner_id: int):
        self.learner_id = learner_id

    def add(self, notif: Notification) -> None:
        if not notif.id:
            notif.id = f"n_{datetime.now().strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(4)}"
        if not notif.created_at:
            notif.created_at = to_iso(utcnow())
        db = get_db()
        db.execute(
            "INSERT INTO notifications (id, learner_id, type, title, body, data, read, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (notif.id, self.learner_id, notif.type, notif.title, notif.body,
             json.dumps(notif.data), 1 if notif.read else 0, notif.created_at),
        )
        db.commit()

    def recent(self, n: int = 20) -> list[Notification]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM notifications WHERE learner_id = ? ORDER BY created_at DESC LIMIT ?",
            (self.learner_id, n),
        ).fetchall()
        return [
            Notification(
                id=r["id"], learner_id=r["learner_id"], type=r["type"], title=r["title"],
                body=r["body"], data=json.loads(r["data"]), read=bool(r["read"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def unread_count(self) -> int:
        db = get_db()
        row = db.execute(
            "SELECT COUNT(*) AS cnt FROM notifications WHERE learner_id = ? AND read = 0",
            (self.learner_id,),
        ).fetchone()
        return row["cnt"]

    def mark_read(self, notif_id: str) -> None:
        db = get_db()
        db.execute("UPDATE notifications SET read = 1 WHERE id = ? AND learner_id = ?",
                   (notif_id, self.learner_id))
        db.commit()
