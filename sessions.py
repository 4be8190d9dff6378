"""
Study session lifecycle: active <-> paused -> completed.

Duration is the sum of active intervals. While a session is active,
`active_since` marks the start of the running interval; pausing folds that
interval into `accumulated_seconds` and opens a break, resuming closes the
break and starts a new interval.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from db_stores import StudySessionStoreDB
from errors import InvalidStateError, NotFoundError, ValidationError
from events import require_text
from models import (
    SESSION_ACTIVE,
    SESSION_COMPLETED,
    SESSION_PAUSED,
    Learner,
    StudySession,
    to_iso,
    utcnow,
)

logger = logging.getLogger(__name__)

METRIC_KEYS = ("focus_score", "completed_tasks", "milestones")


def _interval_seconds(start: Optional[datetime], end: datetime) -> float:
    if start is None:
        return 0.0
    return max(0.0, (end - start).total_seconds())


def merge_metrics(current: dict, update: dict) -> dict:
    """Merge a tick's metrics into the stored ones. Milestones accumulate."""
    if not isinstance(update, dict):
        raise ValidationError("metrics must be an object")
    unknown = {str(k) for k in update} - set(METRIC_KEYS)
    if unknown:
        raise ValidationError(f"unknown metrics: {', '.join(sorted(unknown))}")

    merged = dict(current)
    if "focus_score" in update:
        score = update["focus_score"]
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
            raise ValidationError("focus_score must be a number between 0 and 100")
        merged["focus_score"] = score
    if "completed_tasks" in update:
        tasks = update["completed_tasks"]
        if isinstance(tasks, bool) or not isinstance(tasks, int) or tasks < 0:
            raise ValidationError("completed_tasks must be a non-negative integer")
        merged["completed_tasks"] = tasks
    if "milestones" in update:
        milestones = update["milestones"]
        if not isinstance(milestones, list) or not all(isinstance(m, str) for m in milestones):
            raise ValidationError("milestones must be a list of strings")
        existing = list(merged.get("milestones", []))
        existing.extend(m for m in milestones if m not in existing)
        merged["milestones"] = existing
    return merged


class SessionManager:
    """State machine for study sessions. Callers hold the learner's session scope."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def get(self, session_id: int) -> StudySession:
        session = StudySessionStoreDB.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def active_for(self, learner_id: int) -> Optional[StudySession]:
        return StudySessionStoreDB(learner_id).open_session()

    def sessions_for(self, learner_id: int, limit: Optional[int] = None) -> list[StudySession]:
        return StudySessionStoreDB(learner_id).all(limit=limit)

    def start(self, learner: Learner, subject: str) -> StudySession:
        subject = require_text(subject, "subject")
        # Raises ConflictError when an open session already exists
        session = StudySessionStoreDB(learner.id).create(subject, self.clock(), learner.preferences)
        logger.info("Session %d started for learner %d (%s)", session.id, learner.id, subject)
        return session

    def pause(self, session_id: int) -> StudySession:
        session = self.get(session_id)
        if session.status != SESSION_ACTIVE:
            raise InvalidStateError(f"Cannot pause a {session.status} session")
        now = self.clock()
        session.accumulated_seconds += _interval_seconds(session.active_since, now)
        session.active_since = None
        session.status = SESSION_PAUSED
        session.breaks.append({"started_at": to_iso(now), "ended_at": None, "seconds": 0.0})
        StudySessionStoreDB.save(session)
        logger.info("Session %d paused at %.0fs", session.id, session.accumulated_seconds)
        return session

    def resume(self, session_id: int) -> StudySession:
        session = self.get(session_id)
        if session.status != SESSION_PAUSED:
            raise InvalidStateError(f"Cannot resume a {session.status} session")
        now = self.clock()
        self._close_break(session, now)
        session.active_since = now
        session.status = SESSION_ACTIVE
        StudySessionStoreDB.save(session)
        logger.info("Session %d resumed", session.id)
        return session

    def complete(self, session_id: int) -> StudySession:
        session = self.get(session_id)
        if session.status == SESSION_COMPLETED:
            raise InvalidStateError("Session is already completed")
        now = self.clock()
        if session.status == SESSION_ACTIVE:
            session.accumulated_seconds += _interval_seconds(session.active_since, now)
        else:
            self._close_break(session, now)
        session.active_since = None
        session.ended_at = now
        session.status = SESSION_COMPLETED
        StudySessionStoreDB.save(session)
        logger.info("Session %d completed: %.0fs over %d break(s)",
                    session.id, session.accumulated_seconds, len(session.breaks))
        return session

    def tick(self, session_id: int, metrics: Optional[dict] = None) -> StudySession:
        session = self.get(session_id)
        if session.status == SESSION_COMPLETED:
            raise InvalidStateError("Cannot update a completed session")
        if metrics is not None:
            session.metrics = merge_metrics(session.metrics, metrics)
            StudySessionStoreDB.save(session)
        return session

    @staticmethod
    def _close_break(session: StudySession, now: datetime) -> None:
        if session.breaks and session.breaks[-1].get("ended_at") is None:
            open_break = session.breaks[-1]
            started = datetime.fromisoformat(open_break["started_at"])
            open_break["ended_at"] = to_iso(now)
            open_break["seconds"] = _interval_seconds(started, now)
