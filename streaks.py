"""
Daily study streaks, derived from session completions.

A completion counts toward the learner-local calendar day it happened on.
Each completion is folded in at most once (keyed by session id), so replays
of the same completion leave the streak unchanged.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from db_stores import StreakStateDB
from models import Learner, LearnerStreak

logger = logging.getLogger(__name__)


def advance_streak(streak: LearnerStreak, day: date) -> LearnerStreak:
    """Return the streak after a completion on `day`, without persisting it."""
    prior = streak.last_active_date
    current = streak.current_streak

    if prior is None or (day - prior).days >= 2:
        current = 1
    elif (day - prior).days == 1:
        current += 1
    elif prior == day:
        current = max(current, 1)
    else:
        # Completion older than the latest active day arrived late
        return streak

    return LearnerStreak(
        learner_id=streak.learner_id,
        current_streak=current,
        max_streak=max(streak.max_streak, current),
        last_active_date=day,
        last_session_id=streak.last_session_id,
    )


class StreakCalculator:
    """Callers hold the learner's progress scope."""

    def record_completion(self, learner: Learner, session_id: int,
                          completed_at: datetime) -> tuple[LearnerStreak, bool]:
        """Fold one session completion into the streak.

        Returns the stored streak and whether the current/max values changed.
        """
        store = StreakStateDB(learner.id)
        before = store.load()
        if store.is_processed(session_id):
            logger.debug("Completion %d already counted for learner %d", session_id, learner.id)
            return before, False

        day = learner.local_date(completed_at)
        after = advance_streak(before, day)
        if after is not before:
            after.last_session_id = session_id
        store.record(after, session_id)

        changed = (after.current_streak, after.max_streak) != (before.current_streak, before.max_streak)
        if changed:
            logger.info("Learner %d streak %d -> %d (max %d)",
                        learner.id, before.current_streak, after.current_streak, after.max_streak)
        return after, changed

    def get_streak(self, learner: Learner, today: date) -> LearnerStreak:
        """Stored streak, with current reported as 0 once a day has been missed."""
        streak = StreakStateDB(learner.id).load()
        if streak.last_active_date is None or streak.last_active_date < today - timedelta(days=1):
            streak.current_streak = 0
        return streak
