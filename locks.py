"""
Per-learner mutual exclusion.

Each learner gets two re-entrant locks: a session scope (start/pause/resume/
complete/tick) and a progress scope (streaks, quiz results, flashcard
schedule, badge counters). When both are needed they are always taken
session first, then progress.
"""

from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class _LearnerLocks:
    session: threading.RLock = field(default_factory=threading.RLock)
    progress: threading.RLock = field(default_factory=threading.RLock)


class LockOrderError(RuntimeError):
    """A session scope was requested while holding the same learner's progress scope."""


class LearnerLockRegistry:
    """Hands out lock scopes keyed by learner id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # entries live while some scope holds them
        self._locks: weakref.WeakValueDictionary[int, _LearnerLocks] = weakref.WeakValueDictionary()
        self._held = threading.local()

    def _locks_for(self, learner_id: int) -> _LearnerLocks:
        with self._guard:
            locks = self._locks.get(learner_id)
            if locks is None:
                locks = self._locks[learner_id] = _LearnerLocks()
            return locks

    def _depth(self, scope: str) -> dict[int, int]:
        depth = getattr(self._held, scope, None)
        if depth is None:
            depth = {}
            setattr(self._held, scope, depth)
        return depth

    @contextmanager
    def _hold(self, lock: threading.RLock, scope: str, learner_id: int):
        depth = self._depth(scope)
        with lock:
            depth[learner_id] = depth.get(learner_id, 0) + 1
            try:
                yield
            finally:
                depth[learner_id] -= 1
                if not depth[learner_id]:
                    del depth[learner_id]

    @contextmanager
    def session_scope(self, learner_id: int):
        if self._depth("progress").get(learner_id) and not self._depth("session").get(learner_id):
            raise LockOrderError(f"session scope requested under progress scope for learner {learner_id}")
        locks = self._locks_for(learner_id)
        with self._hold(locks.session, "session", learner_id):
            yield

    @contextmanager
    def progress_scope(self, learner_id: int):
        locks = self._locks_for(learner_id)
        with self._hold(locks.progress, "progress", learner_id):
            yield

    def holds_any(self, learner_id: int) -> bool:
        """True if the calling thread holds either scope for `learner_id`."""
        return bool(self._depth("session").get(learner_id) or self._depth("progress").get(learner_id))

    def __len__(self) -> int:
        return len(self._locks)
