"""
Event ingest: raw learner events in, canonical LearnerEvent out.

Also defines DomainEvent, the record the engine hands to downstream sinks
once a mutation has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from errors import ValidationError
from models import from_iso, utcnow

logger = logging.getLogger(__name__)

SESSION_START = "session_start"
SESSION_PAUSE = "session_pause"
SESSION_RESUME = "session_resume"
SESSION_TICK = "session_tick"
SESSION_COMPLETE = "session_complete"
QUIZ_SUBMISSION = "quiz_submission"
FLASHCARD_REVIEW = "flashcard_review"

EVENT_KINDS = (
    SESSION_START, SESSION_PAUSE, SESSION_RESUME, SESSION_TICK,
    SESSION_COMPLETE, QUIZ_SUBMISSION, FLASHCARD_REVIEW,
)

REVIEW_OUTCOMES = ("easy", "hard")

# camelCase wire names accepted alongside the snake_case ones
_ALIASES = {
    "type": "kind",
    "learnerId": "learner_id",
    "userId": "learner_id",
    "user_id": "learner_id",
    "sessionId": "session_id",
    "quizId": "quiz_id",
    "attemptId": "attempt_id",
    "cardId": "card_id",
    "occurredAt": "occurred_at",
    "timestamp": "occurred_at",
    "questionIndex": "question_index",
    "selectedAnswer": "selected_answer",
}


@dataclass(frozen=True)
class LearnerEvent:
    """A validated inbound event.

    `occurred_at` is the time the client reported. It is informational: it is
    logged, but engine state is stamped with the engine clock at handling time.
    """
    kind: str
    learner_id: int
    occurred_at: datetime
    payload: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DomainEvent:
    """Something that already happened; consumed by notification/document sinks."""
    kind: str
    learner_id: int
    payload: dict = field(default_factory=dict)


def _canonical_keys(raw: dict) -> dict:
    return {_ALIASES.get(k, k): v for k, v in raw.items()}


def _require_int(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{key} is required")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer") from None


def require_text(value: Any, name: str) -> str:
    """Stripped non-empty string, or ValidationError."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


def _require_str(data: dict, key: str) -> str:
    return require_text(data.get(key), key)


def normalize_answers(answers: Any) -> list[tuple[int, str]]:
    """Accept [{question_index, selected_answer}] or [(index, answer)] pairs."""
    if not isinstance(answers, (list, tuple)) or not answers:
        raise ValidationError("answers must be a non-empty list")
    pairs = []
    for item in answers:
        if isinstance(item, dict):
            item = _canonical_keys(item)
            index = _require_int(item, "question_index")
            selected = item.get("selected_answer")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            index, selected = item
            if isinstance(index, bool) or not isinstance(index, int):
                raise ValidationError("question_index must be an integer")
        else:
            raise ValidationError("each answer needs question_index and selected_answer")
        if not isinstance(selected, str):
            raise ValidationError("selected_answer must be a string")
        pairs.append((index, selected))
    return pairs


def _session_payload(data: dict) -> dict:
    return {"session_id": _require_int(data, "session_id")}


def _start_payload(data: dict) -> dict:
    return {"subject": _require_str(data, "subject")}


def _tick_payload(data: dict) -> dict:
    metrics = data.get("metrics") or {}
    if not isinstance(metrics, dict):
        raise ValidationError("metrics must be an object")
    return {"session_id": _require_int(data, "session_id"), "metrics": metrics}


def _quiz_payload(data: dict) -> dict:
    payload = {
        "quiz_id": _require_int(data, "quiz_id"),
        "answers": normalize_answers(data.get("answers")),
    }
    if data.get("attempt_id") is not None:
        payload["attempt_id"] = _require_int(data, "attempt_id")
    return payload


def _review_payload(data: dict) -> dict:
    outcome = data.get("outcome")
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError("outcome must be 'easy' or 'hard'")
    return {"card_id": _require_str(data, "card_id"), "outcome": outcome}


_PAYLOAD_BUILDERS: dict[str, Callable[[dict], dict]] = {
    SESSION_START: _start_payload,
    SESSION_PAUSE: _session_payload,
    SESSION_RESUME: _session_payload,
    SESSION_COMPLETE: _session_payload,
    SESSION_TICK: _tick_payload,
    QUIZ_SUBMISSION: _quiz_payload,
    FLASHCARD_REVIEW: _review_payload,
}


def normalize_event(raw: Any, now: Optional[datetime] = None) -> LearnerEvent:
    """Validate a raw event mapping and return its canonical form."""
    if not isinstance(raw, dict):
        raise ValidationError("event must be an object")
    data = _canonical_keys(raw)

    kind = data.get("kind")
    if kind not in _PAYLOAD_BUILDERS:
        raise ValidationError(f"unknown event kind: {kind!r}")

    occurred_at = now or utcnow()
    if data.get("occurred_at"):
        try:
            occurred_at = from_iso(str(data["occurred_at"]))
        except ValueError:
            raise ValidationError("occurred_at must be an ISO-8601 timestamp") from None

    event = LearnerEvent(
        kind=kind,
        learner_id=_require_int(data, "learner_id"),
        occurred_at=occurred_at,
        payload=_PAYLOAD_BUILDERS[kind](data),
    )
    logger.debug("Normalized %s event for learner %d", event.kind, event.learner_id)
    return event
