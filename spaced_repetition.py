"""
Spaced-repetition scheduling for flashcards.

Difficulty runs from 1 (easiest) to 5 (hardest). A "hard" review bumps the
difficulty and brings the card back in a few minutes; an "easy" review lowers
it and pushes the next review out by 2^(5 - difficulty) days.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator, Optional

from database import get_db
from db_stores import FlashcardDeckDB, LearnerCountersDB
from errors import NotFoundError, ValidationError
from events import REVIEW_OUTCOMES
from models import Flashcard, utcnow

logger = logging.getLogger(__name__)

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
DEFAULT_DIFFICULTY = 3
HARD_REVIEW_DELAY = timedelta(minutes=10)


def easy_interval(difficulty: int) -> timedelta:
    return timedelta(days=2 ** (MAX_DIFFICULTY - difficulty))


def next_schedule(difficulty: int, outcome: str, now: datetime) -> tuple[int, datetime]:
    """Return (new_difficulty, next_review) for one review outcome."""
    if outcome == "hard":
        difficulty = min(MAX_DIFFICULTY, difficulty + 1)
        return difficulty, now + HARD_REVIEW_DELAY
    if outcome == "easy":
        difficulty = max(MIN_DIFFICULTY, difficulty - 1)
        return difficulty, now + easy_interval(difficulty)
    raise ValidationError("outcome must be 'easy' or 'hard'")


class DueCards:
    """Cards due at `now`, earliest first.

    Each iteration starts a fresh paged query, so the sequence can be walked
    again, and cards may be reviewed while it is being walked.
    """

    def __init__(self, learner_id: int, now: datetime):
        self.learner_id = learner_id
        self.now = now

    def __iter__(self) -> Iterator[Flashcard]:
        return FlashcardDeckDB(self.learner_id).iter_due(self.now)

    def __len__(self) -> int:
        return FlashcardDeckDB(self.learner_id).due_count(self.now)


class SpacedRepetitionScheduler:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def get_card(self, card_id: str) -> Flashcard:
        card = FlashcardDeckDB.get(card_id)
        if card is None:
            raise NotFoundError(f"Flashcard {card_id} not found")
        return card

    def add_cards(self, learner_id: int, cards: list[Any]) -> list[Flashcard]:
        if not isinstance(cards, list) or not cards:
            raise ValidationError("cards must be a non-empty list")
        now = self.clock()
        new_cards = []
        for i, raw in enumerate(cards):
            if not isinstance(raw, dict):
                raise ValidationError(f"card {i} must be an object")
            front = str(raw.get("front", "")).strip()
            back = str(raw.get("back", "")).strip()
            if not front or not back:
                raise ValidationError(f"card {i} needs front and back")
            difficulty = raw.get("difficulty", DEFAULT_DIFFICULTY)
            if isinstance(difficulty, bool) or not isinstance(difficulty, int) \
                    or not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
                raise ValidationError(f"card {i} difficulty must be an integer from 1 to 5")
            new_cards.append(Flashcard(
                id="", learner_id=learner_id, front=front, back=back,
                subject=str(raw.get("subject", "")).strip(),
                document_id=raw.get("document_id"),
                difficulty=difficulty, next_review=now,
            ))
        saved = FlashcardDeckDB(learner_id).add_many(new_cards)
        logger.info("Added %d flashcard(s) for learner %d", len(saved), learner_id)
        return saved

    def review_card(self, card_id: str, outcome: str) -> Flashcard:
        """Apply one review. Callers hold the owner's progress scope."""
        if outcome not in REVIEW_OUTCOMES:
            raise ValidationError("outcome must be 'easy' or 'hard'")
        card = self.get_card(card_id)
        now = self.clock()
        card.difficulty, card.next_review = next_schedule(card.difficulty, outcome, now)
        card.last_reviewed = now
        card.review_count += 1

        FlashcardDeckDB.save_schedule(card, commit=False)
        LearnerCountersDB(card.learner_id).increment_flashcards_reviewed(commit=False)
        get_db().commit()
        logger.info("Card %s reviewed %s: difficulty %d, next %s",
                    card.id, outcome, card.difficulty, card.next_review.isoformat())
        return card

    def due_cards(self, learner_id: int, now: Optional[datetime] = None) -> DueCards:
        return DueCards(learner_id, now or self.clock())
