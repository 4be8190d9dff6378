"""
Quiz creation, attempt tracking, scoring and remediation recommendations.

Submitting against an attempt that was already scored does not fail: the
stored result comes back unchanged and nothing is scored or emitted again.
An unknown attempt, or one belonging to another quiz or learner, is
NotFoundError. A retake opens a new attempt.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable, Optional

from db_stores import QuizStoreDB
from errors import NotFoundError, ValidationError
from events import normalize_answers, require_text
from models import ATTEMPT_SUBMITTED, AnswerRecord, Question, Quiz, QuizAttempt, QuizResult, utcnow

logger = logging.getLogger(__name__)

MIN_QUIZ_DIFFICULTY = 1
MAX_QUIZ_DIFFICULTY = 5

_WHITESPACE = re.compile(r"\s+")


def canonicalize(value: str) -> str:
    """Trim, collapse internal whitespace and case-fold an option value."""
    return _WHITESPACE.sub(" ", value.strip()).casefold()


def score_percent(correct: int, total: int) -> int:
    """100 * correct / total, rounded half up."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def grade_answers(quiz: Quiz, answers: list[tuple[int, str]]) -> tuple[int, list[AnswerRecord]]:
    """Score answers against the quiz. Returns (score, one record per question)."""
    total = len(quiz.questions)
    selected: dict[int, str] = {}
    for index, answer in answers:
        if not 0 <= index < total:
            raise ValidationError(f"question_index {index} is out of range")
        if index in selected:
            raise ValidationError(f"question_index {index} answered twice")
        selected[index] = answer

    records = []
    for index, question in enumerate(quiz.questions):
        answer = selected.get(index)
        is_correct = answer is not None and canonicalize(answer) == canonicalize(question.correct_answer)
        records.append(AnswerRecord(question_index=index, selected_answer=answer or "",
                                    is_correct=is_correct))
    correct = sum(1 for r in records if r.is_correct)
    return score_percent(correct, total), records


def recommendations_for(quiz: Quiz, records: list[AnswerRecord]) -> list[dict]:
    """Explanations of the questions the learner missed, in question order."""
    recs = []
    for record in records:
        if record.is_correct:
            continue
        question = quiz.questions[record.question_index]
        recs.append({
            "question_index": record.question_index,
            "question": question.question,
            "correct_answer": question.correct_answer,
            "explanation": question.explanation,
        })
    return recs


def parse_questions(raw_questions: Any) -> list[Question]:
    if not isinstance(raw_questions, list) or not raw_questions:
        raise ValidationError("questions must be a non-empty list")
    questions = []
    for i, raw in enumerate(raw_questions):
        if isinstance(raw, Question):
            questions.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError(f"question {i} must be an object")
        text = str(raw.get("question", "")).strip()
        options = raw.get("options") or []
        correct = raw.get("correct_answer", raw.get("correctAnswer"))
        if not text:
            raise ValidationError(f"question {i} has no text")
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValidationError(f"question {i} options must be a list of strings")
        if not isinstance(correct, str) or not correct.strip():
            raise ValidationError(f"question {i} has no correct_answer")
        if options and canonicalize(correct) not in {canonicalize(o) for o in options}:
            raise ValidationError(f"question {i} correct_answer is not one of its options")
        questions.append(Question(
            question=text,
            options=tuple(options),
            correct_answer=correct,
            explanation=str(raw.get("explanation", "")),
        ))
    return questions


class QuizScorer:
    """Callers hold the learner's progress scope for submit()."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def create_quiz(self, learner_id: int, subject: str, difficulty: int, questions: Any) -> Quiz:
        subject = require_text(subject, "subject")
        if isinstance(difficulty, bool) or not isinstance(difficulty, int) \
                or not MIN_QUIZ_DIFFICULTY <= difficulty <= MAX_QUIZ_DIFFICULTY:
            raise ValidationError("difficulty must be an integer from 1 to 5")
        quiz = QuizStoreDB(learner_id).create(subject, difficulty, parse_questions(questions))
        logger.info("Quiz %d created for learner %d (%d questions)",
                    quiz.id, learner_id, len(quiz.questions))
        return quiz

    def get_quiz(self, quiz_id: int, learner_id: int) -> Quiz:
        quiz = QuizStoreDB.get(quiz_id)
        if quiz is None or quiz.learner_id != learner_id:
            raise NotFoundError(f"Quiz {quiz_id} not found for learner {learner_id}")
        return quiz

    def open_attempt(self, quiz_id: int, learner_id: int) -> QuizAttempt:
        self.get_quiz(quiz_id, learner_id)
        return QuizStoreDB(learner_id).open_attempt(quiz_id)

    def submit(self, quiz_id: int, learner_id: int, answers: Any,
               attempt_id: Optional[int] = None) -> tuple[QuizResult, bool]:
        """Score one attempt. Returns (result, newly_scored).

        Resubmitting an already-submitted attempt returns its stored result.
        """
        quiz = self.get_quiz(quiz_id, learner_id)
        store = QuizStoreDB(learner_id)

        if attempt_id is not None:
            if isinstance(attempt_id, bool) or not isinstance(attempt_id, int):
                raise ValidationError("attempt_id must be an integer")
            attempt = QuizStoreDB.get_attempt(attempt_id)
            if attempt is None or attempt.quiz_id != quiz_id or attempt.learner_id != learner_id:
                raise NotFoundError(f"Attempt {attempt_id} not found for quiz {quiz_id}")
            if attempt.status == ATTEMPT_SUBMITTED:
                logger.info("Attempt %d already scored; returning stored result", attempt_id)
                return QuizStoreDB.get_result(attempt.result_id), False

        score, records = grade_answers(quiz, normalize_answers(answers))
        if attempt_id is None:
            attempt_id = store.open_attempt(quiz_id).id

        result = store.add_result(
            attempt_id=attempt_id,
            quiz=quiz,
            score=score,
            answers=records,
            recommendations=recommendations_for(quiz, records),
            completed_at=self.clock(),
        )
        logger.info("Quiz %d attempt %d scored %d for learner %d",
                    quiz_id, attempt_id, score, learner_id)
        return result, True

    def results_for(self, learner_id: int) -> list[QuizResult]:
        return QuizStoreDB(learner_id).results()
