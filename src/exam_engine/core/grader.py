"""Grading engine.

Responsibilities:
- Compare each response's selected option set with the question's correct set
- Exact-set match only: full marks when equal, 0 otherwise (no partial credit)
- Aggregate score, max score and percentage

Grading is a pure computation over (attempt, questions). Persisting the
result and the status transition belongs to the attempt engine so that a
failure here never leaves a half-graded attempt behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from exam_engine.config.app_config import GradingConfig
from exam_engine.core.errors import AlreadyGradedError, GradingError
from exam_engine.core.models import Attempt, AttemptStatus, Question, Response

logger = structlog.get_logger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class QuestionGrade:
    """Grade for a single bound question."""

    question_id: str
    selected: list[str]
    correct_options: list[str]
    marks: float
    earned: float
    status: str

    @property
    def is_correct(self) -> bool:
        return self.status == "correct"

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "selected": self.selected,
            "correct_options": self.correct_options,
            "marks": self.marks,
            "earned": self.earned,
            "status": self.status,
        }


@dataclass
class GradeSummary:
    """Aggregate grading result for one attempt."""

    score: float
    max_score: float
    percentage: float
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    total_questions: int
    results: list[QuestionGrade] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "correct_answers": self.correct_answers,
            "incorrect_answers": self.incorrect_answers,
            "unanswered": self.unanswered,
            "total_questions": self.total_questions,
            "results": [r.to_dict() for r in self.results],
        }


# =============================================================================
# GRADING FUNCTIONS
# =============================================================================


def grade_response(selected: list[str], correct: frozenset[str], marks: float) -> tuple[float, str]:
    """Grade one response.

    Returns:
        (earned, status) where status is correct | incorrect | unanswered
    """
    chosen = set(selected)
    if not chosen:
        return 0.0, "unanswered"
    if chosen == correct:
        return float(marks), "correct"
    return 0.0, "incorrect"


def compute_percentage(score: float, max_score: float) -> float:
    if max_score <= 0:
        return 0.0
    return round(100.0 * score / max_score, 2)


def grade_attempt(
    attempt: Attempt,
    questions: dict[str, Question],
    config: GradingConfig | None = None,
) -> GradeSummary:
    """Grade every bound question of an attempt.

    Response slots of the attempt are updated in place with earned/status.
    The attempt status is not changed.

    Args:
        attempt: Attempt being submitted
        questions: Bound question ids resolved from the question bank
        config: Grading configuration (answer-key language)

    Returns:
        GradeSummary

    Raises:
        AlreadyGradedError: If the attempt is already graded
        GradingError: If a bound question cannot be resolved or has no answer key
    """
    if attempt.status == AttemptStatus.GRADED:
        raise AlreadyGradedError(attempt.attempt_id)

    config = config or GradingConfig()

    missing = [qid for qid in attempt.bound_ids if qid not in questions]
    if missing:
        raise GradingError(f"Questions missing from the question bank: {', '.join(missing)}")

    results: list[QuestionGrade] = []

    for bound in attempt.bound_questions:
        question = questions[bound.question_id]
        try:
            correct = question.correct_option_ids(config.default_language)
        except ValueError as e:
            raise GradingError(str(e)) from e
        if not correct:
            raise GradingError(f"Question '{bound.question_id}' has no correct option")

        response = attempt.response_for(bound.question_id)
        if response is None:
            response = Response(question_id=bound.question_id)
            attempt.responses.append(response)

        earned, status = grade_response(response.selected, correct, bound.marks)
        response.earned = earned
        response.status = status

        results.append(
            QuestionGrade(
                question_id=bound.question_id,
                selected=list(response.selected),
                correct_options=sorted(correct),
                marks=bound.marks,
                earned=earned,
                status=status,
            )
        )

    score = sum(r.earned for r in results)
    max_score = sum(r.marks for r in results)

    summary = GradeSummary(
        score=score,
        max_score=max_score,
        percentage=compute_percentage(score, max_score),
        correct_answers=sum(1 for r in results if r.status == "correct"),
        incorrect_answers=sum(1 for r in results if r.status == "incorrect"),
        unanswered=sum(1 for r in results if r.status == "unanswered"),
        total_questions=len(results),
        results=results,
    )

    logger.debug(
        "attempt_grade_computed",
        attempt_id=attempt.attempt_id,
        score=score,
        max_score=max_score,
    )
    return summary
