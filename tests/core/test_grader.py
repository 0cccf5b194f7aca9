"""Tests for exact-set grading."""

import pytest

from exam_engine.core.errors import AlreadyGradedError, GradingError
from exam_engine.core.grader import compute_percentage, grade_attempt, grade_response
from exam_engine.core.models import Attempt, AttemptStatus, BoundQuestion, Question, Response

from helpers import make_question


def _attempt(bound: list[tuple[str, float]], selections: dict[str, list[str]]) -> Attempt:
    return Attempt(
        attempt_id="att-1",
        student_id="stu-1",
        series_id="mock-1",
        bound_questions=[
            BoundQuestion(qid, "Section", 1, pos, marks) for pos, (qid, marks) in enumerate(bound)
        ],
        started_at="2026-03-01T09:00:00+00:00",
        duration_seconds=600,
        time_left=600,
        responses=[Response(qid, selected=sel) for qid, sel in selections.items()],
    )


def _questions(*data) -> dict[str, Question]:
    return {d["question_id"]: Question.from_dict(d) for d in data}


class TestGradeResponse:
    """Single-correct question worth 4 marks."""

    CORRECT = frozenset({"b"})

    def test_correct(self):
        assert grade_response(["b"], self.CORRECT, 4) == (4.0, "correct")

    def test_wrong(self):
        assert grade_response(["a"], self.CORRECT, 4) == (0.0, "incorrect")

    def test_none_selected(self):
        assert grade_response([], self.CORRECT, 4) == (0.0, "unanswered")

    def test_extra_option_is_wrong(self):
        assert grade_response(["b", "c"], self.CORRECT, 4) == (0.0, "incorrect")


class TestMultiCorrect:
    """Multi-correct questions need the exact set."""

    CORRECT = frozenset({"a", "c"})

    def test_order_independent(self):
        assert grade_response(["c", "a"], self.CORRECT, 2) == (2.0, "correct")

    def test_subset_earns_nothing(self):
        assert grade_response(["a"], self.CORRECT, 2) == (0.0, "incorrect")


class TestGradeAttempt:
    """Tests for grading a whole attempt."""

    def test_score_is_sum_of_earned(self):
        attempt = _attempt(
            [("q1", 4), ("q2", 4), ("q3", 2)],
            {"q1": ["b"], "q2": ["a"], "q3": []},
        )
        questions = _questions(
            make_question("q1", ("b",)), make_question("q2", ("b",)), make_question("q3", ("c",))
        )

        summary = grade_attempt(attempt, questions)

        assert summary.score == 4.0
        assert summary.max_score == 10.0
        assert summary.percentage == 40.0
        assert summary.score == sum(r.earned for r in attempt.responses)
        assert 0 <= summary.score <= summary.max_score
        assert (summary.correct_answers, summary.incorrect_answers, summary.unanswered) == (1, 1, 1)

    def test_bound_marks_win_over_question_marks(self):
        attempt = _attempt([("q1", 8)], {"q1": ["b"]})
        summary = grade_attempt(attempt, _questions(make_question("q1", ("b",), marks=4)))
        assert summary.score == 8.0

    def test_missing_response_slot_graded_unanswered(self):
        attempt = _attempt([("q1", 4)], {})
        summary = grade_attempt(attempt, _questions(make_question("q1")))
        assert attempt.response_for("q1").status == "unanswered"
        assert summary.unanswered == 1

    def test_responses_updated_in_place(self):
        attempt = _attempt([("q1", 4)], {"q1": ["b"]})
        grade_attempt(attempt, _questions(make_question("q1", ("b",))))
        response = attempt.response_for("q1")
        assert response.earned == 4.0
        assert response.status == "correct"
        assert attempt.status == AttemptStatus.IN_PROGRESS

    def test_missing_question_raises(self):
        attempt = _attempt([("q1", 4), ("gone", 4)], {})
        with pytest.raises(GradingError, match="gone"):
            grade_attempt(attempt, _questions(make_question("q1")))

    def test_question_without_answer_key_raises(self):
        attempt = _attempt([("q1", 4)], {"q1": ["a"]})
        with pytest.raises(GradingError):
            grade_attempt(attempt, _questions(make_question("q1", correct=())))

    def test_already_graded_raises(self):
        attempt = _attempt([("q1", 4)], {})
        attempt.status = AttemptStatus.GRADED
        with pytest.raises(AlreadyGradedError):
            grade_attempt(attempt, _questions(make_question("q1")))


class TestPercentage:
    def test_rounded_to_two_decimals(self):
        assert compute_percentage(1, 3) == 33.33

    def test_zero_max_score(self):
        assert compute_percentage(0, 0) == 0.0
