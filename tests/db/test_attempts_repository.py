"""Tests for the attempts repository."""

import pytest

from exam_engine.core.errors import AttemptInProgressError, AttemptLimitExceeded
from exam_engine.core.models import Attempt, AttemptStatus, BoundQuestion, Response
from exam_engine.db import attempts_repository

from helpers import START_TIME


def make_attempt(attempt_id="a1", student_id="stu-1", series_id="mock-1"):
    return Attempt(
        attempt_id=attempt_id,
        student_id=student_id,
        series_id=series_id,
        bound_questions=[
            BoundQuestion(question_id="p1", section_title="Physics", section_order=1, position=0, marks=4)
        ],
        started_at=START_TIME.isoformat(),
        duration_seconds=600,
        time_left=600,
        responses=[Response(question_id="p1")],
    )


class TestCreateAttempt:
    """Tests for inserting attempts."""

    def test_insert_and_count(self, db_path):
        count = attempts_repository.create_attempt(make_attempt(), 3, START_TIME)

        assert count == 1
        stored = attempts_repository.get_attempt("a1")
        assert stored.status == AttemptStatus.IN_PROGRESS
        assert stored.version == 0
        assert stored.bound_ids == ["p1"]

    def test_one_in_progress_per_student_and_series(self, db_path):
        attempts_repository.create_attempt(make_attempt("a1"), 3, START_TIME)

        with pytest.raises(AttemptInProgressError):
            attempts_repository.create_attempt(make_attempt("a2"), 3, START_TIME)

        assert attempts_repository.get_attempt("a2") is None
        assert attempts_repository.get_counter("stu-1", "mock-1").count == 1

    def test_other_series_allowed(self, db_path):
        attempts_repository.create_attempt(make_attempt("a1"), 3, START_TIME)
        attempts_repository.create_attempt(make_attempt("a2", series_id="mock-2"), 3, START_TIME)

        assert attempts_repository.find_in_progress("stu-1", "mock-2").attempt_id == "a2"

    def test_limit_rolls_back_insert(self, db_path):
        first = make_attempt("a1")
        attempts_repository.create_attempt(first, 1, START_TIME)
        first.status = AttemptStatus.ABORTED
        attempts_repository.update_attempt(first, 0)

        with pytest.raises(AttemptLimitExceeded):
            attempts_repository.create_attempt(make_attempt("a2"), 1, START_TIME)

        assert attempts_repository.get_attempt("a2") is None
        assert attempts_repository.find_in_progress("stu-1", "mock-1") is None


class TestUpdateAttempt:
    """Tests for version-checked writes."""

    def test_update_bumps_version(self, db_path):
        attempt = make_attempt()
        attempts_repository.create_attempt(attempt, 3, START_TIME)

        attempt.time_left = 500
        assert attempts_repository.update_attempt(attempt, 0) is True
        assert attempt.version == 1

        stored = attempts_repository.get_attempt("a1")
        assert stored.version == 1
        assert stored.time_left == 500

    def test_stale_version_is_rejected(self, db_path):
        attempts_repository.create_attempt(make_attempt(), 3, START_TIME)
        winner = attempts_repository.get_attempt("a1")
        loser = attempts_repository.get_attempt("a1")

        winner.time_left = 100
        assert attempts_repository.update_attempt(winner, 0) is True

        loser.time_left = 200
        assert attempts_repository.update_attempt(loser, 0) is False
        assert loser.version == 0
        assert attempts_repository.get_attempt("a1").time_left == 100


class TestCounters:
    def test_missing_counter_is_zero(self, db_path):
        counter = attempts_repository.get_counter("nobody", "mock-1")
        assert counter.count == 0
        assert counter.last_attempt_at is None

    def test_reset(self, db_path):
        attempts_repository.create_attempt(make_attempt(), 3, START_TIME)
        attempts_repository.reset_counter("stu-1", "mock-1", START_TIME)

        assert attempts_repository.get_counter("stu-1", "mock-1").count == 0

    def test_series_counters(self, db_path):
        attempts_repository.create_attempt(make_attempt("a1", student_id="stu-b"), 3, START_TIME)
        attempts_repository.create_attempt(make_attempt("a2", student_id="stu-a"), 3, START_TIME)

        counters = attempts_repository.list_series_counters("mock-1")
        assert [c.student_id for c in counters] == ["stu-a", "stu-b"]
