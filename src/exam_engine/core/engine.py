"""Attempt engine: the entry point for every attempt operation.

Lifecycle:
    start() -> save()* / log_cheat_event()* -> submit() -> review()

Each mutation of an attempt runs under a per-attempt lock (in-process) and
is written back conditioned on the attempt version (cross-process). A
termination decided by the anti-cheating monitor therefore cannot be
overwritten by a save racing with it.

Usage:
    from exam_engine.core.engine import AttemptEngine

    engine = AttemptEngine()
    started = engine.start("series-1", "student-1")
    engine.save(started.attempt_id, [{"question_id": "q1", "selected": ["0"]}])
    result = engine.submit(started.attempt_id)
"""

from __future__ import annotations

import random
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, TypeVar

import structlog

from exam_engine.config.app_config import AppConfig, load_app_config
from exam_engine.core import analytics
from exam_engine.core.errors import (
    AttemptInProgressError,
    AttemptLimitExceeded,
    AttemptNotFoundError,
    AttemptNotGradedError,
    AttemptNotInProgressError,
    ConcurrencyError,
    GradingError,
    InvalidPayloadError,
    QuestionNotFoundError,
    SeriesNotFoundError,
    SeriesWindowClosedError,
)
from exam_engine.core.grader import grade_attempt
from exam_engine.core.integrity import IntegrityMonitor, IntegrityResult, cheating_stats, integrity_overview
from exam_engine.core.models import (
    Attempt,
    AttemptCounter,
    AttemptStatus,
    BoundQuestion,
    Clock,
    Response,
    TestSeries,
    parse_timestamp,
    utc_now,
)
from exam_engine.core.pool_selector import SelectedQuestion, select_questions
from exam_engine.core.progress_store import MAX_WRITE_TRIES, ProgressStore, SaveResult
from exam_engine.core.rewards import LoggingRewardNotifier, RewardEvent, RewardNotifier
from exam_engine.db import attempts_repository
from exam_engine.db.catalog_repository import Catalog, SqliteCatalog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_SEED_RANGE = 2**31


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class StartResult:
    """Returned by AttemptEngine.start()."""

    attempt_id: str
    bound_sections: list[dict[str, Any]]
    time_left_seconds: int
    attempt_no: int = 1
    variant_code: str | None = None
    strict_mode_enabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "bound_sections": self.bound_sections,
            "time_left_seconds": self.time_left_seconds,
            "attempt_no": self.attempt_no,
            "variant_code": self.variant_code,
            "strict_mode_enabled": self.strict_mode_enabled,
        }


@dataclass
class SubmitResult:
    """Returned by AttemptEngine.submit()."""

    attempt_id: str
    score: float
    max_score: float
    percentage: float
    correct_answers: int
    total_questions: int
    time_taken_seconds: int
    results: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "time_taken_seconds": self.time_taken_seconds,
            "results": self.results,
        }


# =============================================================================
# ENGINE
# =============================================================================


class AttemptEngine:
    """Orchestrates selection, progress, grading, integrity and analytics."""

    def __init__(
        self,
        config: AppConfig | None = None,
        catalog: Catalog | None = None,
        clock: Clock = utc_now,
        notifier: RewardNotifier | None = None,
        store: ProgressStore | None = None,
    ):
        self.config = config or load_app_config()
        self.catalog = catalog or SqliteCatalog()
        self.clock = clock
        self.notifier = notifier or LoggingRewardNotifier()
        self.store = store or ProgressStore(clock=clock)
        self.monitor = IntegrityMonitor(self.config.integrity)

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # -------------------------------------------------------------------------
    # Locking and conditional writes
    # -------------------------------------------------------------------------

    @contextmanager
    def _locked(self, attempt_id: str) -> Generator[None, None, None]:
        """Serialize mutations of one attempt.

        Only attempts that can still change keep a registry entry: the lock is
        dropped once the attempt is finished or turns out not to exist.
        """
        with self._locks_guard:
            lock = self._locks.setdefault(attempt_id, threading.Lock())
        with lock:
            try:
                yield
            except (AttemptNotFoundError, AttemptNotInProgressError):
                self._forget_lock(attempt_id)
                raise

    def _forget_lock(self, attempt_id: str) -> None:
        with self._locks_guard:
            self._locks.pop(attempt_id, None)

    def _update(self, attempt_id: str, apply: Callable[[Attempt], T]) -> tuple[Attempt, T]:
        """Load, apply a mutation and write back under the version check.

        Retries once on a version conflict, re-applying the mutation to the
        fresh document. Exceptions from `apply` abort without writing.
        """
        expected_version = -1
        for try_number in range(1, MAX_WRITE_TRIES + 1):
            attempt = self.store.load(attempt_id)
            expected_version = attempt.version
            outcome = apply(attempt)
            if self.store.write(attempt, expected_version):
                return attempt, outcome
            logger.warning(
                "write_conflict_retry",
                attempt_id=attempt_id,
                expected_version=expected_version,
                try_number=try_number,
            )
        raise ConcurrencyError(attempt_id, expected_version)

    # -------------------------------------------------------------------------
    # Catalog helpers
    # -------------------------------------------------------------------------

    def _get_series(self, series_id: str) -> TestSeries:
        series = self.catalog.get_series(series_id)
        if series is None:
            raise SeriesNotFoundError(series_id)
        return series

    def _check_window(self, series: TestSeries) -> None:
        if series.mode != "live":
            return
        now = self.clock()
        start_at = parse_timestamp(series.start_at)
        end_at = parse_timestamp(series.end_at)
        if start_at is not None and now < start_at:
            raise SeriesWindowClosedError(series.series_id, "This test has not started yet")
        if end_at is not None and now > end_at:
            raise SeriesWindowClosedError(series.series_id, "This test has ended")

    def _strict_mode_for(self, series: TestSeries, requested: bool | None) -> bool:
        if requested is not None:
            return requested
        return series.mode == "live" and (series.strict_mode or self.config.integrity.strict_live_series)

    def _new_seed(self, seed: int | None) -> int:
        if seed is not None:
            return int(seed)
        if self.config.selection.seed is not None:
            return int(self.config.selection.seed)
        return random.SystemRandom().randrange(_SEED_RANGE)

    def _select(
        self,
        series: TestSeries,
        seed: int,
        variant_code: str | None,
    ) -> tuple[str | None, list[SelectedQuestion]]:
        """Choose the variant and the bound questions from a seed."""
        if series.variants and variant_code is None:
            variant_code = random.Random(seed).choice([v.code for v in series.variants])
        try:
            sections = series.sections_for(variant_code)
        except KeyError:
            raise InvalidPayloadError(
                f"Series '{series.series_id}' has no variant '{variant_code}'"
            ) from None
        return variant_code, select_questions(
            sections, series.randomize_section_order, random.Random(seed)
        )

    def _bind(self, selected: list[SelectedQuestion]) -> list[BoundQuestion]:
        """Resolve marks for the selection; every id must exist in the bank."""
        ids = [s.question_id for s in selected]
        questions = self.catalog.get_questions(ids)
        missing = [qid for qid in ids if qid not in questions]
        if missing:
            raise QuestionNotFoundError(missing)

        return [
            BoundQuestion(
                question_id=s.question_id,
                section_title=s.section_title,
                section_order=s.section_order,
                position=s.position,
                marks=s.marks if s.marks is not None else questions[s.question_id].marks,
            )
            for s in selected
        ]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(
        self,
        series_id: str,
        student_id: str,
        *,
        variant_code: str | None = None,
        strict_mode: bool | None = None,
        seed: int | None = None,
    ) -> StartResult:
        """Create an in-progress attempt with its bound question set.

        Args:
            series_id: Test series to attempt
            student_id: Student starting the attempt
            variant_code: Variant to bind (random when omitted and the series has variants)
            strict_mode: Force anti-cheating on/off (series policy when None)
            seed: Selection seed (config seed or a fresh one when None)

        Returns:
            StartResult with the bound sections and time left

        Raises:
            SeriesNotFoundError, SeriesWindowClosedError, AttemptLimitExceeded,
            AttemptInProgressError, InsufficientPoolError, QuestionNotFoundError
        """
        series = self._get_series(series_id)
        self._check_window(series)

        counter = attempts_repository.get_counter(student_id, series_id)
        if counter.count >= series.max_attempts:
            raise AttemptLimitExceeded(series.max_attempts)

        existing = attempts_repository.find_in_progress(student_id, series_id)
        if existing is not None:
            raise AttemptInProgressError(student_id, series_id, existing.attempt_id)

        selection_seed = self._new_seed(seed)
        chosen_variant, selected = self._select(series, selection_seed, variant_code)
        bound = self._bind(selected)

        now = self.clock()
        attempt = Attempt(
            attempt_id=uuid.uuid4().hex,
            student_id=student_id,
            series_id=series_id,
            bound_questions=bound,
            started_at=now.isoformat(),
            duration_seconds=series.duration_seconds,
            time_left=series.duration_seconds,
            responses=[Response(question_id=b.question_id) for b in bound],
            strict_mode_enabled=self._strict_mode_for(series, strict_mode),
            variant_code=chosen_variant,
            selection_seed=selection_seed,
            attempt_no=counter.count + 1,
        )

        attempt_count = attempts_repository.create_attempt(attempt, series.max_attempts, now)

        logger.info(
            "attempt_started",
            attempt_id=attempt.attempt_id,
            student_id=student_id,
            series_id=series_id,
            questions=len(bound),
            attempt_count=attempt_count,
            strict_mode=attempt.strict_mode_enabled,
        )

        return StartResult(
            attempt_id=attempt.attempt_id,
            bound_sections=attempt.bound_sections(),
            time_left_seconds=attempt.time_left,
            attempt_no=attempt.attempt_no,
            variant_code=chosen_variant,
            strict_mode_enabled=attempt.strict_mode_enabled,
        )

    def save(
        self,
        attempt_id: str,
        responses: list[Any],
        time_left_seconds: int | None = None,
    ) -> SaveResult:
        """Merge a batch of partial responses into an in-progress attempt."""
        with self._locked(attempt_id):
            return self.store.save(attempt_id, responses, time_left_seconds)

    def submit(self, attempt_id: str, responses: list[Any] | None = None) -> SubmitResult:
        """Final save, grade and persist the graded attempt.

        The graded state is committed in a single conditional write. If
        grading fails nothing is written and the attempt stays in progress.

        Args:
            attempt_id: Attempt to submit
            responses: Optional last batch of responses, saved first

        Returns:
            SubmitResult

        Raises:
            AttemptNotFoundError, AttemptNotInProgressError, AttemptTerminatedError,
            UnknownQuestionError, ConcurrencyError, GradingError, StorageError
        """
        with self._locked(attempt_id):
            if responses:
                self.store.save(attempt_id, responses)

            def _grade(attempt: Attempt):
                attempt.require_in_progress()
                questions = self.catalog.get_questions(attempt.bound_ids)
                now = self.clock()

                attempt.transition(AttemptStatus.SUBMITTED)
                attempt.submitted_at = now.isoformat()
                summary = grade_attempt(attempt, questions, self.config.grading)

                attempt.score = summary.score
                attempt.max_score = summary.max_score
                attempt.percentage = summary.percentage
                attempt.graded_at = now.isoformat()
                taken = analytics.time_taken_seconds(attempt)
                attempt.time_left = max(0, attempt.duration_seconds - taken)
                attempt.transition(AttemptStatus.GRADED)
                return summary, taken

            try:
                attempt, (summary, taken) = self._update(attempt_id, _grade)
            except GradingError as e:
                logger.error("attempt_grading_failed", attempt_id=attempt_id, error=str(e))
                raise
            self._forget_lock(attempt_id)

        logger.info(
            "attempt_graded",
            attempt_id=attempt_id,
            score=summary.score,
            max_score=summary.max_score,
            percentage=summary.percentage,
        )
        self._notify_reward(attempt)

        return SubmitResult(
            attempt_id=attempt_id,
            score=summary.score,
            max_score=summary.max_score,
            percentage=summary.percentage,
            correct_answers=summary.correct_answers,
            total_questions=summary.total_questions,
            time_taken_seconds=taken,
            results=[r.to_dict() for r in summary.results],
        )

    def _notify_reward(self, attempt: Attempt) -> None:
        event = RewardEvent(
            student_id=attempt.student_id,
            series_id=attempt.series_id,
            attempt_id=attempt.attempt_id,
            score=attempt.score or 0.0,
            percentage=attempt.percentage or 0.0,
            submitted_at=attempt.submitted_at or "",
        )
        try:
            self.notifier.notify(event)
        except Exception as e:
            # Rewards are best-effort; the graded attempt is already committed
            logger.error(
                "reward_notification_failed",
                attempt_id=attempt.attempt_id,
                error=str(e),
            )

    def abandon(self, attempt_id: str) -> Attempt:
        """Student gives up an in-progress attempt (no score, no cheating flags)."""

        def _abort(attempt: Attempt) -> None:
            attempt.require_in_progress()
            attempt.transition(AttemptStatus.ABORTED)

        with self._locked(attempt_id):
            attempt, _ = self._update(attempt_id, _abort)
            self._forget_lock(attempt_id)

        logger.info("attempt_abandoned", attempt_id=attempt_id)
        return attempt

    # -------------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------------

    def enable_strict_mode(self, attempt_id: str) -> Attempt:
        """Turn anti-cheating monitoring on for an in-progress attempt."""

        def _enable(attempt: Attempt) -> None:
            attempt.require_in_progress()
            attempt.strict_mode_enabled = True

        with self._locked(attempt_id):
            attempt, _ = self._update(attempt_id, _enable)

        logger.info("strict_mode_enabled", attempt_id=attempt_id)
        return attempt

    def log_cheat_event(self, attempt_id: str, event_data: dict[str, Any]) -> IntegrityResult:
        """Record an integrity event; may terminate the attempt.

        Raises:
            IntegrityNotEnabledError, AttemptNotInProgressError,
            AttemptTerminatedError, InvalidPayloadError, ConcurrencyError
        """
        event = self.monitor.build_event(event_data, self.clock())

        with self._locked(attempt_id):
            attempt, result = self._update(
                attempt_id, lambda a: self.monitor.apply_event(a, event)
            )
            if result.should_terminate:
                self._forget_lock(attempt_id)

        logger.info(
            "cheating_event_logged",
            attempt_id=attempt_id,
            type=event.type,
            severity=event.severity,
            cheating_score=result.cheating_score,
            integrity_status=result.integrity_status,
        )
        if result.should_terminate:
            logger.warning(
                "attempt_terminated",
                attempt_id=attempt_id,
                student_id=attempt.student_id,
                cheating_score=result.cheating_score,
            )
        return result

    def get_cheating_stats(self, attempt_id: str) -> dict[str, Any]:
        return cheating_stats(self.store.load(attempt_id))

    def get_integrity_overview(self) -> dict[str, Any]:
        return integrity_overview(attempts_repository.list_strict_attempts())

    # -------------------------------------------------------------------------
    # Review and reads
    # -------------------------------------------------------------------------

    def review(self, attempt_id: str) -> dict[str, Any]:
        """Graded attempt with questions, answer keys and analytics.

        Raises:
            AttemptNotFoundError, AttemptNotGradedError
        """
        attempt = self.store.load(attempt_id)
        if attempt.status != AttemptStatus.GRADED:
            raise AttemptNotGradedError(attempt_id, attempt.status.value)

        questions = self.catalog.get_questions(attempt.bound_ids)
        language = self.config.grading.default_language

        items = []
        for bound in attempt.bound_questions:
            question = questions.get(bound.question_id)
            response = attempt.response_for(bound.question_id) or Response(question_id=bound.question_id)
            items.append(
                {
                    **bound.to_dict(),
                    "question": question.to_dict() if question else None,
                    "correct_options": sorted(question.correct_option_ids(language)) if question else [],
                    "response": response.to_dict(),
                }
            )

        previous = attempts_repository.list_student_attempts(attempt.student_id, attempt.series_id)
        report = analytics.generate_analytics(attempt, questions, self.config.analytics, previous)

        return {"attempt": attempt.to_dict(), "questions": items, "analytics": report}

    def get_attempt(self, attempt_id: str) -> Attempt:
        return self.store.load(attempt_id)

    def list_student_attempts(self, student_id: str, series_id: str | None = None) -> list[Attempt]:
        return attempts_repository.list_student_attempts(student_id, series_id)

    def get_student_stats(self, student_id: str) -> dict[str, Any]:
        stats = analytics.student_stats(attempts_repository.list_student_attempts(student_id))
        return {"student_id": student_id, **stats}

    def get_leaderboard(self, series_id: str, limit: int = 10) -> list[dict[str, Any]]:
        """Top graded attempts: percentage desc, earliest submission first."""
        self._get_series(series_id)
        rows = attempts_repository.leaderboard_rows(series_id, limit)
        return [
            {
                "rank": rank,
                "attempt_id": row["attempt_id"],
                "student_id": row["student_id"],
                "score": row["score"],
                "max_score": row["max_score"],
                "percentage": row["percentage"],
                "submitted_at": row["submitted_at"],
            }
            for rank, row in enumerate(rows, start=1)
        ]

    def get_series_analytics(self, series_id: str) -> dict[str, Any]:
        self._get_series(series_id)
        report = analytics.series_analytics(
            series_id, attempts_repository.list_graded_attempts(series_id)
        )
        report["unique_students"] = len(attempts_repository.list_series_counters(series_id))
        return report

    def get_question_stats(self, question_id: str) -> dict[str, Any]:
        """Accuracy and average time of a bank question over graded attempts."""
        if question_id not in self.catalog.get_questions([question_id]):
            raise QuestionNotFoundError([question_id])
        return analytics.question_stats(question_id, attempts_repository.list_graded_attempts())

    def get_question_analytics(self, limit: int = 10) -> dict[str, Any]:
        return analytics.question_analytics(attempts_repository.list_graded_attempts(), limit)

    def get_attempt_info(self, student_id: str, series_id: str) -> dict[str, Any]:
        """Attempt count, limit and latest attempt for a student on a series."""
        series = self._get_series(series_id)
        counter = attempts_repository.get_counter(student_id, series_id)
        attempts = attempts_repository.list_student_attempts(student_id, series_id)
        latest = attempts[0] if attempts else None
        in_progress = next((a for a in attempts if a.status == AttemptStatus.IN_PROGRESS), None)

        return {
            "student_id": student_id,
            "series_id": series_id,
            "attempt_count": counter.count,
            "max_attempts": series.max_attempts,
            "remaining_attempts": max(0, series.max_attempts - counter.count),
            "has_attempted": bool(attempts),
            "last_attempt_at": counter.last_attempt_at,
            "latest_attempt": _attempt_summary(latest) if latest else None,
            "in_progress_attempt_id": in_progress.attempt_id if in_progress else None,
        }

    def reset_attempt_count(self, student_id: str, series_id: str) -> AttemptCounter:
        """Admin: let a student start over on a series."""
        self._get_series(series_id)
        attempts_repository.reset_counter(student_id, series_id, self.clock())
        return attempts_repository.get_counter(student_id, series_id)

    def reproduce_selection(self, attempt_id: str) -> list[SelectedQuestion]:
        """Re-run the selection of an attempt from its stored seed and variant."""
        attempt = self.store.load(attempt_id)
        if attempt.selection_seed is None:
            raise InvalidPayloadError(f"Attempt '{attempt_id}' has no stored selection seed")
        series = self._get_series(attempt.series_id)
        _, selected = self._select(series, attempt.selection_seed, attempt.variant_code)
        return selected


def _attempt_summary(attempt: Attempt) -> dict[str, Any]:
    return {
        "attempt_id": attempt.attempt_id,
        "attempt_no": attempt.attempt_no,
        "status": attempt.status.value,
        "score": attempt.score,
        "max_score": attempt.max_score,
        "percentage": attempt.percentage,
        "started_at": attempt.started_at,
        "submitted_at": attempt.submitted_at,
        "integrity_status": attempt.integrity_status,
    }
