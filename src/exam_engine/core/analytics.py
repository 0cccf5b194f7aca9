"""Post-submission analytics.

Builds the performance report shown on the review screen:
- overall counts, accuracy and letter grade
- difficulty, subject and topic breakdowns
- time analysis against the expected time per question
- threshold-driven recommendations and weak subjects
- comparison with the student's earlier attempts on the same series

Also aggregates across attempts (student stats, series analytics and
per-question accuracy and timing).
All functions are pure; thresholds come from AnalyticsConfig.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

import structlog

from exam_engine.config.app_config import AnalyticsConfig
from exam_engine.core.errors import AttemptNotGradedError
from exam_engine.core.models import Attempt, AttemptStatus, Question, parse_timestamp

logger = structlog.get_logger(__name__)

DIFFICULTY_LEVELS = ("Easy", "Medium", "Hard")

# (lower bound inclusive, letter)
GRADE_BANDS = ((90, "A+"), (80, "A"), (70, "B"), (60, "C"), (50, "D"))

# Score distribution buckets by percentage: [low, high)
DISTRIBUTION_BUCKETS = ((0, 20), (20, 40), (40, 60), (60, 80), (80, 101))

UNKNOWN_SUBJECT = "Unknown"


def grade_letter(percentage: float) -> str:
    for lower, letter in GRADE_BANDS:
        if percentage >= lower:
            return letter
    return "F"


def _ratio(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return round(100.0 * part / whole, 2)


def time_taken_seconds(attempt: Attempt) -> int:
    """Seconds between start and submission, clamped to the attempt duration."""
    started = parse_timestamp(attempt.started_at)
    submitted = parse_timestamp(attempt.submitted_at)
    if started is None or submitted is None:
        return 0
    elapsed = int((submitted - started).total_seconds())
    return max(0, min(elapsed, attempt.duration_seconds))


# =============================================================================
# PER-ATTEMPT ANALYTICS
# =============================================================================


def _require_graded(attempt: Attempt) -> None:
    if attempt.status != AttemptStatus.GRADED:
        raise AttemptNotGradedError(attempt.attempt_id, attempt.status.value)


def overall_stats(attempt: Attempt) -> dict[str, Any]:
    total = len(attempt.bound_questions)
    responses = [attempt.response_for(qid) for qid in attempt.bound_ids]
    correct = sum(1 for r in responses if r is not None and r.status == "correct")
    incorrect = sum(1 for r in responses if r is not None and r.status == "incorrect")
    time_spent = sum(r.time_spent for r in responses if r is not None)
    accuracy = _ratio(correct, total)

    return {
        "total_questions": total,
        "correct_answers": correct,
        "incorrect_answers": incorrect,
        "unanswered": total - correct - incorrect,
        "accuracy": accuracy,
        "time_spent": time_spent,
        "average_time_per_question": round(time_spent / total, 2) if total else 0.0,
        "flagged_count": sum(1 for r in responses if r is not None and r.flagged),
        "grade": grade_letter(attempt.percentage or 0.0),
    }


def breakdowns(attempt: Attempt, questions: dict[str, Question]) -> dict[str, Any]:
    """Difficulty, subject and topic breakdowns (total/correct per bucket)."""
    difficulty: dict[str, dict[str, int]] = {
        level: {"total": 0, "correct": 0} for level in DIFFICULTY_LEVELS
    }
    subjects: dict[str, dict[str, float]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "time_spent": 0.0}
    )
    topics: dict[str, dict[str, int]] = defaultdict(lambda: {"total": 0, "correct": 0})

    for qid in attempt.bound_ids:
        question = questions.get(qid)
        response = attempt.response_for(qid)
        is_correct = response is not None and response.status == "correct"
        time_spent = response.time_spent if response is not None else 0.0

        if question is not None and question.difficulty in difficulty:
            difficulty[question.difficulty]["total"] += 1
            difficulty[question.difficulty]["correct"] += int(is_correct)

        subject = question.subject.label if question and question.subject else UNKNOWN_SUBJECT
        subjects[subject]["total"] += 1
        subjects[subject]["correct"] += int(is_correct)
        subjects[subject]["time_spent"] += time_spent

        if question is not None and question.topic is not None:
            topics[question.topic.label]["total"] += 1
            topics[question.topic.label]["correct"] += int(is_correct)

    return {
        "difficulty_breakdown": difficulty,
        "subject_performance": dict(subjects),
        "topic_performance": dict(topics),
    }


def time_analysis(attempt: Attempt, config: AnalyticsConfig) -> dict[str, Any]:
    times = [
        r.time_spent
        for r in (attempt.response_for(qid) for qid in attempt.bound_ids)
        if r is not None and r.time_spent > 0
    ]
    return {
        "fastest_question": min(times) if times else 0.0,
        "slowest_question": max(times) if times else 0.0,
        "questions_over_time": sum(1 for t in times if t > config.expected_time_seconds),
        "expected_time_per_question": config.expected_time_seconds,
    }


def weak_subjects(subject_performance: dict[str, dict[str, float]], config: AnalyticsConfig) -> list[str]:
    """Subjects whose accuracy falls below the weak-subject threshold."""
    weak = [
        name
        for name, stats in subject_performance.items()
        if stats["total"] and _ratio(stats["correct"], stats["total"]) < config.weak_subject_accuracy
    ]
    return sorted(weak)


def recommendations(accuracy: float, questions_over_time: int, config: AnalyticsConfig) -> list[str]:
    result: list[str] = []
    if accuracy < config.accuracy_cutoff:
        result.extend(config.fundamentals_recommendations)
    if questions_over_time > config.time_over_limit_cutoff:
        result.extend(config.time_management_recommendations)
    result.extend(config.general_recommendations)
    return result


def comparative_analytics(attempt: Attempt, previous: list[Attempt]) -> dict[str, Any]:
    """Compare an attempt with the student's earlier graded attempts.

    Args:
        attempt: Current graded attempt
        previous: Other attempts of the same student on the same series
            (non-graded and later attempts are ignored)
    """
    current = attempt.percentage or 0.0
    started = parse_timestamp(attempt.started_at)
    earlier = [
        a
        for a in previous
        if a.attempt_id != attempt.attempt_id
        and a.status == AttemptStatus.GRADED
        and a.percentage is not None
        and (started is None or parse_timestamp(a.started_at) < started)
    ]

    if not earlier:
        return {
            "current_score": current,
            "average_previous": None,
            "improvement": 0.0,
            "total_attempts": 1,
            "trend": "first_attempt",
        }

    average_previous = round(sum(a.percentage for a in earlier) / len(earlier), 2)
    improvement = round(current - average_previous, 2)
    if improvement > 0:
        trend = "improving"
    elif improvement < 0:
        trend = "declining"
    else:
        trend = "stable"

    return {
        "current_score": current,
        "average_previous": average_previous,
        "improvement": improvement,
        "total_attempts": len(earlier) + 1,
        "trend": trend,
    }


def generate_analytics(
    attempt: Attempt,
    questions: dict[str, Question],
    config: AnalyticsConfig | None = None,
    previous_attempts: list[Attempt] | None = None,
) -> dict[str, Any]:
    """Full performance report for a graded attempt.

    Args:
        attempt: Graded attempt
        questions: Bound questions resolved from the bank (for difficulty/subject)
        config: Analytics thresholds
        previous_attempts: Student's attempts on the same series, for comparison

    Returns:
        Dict with performance, time, weakness and comparative sections

    Raises:
        AttemptNotGradedError: If the attempt is not graded
    """
    _require_graded(attempt)
    config = config or AnalyticsConfig()

    overall = overall_stats(attempt)
    parts = breakdowns(attempt, questions)
    timing = time_analysis(attempt, config)
    weak = weak_subjects(parts["subject_performance"], config)

    focus_areas = []
    if overall["accuracy"] < config.accuracy_cutoff:
        focus_areas.append("Accuracy")
    if timing["questions_over_time"] > config.time_over_limit_cutoff:
        focus_areas.append("Time Management")

    logger.debug("analytics_generated", attempt_id=attempt.attempt_id, weak_subjects=len(weak))

    return {
        "performance": {
            "overall": overall,
            **parts,
            "time_analysis": timing,
        },
        "weakness_analysis": {
            "weak_subjects": weak,
            "focus_areas": focus_areas,
        },
        "recommendations": recommendations(
            overall["accuracy"], timing["questions_over_time"], config
        ),
        "comparative": comparative_analytics(attempt, previous_attempts or []),
    }


# =============================================================================
# AGGREGATES
# =============================================================================


def student_stats(attempts: list[Attempt]) -> dict[str, Any]:
    """Totals over a student's graded attempts."""
    graded = [a for a in attempts if a.status == AttemptStatus.GRADED and a.percentage is not None]
    percentages = [a.percentage for a in graded]
    return {
        "total_attempts": len(attempts),
        "graded_attempts": len(graded),
        "average_percentage": round(sum(percentages) / len(percentages), 2) if percentages else 0.0,
        "best_percentage": max(percentages) if percentages else 0.0,
    }


def series_analytics(series_id: str, attempts: list[Attempt]) -> dict[str, Any]:
    """Aggregate analytics over the graded attempts of one series."""
    graded = [a for a in attempts if a.status == AttemptStatus.GRADED]
    if not graded:
        return {
            "series_id": series_id,
            "total_attempts": 0,
            "average_percentage": 0.0,
            "best_score": None,
            "worst_score": None,
            "average_time_seconds": 0.0,
            "score_distribution": {f"{lo}-{min(hi, 100)}": 0 for lo, hi in DISTRIBUTION_BUCKETS},
        }

    percentages = [a.percentage or 0.0 for a in graded]
    scores = [a.score or 0.0 for a in graded]
    times = [time_taken_seconds(a) for a in graded]

    distribution = {f"{lo}-{min(hi, 100)}": 0 for lo, hi in DISTRIBUTION_BUCKETS}
    for pct in percentages:
        for lo, hi in DISTRIBUTION_BUCKETS:
            if lo <= pct < hi:
                distribution[f"{lo}-{min(hi, 100)}"] += 1
                break

    return {
        "series_id": series_id,
        "total_attempts": len(graded),
        "average_percentage": round(sum(percentages) / len(percentages), 2),
        "best_score": max(scores),
        "worst_score": min(scores),
        "average_time_seconds": round(sum(times) / len(times), 2),
        "score_distribution": distribution,
    }


# =============================================================================
# QUESTION STATISTICS
# =============================================================================


def _question_totals(attempts: list[Attempt]) -> dict[str, dict[str, float]]:
    """Per-question counts over graded attempts that bound the question."""
    totals: dict[str, dict[str, float]] = defaultdict(
        lambda: {"total": 0, "answered": 0, "correct": 0, "time_spent": 0.0}
    )
    for attempt in attempts:
        if attempt.status != AttemptStatus.GRADED:
            continue
        for question_id in attempt.bound_ids:
            bucket = totals[question_id]
            bucket["total"] += 1
            response = attempt.response_for(question_id)
            if response is None:
                continue
            if response.status != "unanswered":
                bucket["answered"] += 1
            if response.status == "correct":
                bucket["correct"] += 1
            bucket["time_spent"] += response.time_spent
    return totals


def _question_entry(question_id: str, bucket: dict[str, float]) -> dict[str, Any]:
    total = int(bucket["total"])
    return {
        "question_id": question_id,
        "total_responses": total,
        "answered": int(bucket["answered"]),
        "correct": int(bucket["correct"]),
        "accuracy": _ratio(bucket["correct"], total),
        "average_time": round(bucket["time_spent"] / total, 2) if total else 0.0,
    }


def question_stats(question_id: str, attempts: list[Attempt]) -> dict[str, Any]:
    """Accuracy and average time of one question across graded attempts.

    Unanswered responses count towards the total, so accuracy is the share of
    students who got the question right when it was put in front of them.
    """
    return _question_entry(question_id, _question_totals(attempts)[question_id])


def question_analytics(attempts: list[Attempt], limit: int = 10) -> dict[str, Any]:
    """Hardest (lowest accuracy) and slowest (highest average time) questions."""
    entries = [_question_entry(qid, bucket) for qid, bucket in _question_totals(attempts).items()]

    hardest = sorted(entries, key=lambda e: (e["accuracy"], -e["total_responses"], e["question_id"]))
    slowest = sorted(entries, key=lambda e: (-e["average_time"], e["question_id"]))

    return {
        "questions_tracked": len(entries),
        "hardest": hardest[:limit],
        "slowest": slowest[:limit],
    }
