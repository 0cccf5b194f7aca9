"""Repository functions for attempts and attempt counters.

Attempt writes are conditional on the stored `version`:

    UPDATE attempts SET doc = ?, version = version + 1 WHERE attempt_id = ? AND version = ?

A zero rowcount means another writer got there first; callers decide whether
to refetch and retry.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime

import structlog

from exam_engine.core.errors import AttemptInProgressError, AttemptLimitExceeded
from exam_engine.core.models import Attempt, AttemptCounter, AttemptStatus
from exam_engine.db.database import get_db

logger = structlog.get_logger(__name__)


def _columns(attempt: Attempt) -> tuple:
    return (
        attempt.status.value,
        json.dumps(attempt.to_dict()),
        attempt.submitted_at,
        attempt.score,
        attempt.max_score,
        attempt.percentage,
        int(attempt.strict_mode_enabled),
        attempt.integrity_status,
        attempt.cheating_score,
    )


def create_attempt(attempt: Attempt, max_attempts: int, now: datetime) -> int:
    """Insert a new in-progress attempt and bump the attempt counter.

    Both writes share one transaction: if either fails, neither is kept.

    Args:
        attempt: New attempt (status in_progress, version 0)
        max_attempts: Series limit, re-checked atomically on increment
        now: Timestamp recorded as last_attempt_at

    Returns:
        New attempt count for (student, series)

    Raises:
        AttemptInProgressError: If an in-progress attempt already exists
        AttemptLimitExceeded: If the counter already reached max_attempts
    """
    with get_db() as conn:
        try:
            conn.execute(
                """
                INSERT INTO attempts (
                    attempt_id, student_id, series_id, started_at, version,
                    status, doc, submitted_at, score, max_score, percentage,
                    strict_mode_enabled, integrity_status, cheating_score
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attempt.attempt_id,
                    attempt.student_id,
                    attempt.series_id,
                    attempt.started_at,
                    attempt.version,
                    *_columns(attempt),
                ),
            )
        except sqlite3.IntegrityError:
            raise AttemptInProgressError(attempt.student_id, attempt.series_id)

        cursor = conn.execute(
            """
            INSERT INTO attempt_counters (student_id, series_id, attempt_count, last_attempt_at)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(student_id, series_id) DO UPDATE SET
                attempt_count = attempt_count + 1,
                last_attempt_at = excluded.last_attempt_at
            WHERE attempt_count < ?
            """,
            (attempt.student_id, attempt.series_id, now.isoformat(), max_attempts),
        )
        if cursor.rowcount == 0 or max_attempts < 1:
            raise AttemptLimitExceeded(max_attempts)

        row = conn.execute(
            "SELECT attempt_count FROM attempt_counters WHERE student_id = ? AND series_id = ?",
            (attempt.student_id, attempt.series_id),
        ).fetchone()

    logger.debug("attempts.inserted", attempt_id=attempt.attempt_id)
    return int(row["attempt_count"])


def get_attempt(attempt_id: str) -> Attempt | None:
    """Get attempt by ID, with `version` taken from the column."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT doc, version FROM attempts WHERE attempt_id = ?", (attempt_id,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_attempt(row)


def update_attempt(attempt: Attempt, expected_version: int) -> bool:
    """Write an attempt back if nobody changed it since expected_version.

    On success the attempt's in-memory version is advanced.

    Returns:
        True if written, False on version conflict
    """
    new_version = expected_version + 1
    attempt.version = new_version

    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE attempts SET
                status = ?,
                doc = ?,
                submitted_at = ?,
                score = ?,
                max_score = ?,
                percentage = ?,
                strict_mode_enabled = ?,
                integrity_status = ?,
                cheating_score = ?,
                version = ?
            WHERE attempt_id = ? AND version = ?
            """,
            (*_columns(attempt), new_version, attempt.attempt_id, expected_version),
        )

    if cursor.rowcount == 0:
        attempt.version = expected_version
        logger.debug(
            "attempts.version_conflict",
            attempt_id=attempt.attempt_id,
            expected_version=expected_version,
        )
        return False

    return True


def find_in_progress(student_id: str, series_id: str) -> Attempt | None:
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT doc, version FROM attempts
            WHERE student_id = ? AND series_id = ? AND status = ?
            """,
            (student_id, series_id, AttemptStatus.IN_PROGRESS.value),
        ).fetchone()

    return _row_to_attempt(row) if row else None


def list_student_attempts(student_id: str, series_id: str | None = None) -> list[Attempt]:
    """All attempts for a student, most recent first."""
    query = "SELECT doc, version FROM attempts WHERE student_id = ?"
    params: list[str] = [student_id]
    if series_id is not None:
        query += " AND series_id = ?"
        params.append(series_id)
    query += " ORDER BY started_at DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_attempt(row) for row in rows]


def list_graded_attempts(series_id: str | None = None) -> list[Attempt]:
    """Graded attempts of one series, or of every series when None."""
    query = "SELECT doc, version FROM attempts WHERE status = ?"
    params: list[str] = [AttemptStatus.GRADED.value]
    if series_id is not None:
        query += " AND series_id = ?"
        params.append(series_id)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [_row_to_attempt(row) for row in rows]


def leaderboard_rows(series_id: str, limit: int = 10) -> list[sqlite3.Row]:
    """Top graded attempts by percentage, earliest submission first on ties."""
    with get_db() as conn:
        return conn.execute(
            """
            SELECT attempt_id, student_id, score, max_score, percentage, submitted_at
            FROM attempts
            WHERE series_id = ? AND status = ?
            ORDER BY percentage DESC, submitted_at ASC
            LIMIT ?
            """,
            (series_id, AttemptStatus.GRADED.value, limit),
        ).fetchall()


def list_strict_attempts() -> list[Attempt]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT doc, version FROM attempts WHERE strict_mode_enabled = 1"
        ).fetchall()

    return [_row_to_attempt(row) for row in rows]


# =============================================================================
# COUNTERS
# =============================================================================


def get_counter(student_id: str, series_id: str) -> AttemptCounter:
    """Get the attempt counter (zero if the student never started)."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT attempt_count, last_attempt_at FROM attempt_counters
            WHERE student_id = ? AND series_id = ?
            """,
            (student_id, series_id),
        ).fetchone()

    if row is None:
        return AttemptCounter(student_id=student_id, series_id=series_id)

    return AttemptCounter(
        student_id=student_id,
        series_id=series_id,
        count=int(row["attempt_count"]),
        last_attempt_at=row["last_attempt_at"],
    )


def reset_counter(student_id: str, series_id: str, now: datetime) -> None:
    """Reset a student's attempt count for a series to zero."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO attempt_counters (student_id, series_id, attempt_count, last_attempt_at)
            VALUES (?, ?, 0, ?)
            ON CONFLICT(student_id, series_id) DO UPDATE SET
                attempt_count = 0,
                last_attempt_at = excluded.last_attempt_at
            """,
            (student_id, series_id, now.isoformat()),
        )

    logger.info("attempt_counter.reset", student_id=student_id, series_id=series_id)


def list_series_counters(series_id: str) -> list[AttemptCounter]:
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT student_id, attempt_count, last_attempt_at FROM attempt_counters
            WHERE series_id = ? ORDER BY student_id
            """,
            (series_id,),
        ).fetchall()

    return [
        AttemptCounter(
            student_id=row["student_id"],
            series_id=series_id,
            count=int(row["attempt_count"]),
            last_attempt_at=row["last_attempt_at"],
        )
        for row in rows
    ]


def _row_to_attempt(row: sqlite3.Row) -> Attempt:
    """Convert database row to Attempt; the column version is authoritative."""
    attempt = Attempt.from_dict(json.loads(row["doc"]))
    attempt.version = int(row["version"])
    return attempt
