"""SQLite database connection and schema management.

Provides connection management and schema initialization for the attempt
engine. Attempt documents are stored as JSON with a `version` column used as
the optimistic-concurrency token.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

from exam_engine.core.errors import StorageError

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/exam_engine.db")

# Current database (module-level for simplicity in CLI/API context)
_db_path: Path | None = None


def init_db(db_path: Path | str | None = None) -> Path:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/exam_engine.db

    Returns:
        Path of the initialized database
    """
    global _db_path
    _db_path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH

    # Ensure directory exists
    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))
    return _db_path


def get_db_path() -> Path:
    """Path of the active database."""
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Everything executed inside the block commits together or not at all.
    SQLite failures surface as StorageError.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM attempts").fetchall()
    """
    db_path = get_db_path()

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(db_path, timeout=10.0)
    except sqlite3.Error as e:
        raise StorageError(f"Cannot open database {db_path}: {e}") from e

    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error("database.error", error=str(e))
        raise StorageError(str(e)) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- Catalog (read-only to the engine, loaded by admin tooling)
        CREATE TABLE IF NOT EXISTS test_series (
            series_id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            mode TEXT NOT NULL CHECK(mode IN ('practice', 'live', 'official')),
            doc TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS questions (
            question_id TEXT PRIMARY KEY,
            doc TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- Attempts: JSON document plus queryable columns
        CREATE TABLE IF NOT EXISTS attempts (
            attempt_id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL,
            series_id TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('in_progress', 'submitted', 'graded', 'aborted')),
            version INTEGER NOT NULL DEFAULT 0,
            doc TEXT NOT NULL,
            started_at TEXT NOT NULL,
            submitted_at TEXT,
            score REAL,
            max_score REAL,
            percentage REAL,
            strict_mode_enabled INTEGER NOT NULL DEFAULT 0,
            integrity_status TEXT NOT NULL DEFAULT 'clean',
            cheating_score INTEGER NOT NULL DEFAULT 0
        );

        -- At most one in-progress attempt per (student, series)
        CREATE UNIQUE INDEX IF NOT EXISTS idx_attempts_one_in_progress
            ON attempts(student_id, series_id) WHERE status = 'in_progress';
        CREATE INDEX IF NOT EXISTS idx_attempts_student ON attempts(student_id);
        CREATE INDEX IF NOT EXISTS idx_attempts_series_status ON attempts(series_id, status);

        CREATE TABLE IF NOT EXISTS attempt_counters (
            student_id TEXT NOT NULL,
            series_id TEXT NOT NULL,
            attempt_count INTEGER NOT NULL DEFAULT 0 CHECK(attempt_count >= 0),
            last_attempt_at TEXT,
            PRIMARY KEY (student_id, series_id)
        );
        """
    )
