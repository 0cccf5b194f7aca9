"""Repository functions for the test series and question catalog.

The engine only reads the catalog. Writes exist for admin tooling and
fixtures (`exam load-catalog`).
"""

from __future__ import annotations

import json
from typing import Protocol

import structlog

from exam_engine.core.models import Question, TestSeries
from exam_engine.db.database import get_db

logger = structlog.get_logger(__name__)


class QuestionBank(Protocol):
    """Read-only question bank contract."""

    def get_questions(self, question_ids: list[str]) -> dict[str, Question]:
        """Resolve ids to questions; missing ids are absent from the result."""
        ...


class SeriesCatalog(Protocol):
    def get_series(self, series_id: str) -> TestSeries | None:
        ...


class Catalog(QuestionBank, SeriesCatalog, Protocol):
    """Everything the attempt engine reads from the catalog."""


def upsert_series(series: TestSeries) -> None:
    """Insert or replace a test series definition."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO test_series (series_id, title, mode, doc)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(series_id) DO UPDATE SET
                title = excluded.title,
                mode = excluded.mode,
                doc = excluded.doc,
                updated_at = datetime('now')
            """,
            (series.series_id, series.title, series.mode, json.dumps(series.to_dict())),
        )

    logger.debug("series.upserted", series_id=series.series_id)


def get_series(series_id: str) -> TestSeries | None:
    """Get a test series by ID.

    Returns:
        TestSeries if found, None otherwise
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT doc FROM test_series WHERE series_id = ?", (series_id,)
        ).fetchone()

    if row is None:
        return None

    return TestSeries.from_dict(json.loads(row["doc"]))


def upsert_question(question: Question) -> None:
    """Insert or replace a question."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO questions (question_id, doc)
            VALUES (?, ?)
            ON CONFLICT(question_id) DO UPDATE SET
                doc = excluded.doc,
                updated_at = datetime('now')
            """,
            (question.question_id, json.dumps(question.to_dict())),
        )

    logger.debug("questions.upserted", question_id=question.question_id)


def get_questions(question_ids: list[str]) -> dict[str, Question]:
    """Resolve question ids.

    Args:
        question_ids: IDs to look up

    Returns:
        Mapping of found ids to Question (missing ids are omitted)
    """
    if not question_ids:
        return {}

    unique_ids = list(dict.fromkeys(question_ids))
    placeholders = ", ".join("?" for _ in unique_ids)

    with get_db() as conn:
        rows = conn.execute(
            f"SELECT doc FROM questions WHERE question_id IN ({placeholders})",
            unique_ids,
        ).fetchall()

    questions = [Question.from_dict(json.loads(row["doc"])) for row in rows]
    return {q.question_id: q for q in questions}


class SqliteCatalog:
    """Catalog backed by the engine database (QuestionBank + SeriesCatalog)."""

    def get_series(self, series_id: str) -> TestSeries | None:
        return get_series(series_id)

    def get_questions(self, question_ids: list[str]) -> dict[str, Question]:
        return get_questions(question_ids)
