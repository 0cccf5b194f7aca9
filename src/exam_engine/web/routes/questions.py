"""Question endpoints: accuracy and timing across graded attempts."""

from typing import Any

from fastapi import APIRouter, Query

from exam_engine.web.dependencies import get_engine

router = APIRouter(prefix="/api/questions", tags=["questions"])


@router.get("/analytics")
def get_question_analytics(limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    """Hardest and slowest questions."""
    return get_engine().get_question_analytics(limit)


@router.get("/{question_id}/stats")
def get_question_stats(question_id: str) -> dict[str, Any]:
    """Accuracy and average time for one question."""
    return get_engine().get_question_stats(question_id)
