"""Series endpoints: leaderboard, analytics, attempt counters."""

from typing import Any

from fastapi import APIRouter, Query

from exam_engine.web.dependencies import get_engine
from exam_engine.web.schemas import AttemptCounterResponse, LeaderboardEntry, LeaderboardResponse

router = APIRouter(prefix="/api/series", tags=["series"])


@router.get("/{series_id}/leaderboard", response_model=LeaderboardResponse)
def get_leaderboard(series_id: str, limit: int = Query(default=10, ge=1, le=100)) -> LeaderboardResponse:
    """Top graded attempts for a series."""
    entries = get_engine().get_leaderboard(series_id, limit)
    return LeaderboardResponse(
        series_id=series_id,
        entries=[LeaderboardEntry(**e) for e in entries],
    )


@router.get("/{series_id}/analytics")
def get_series_analytics(series_id: str) -> dict[str, Any]:
    """Score distribution and averages across graded attempts."""
    return get_engine().get_series_analytics(series_id)


@router.get("/{series_id}/students/{student_id}/attempt-info")
def get_attempt_info(series_id: str, student_id: str) -> dict[str, Any]:
    """Attempt count, limit and latest attempt for a student."""
    return get_engine().get_attempt_info(student_id, series_id)


@router.delete("/{series_id}/students/{student_id}/attempt-count", response_model=AttemptCounterResponse)
def reset_attempt_count(series_id: str, student_id: str) -> AttemptCounterResponse:
    """Reset a student's attempt count for a series."""
    counter = get_engine().reset_attempt_count(student_id, series_id)
    return AttemptCounterResponse(**counter.to_dict())
