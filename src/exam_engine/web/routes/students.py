"""Student endpoints."""

from fastapi import APIRouter

from exam_engine.web.dependencies import get_engine
from exam_engine.web.routes.attempts import attempt_response
from exam_engine.web.schemas import AttemptListResponse, StudentStatsResponse

router = APIRouter(prefix="/api/students", tags=["students"])


@router.get("/{student_id}/attempts", response_model=AttemptListResponse)
def list_attempts(student_id: str, series_id: str | None = None) -> AttemptListResponse:
    """List a student's attempts, most recent first."""
    attempts = get_engine().list_student_attempts(student_id, series_id)
    return AttemptListResponse(
        attempts=[attempt_response(a) for a in attempts],
        count=len(attempts),
    )


@router.get("/{student_id}/stats", response_model=StudentStatsResponse)
def get_stats(student_id: str) -> StudentStatsResponse:
    """Aggregate results for a student."""
    return StudentStatsResponse(**get_engine().get_student_stats(student_id))
