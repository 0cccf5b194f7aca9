"""Attempt endpoints: start, progress, submit, review, integrity."""

from typing import Any

from fastapi import APIRouter, status

from exam_engine.core.models import Attempt
from exam_engine.web.dependencies import get_engine
from exam_engine.web.schemas import (
    AttemptResponse,
    IntegrityEventRequest,
    IntegrityEventResponse,
    ResponseItem,
    SaveProgressRequest,
    SaveProgressResponse,
    StartAttemptRequest,
    StartAttemptResponse,
    SubmitRequest,
    SubmitResponse,
)

router = APIRouter(prefix="/api/attempts", tags=["attempts"])


def _payload(items: list[ResponseItem]) -> list[dict[str, Any]]:
    # Unset fields must not overwrite stored values
    return [item.model_dump(exclude_unset=True) for item in items]


def attempt_response(attempt: Attempt) -> AttemptResponse:
    return AttemptResponse(
        attempt_id=attempt.attempt_id,
        student_id=attempt.student_id,
        series_id=attempt.series_id,
        status=attempt.status.value,
        attempt_no=attempt.attempt_no,
        version=attempt.version,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
        time_left=attempt.time_left,
        duration_seconds=attempt.duration_seconds,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        integrity_status=attempt.integrity_status,
        strict_mode_enabled=attempt.strict_mode_enabled,
        variant_code=attempt.variant_code,
        bound_sections=attempt.bound_sections(),
        responses=[r.to_dict() for r in attempt.responses],
    )


@router.post("", response_model=StartAttemptResponse, status_code=status.HTTP_201_CREATED)
def start_attempt(request: StartAttemptRequest) -> StartAttemptResponse:
    """Start a new attempt on a test series."""
    result = get_engine().start(
        request.series_id,
        request.student_id,
        variant_code=request.variant_code,
        strict_mode=request.strict_mode,
        seed=request.seed,
    )
    return StartAttemptResponse(**result.to_dict())


@router.get("/{attempt_id}", response_model=AttemptResponse)
def get_attempt(attempt_id: str) -> AttemptResponse:
    """Get the current state of an attempt."""
    return attempt_response(get_engine().get_attempt(attempt_id))


@router.put("/{attempt_id}/progress", response_model=SaveProgressResponse)
def save_progress(attempt_id: str, request: SaveProgressRequest) -> SaveProgressResponse:
    """Save a batch of responses."""
    result = get_engine().save(attempt_id, _payload(request.responses), request.time_left_seconds)
    return SaveProgressResponse(
        attempt_id=result.attempt_id,
        version=result.version,
        updated=result.updated,
        time_left=result.time_left,
    )


@router.post("/{attempt_id}/submit", response_model=SubmitResponse)
def submit_attempt(attempt_id: str, request: SubmitRequest | None = None) -> SubmitResponse:
    """Submit and grade an attempt."""
    responses = _payload(request.responses) if request else None
    result = get_engine().submit(attempt_id, responses)
    return SubmitResponse(**result.to_dict())


@router.get("/{attempt_id}/review")
def review_attempt(attempt_id: str) -> dict[str, Any]:
    """Graded attempt with answer keys and analytics."""
    return get_engine().review(attempt_id)


@router.post("/{attempt_id}/abandon", response_model=AttemptResponse)
def abandon_attempt(attempt_id: str) -> AttemptResponse:
    """Abandon an in-progress attempt."""
    return attempt_response(get_engine().abandon(attempt_id))


@router.post("/{attempt_id}/strict-mode", response_model=AttemptResponse)
def enable_strict_mode(attempt_id: str) -> AttemptResponse:
    """Turn on anti-cheating monitoring for an attempt."""
    return attempt_response(get_engine().enable_strict_mode(attempt_id))


@router.post("/{attempt_id}/integrity-events", response_model=IntegrityEventResponse)
def log_integrity_event(attempt_id: str, request: IntegrityEventRequest) -> IntegrityEventResponse:
    """Record an integrity event reported by the client."""
    result = get_engine().log_cheat_event(attempt_id, request.model_dump(exclude_none=True))
    return IntegrityEventResponse(**result.to_dict())


@router.get("/{attempt_id}/integrity")
def get_integrity(attempt_id: str) -> dict[str, Any]:
    """Cheating statistics and event log for an attempt."""
    return get_engine().get_cheating_stats(attempt_id)
