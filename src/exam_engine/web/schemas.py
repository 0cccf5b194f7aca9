"""Pydantic schemas for the Web API.

Request and response models for attempts, progress, integrity events and
the read-only reporting endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# ATTEMPT SCHEMAS
# =============================================================================


class StartAttemptRequest(BaseModel):
    """Request to start an attempt."""

    series_id: str = Field(..., min_length=1)
    student_id: str = Field(..., min_length=1)
    variant_code: str | None = None
    strict_mode: bool | None = None
    seed: int | None = None


class StartAttemptResponse(BaseModel):
    """Bound question set of a new attempt."""

    attempt_id: str
    bound_sections: list[dict[str, Any]]
    time_left_seconds: int
    attempt_no: int = 1
    variant_code: str | None = None
    strict_mode_enabled: bool = False


class ResponseItem(BaseModel):
    """One partial response; only the fields sent are updated."""

    question_id: str = Field(..., min_length=1)
    selected: list[str] | None = None
    time_spent: float | None = Field(default=None, ge=0)
    attempts: int | None = Field(default=None, ge=0)
    flagged: bool | None = None
    confidence: float | None = None


class SaveProgressRequest(BaseModel):
    """Request to save a batch of responses."""

    responses: list[ResponseItem] = Field(default_factory=list)
    time_left_seconds: int | None = Field(default=None, ge=0)


class SaveProgressResponse(BaseModel):
    attempt_id: str
    version: int
    updated: int
    time_left: int


class SubmitRequest(BaseModel):
    """Request to submit an attempt, with an optional last batch."""

    responses: list[ResponseItem] = Field(default_factory=list)


class SubmitResponse(BaseModel):
    """Grading result."""

    attempt_id: str
    score: float
    max_score: float
    percentage: float
    correct_answers: int
    total_questions: int
    time_taken_seconds: int
    results: list[dict[str, Any]] = Field(default_factory=list)


class AttemptResponse(BaseModel):
    """Current state of an attempt."""

    attempt_id: str
    student_id: str
    series_id: str
    status: str
    attempt_no: int
    version: int
    started_at: str
    submitted_at: str | None = None
    time_left: int
    duration_seconds: int
    score: float | None = None
    max_score: float | None = None
    percentage: float | None = None
    integrity_status: str = "clean"
    strict_mode_enabled: bool = False
    variant_code: str | None = None
    bound_sections: list[dict[str, Any]] = Field(default_factory=list)
    responses: list[dict[str, Any]] = Field(default_factory=list)


class AttemptListResponse(BaseModel):
    attempts: list[AttemptResponse]
    count: int


# =============================================================================
# INTEGRITY SCHEMAS
# =============================================================================


class IntegrityEventRequest(BaseModel):
    """A client-detected integrity event."""

    type: str = Field(..., min_length=1)
    severity: str | None = None
    question_index: int | None = Field(default=None, ge=0)
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class IntegrityEventResponse(BaseModel):
    cheating_score: int
    total_cheating_attempts: int
    integrity_status: str
    should_terminate: bool


# =============================================================================
# REPORTING SCHEMAS
# =============================================================================


class StudentStatsResponse(BaseModel):
    student_id: str
    total_attempts: int
    graded_attempts: int
    average_percentage: float
    best_percentage: float


class LeaderboardEntry(BaseModel):
    rank: int
    attempt_id: str
    student_id: str
    score: float | None = None
    max_score: float | None = None
    percentage: float | None = None
    submitted_at: str | None = None


class LeaderboardResponse(BaseModel):
    series_id: str
    entries: list[LeaderboardEntry]


class AttemptCounterResponse(BaseModel):
    student_id: str
    series_id: str
    count: int
    last_attempt_at: str | None = None


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
