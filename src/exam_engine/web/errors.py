"""Mapping of engine errors to HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from exam_engine.core.errors import (
    AttemptEngineError,
    AttemptInProgressError,
    AttemptLimitExceeded,
    AttemptTerminatedError,
    ConcurrencyError,
    GradingError,
    IntegrityNotEnabledError,
    InvalidPayloadError,
    NotFoundError,
    SelectionError,
    SeriesWindowClosedError,
    StateError,
    StorageError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# First match wins: subclasses before their parents
ERROR_STATUS: list[tuple[type[AttemptEngineError], int]] = [
    (AttemptTerminatedError, status.HTTP_410_GONE),
    (AttemptInProgressError, status.HTTP_409_CONFLICT),
    (ConcurrencyError, status.HTTP_409_CONFLICT),
    (StateError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AttemptLimitExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (SeriesWindowClosedError, status.HTTP_403_FORBIDDEN),
    (IntegrityNotEnabledError, status.HTTP_403_FORBIDDEN),
    (InvalidPayloadError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SelectionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (GradingError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: AttemptEngineError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def engine_error_handler(request: Request, exc: AttemptEngineError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("api_engine_error", path=request.url.path, error=str(exc), type=type(exc).__name__)
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AttemptEngineError, engine_error_handler)
