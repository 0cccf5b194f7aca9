"""Exception hierarchy for the attempt engine.

Families:
- ValidationError: malformed payloads, unknown question ids (never partially applied)
- NotFoundError: missing attempt, series or question
- ConcurrencyError: version conflict that survived the internal retry
- StateError: operation not allowed in the attempt's current status
- PolicyError: attempt limits, time windows, integrity policy
- SelectionError: question pool cannot satisfy a section
- GradingError / StorageError: failures during submit (attempt stays in progress)
"""

from __future__ import annotations


class AttemptEngineError(Exception):
    """Base class for all engine errors."""

    pass


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(AttemptEngineError):
    """Payload rejected before any state change."""

    pass


class InvalidPayloadError(ValidationError):
    """Malformed request data."""

    pass


class UnknownQuestionError(ValidationError):
    """Response references a question outside the attempt's bound set."""

    def __init__(self, question_ids: list[str]):
        self.question_ids = question_ids
        super().__init__(
            "Questions not bound to this attempt: " + ", ".join(question_ids)
        )


class DuplicateQuestionError(ValidationError):
    """Same question id appears twice in one attempt's selection."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question '{question_id}' selected more than once")


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(AttemptEngineError):
    """Requested entity does not exist."""

    pass


class AttemptNotFoundError(NotFoundError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt '{attempt_id}' not found")


class SeriesNotFoundError(NotFoundError):
    def __init__(self, series_id: str):
        self.series_id = series_id
        super().__init__(f"Test series '{series_id}' not found")


class QuestionNotFoundError(NotFoundError):
    def __init__(self, question_ids: list[str]):
        self.question_ids = question_ids
        super().__init__("Questions not found: " + ", ".join(question_ids))


# =============================================================================
# CONCURRENCY
# =============================================================================


class ConcurrencyError(AttemptEngineError):
    """Attempt document changed underneath a write, even after one retry."""

    def __init__(self, attempt_id: str, expected_version: int):
        self.attempt_id = attempt_id
        self.expected_version = expected_version
        super().__init__(
            f"Attempt '{attempt_id}' was modified concurrently "
            f"(expected version {expected_version}); reload and retry"
        )


# =============================================================================
# STATE
# =============================================================================


class StateError(AttemptEngineError):
    """Operation not allowed in the current attempt status."""

    pass


class AttemptNotInProgressError(StateError):
    def __init__(self, attempt_id: str, status: str):
        self.attempt_id = attempt_id
        self.status = status
        super().__init__(f"Attempt '{attempt_id}' is not in progress (status: {status})")


class AttemptTerminatedError(AttemptNotInProgressError):
    """Attempt was aborted; non-retryable."""

    def __init__(self, attempt_id: str, for_cheating: bool = False):
        self.for_cheating = for_cheating
        super().__init__(attempt_id, "aborted")
        reason = "for integrity violations" if for_cheating else "by the student"
        self.args = (f"Attempt '{attempt_id}' was terminated {reason}",)


class AttemptInProgressError(StateError):
    def __init__(self, student_id: str, series_id: str, attempt_id: str | None = None):
        self.student_id = student_id
        self.series_id = series_id
        self.attempt_id = attempt_id
        super().__init__(
            f"Student '{student_id}' already has an attempt in progress "
            f"for series '{series_id}'"
        )


class AttemptNotGradedError(StateError):
    def __init__(self, attempt_id: str, status: str):
        self.attempt_id = attempt_id
        self.status = status
        super().__init__(f"Attempt '{attempt_id}' has not been graded (status: {status})")


class AlreadyGradedError(StateError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt '{attempt_id}' is already graded")


class InvalidTransitionError(StateError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid attempt transition: {current} -> {target}")


# =============================================================================
# POLICY
# =============================================================================


class PolicyError(AttemptEngineError):
    """Request refused by a series or integrity policy."""

    pass


class AttemptLimitExceeded(PolicyError):
    def __init__(self, max_attempts: int):
        self.max_attempts = max_attempts
        super().__init__(
            f"You've reached the maximum number of {max_attempts} attempts for this test"
        )


class SeriesWindowClosedError(PolicyError):
    def __init__(self, series_id: str, reason: str):
        self.series_id = series_id
        self.reason = reason
        super().__init__(reason)


class IntegrityNotEnabledError(PolicyError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Anti-cheating not enabled for attempt '{attempt_id}'")


# =============================================================================
# SELECTION / GRADING / STORAGE
# =============================================================================


class SelectionError(AttemptEngineError):
    """Question selection failed."""

    pass


class InsufficientPoolError(SelectionError):
    def __init__(self, section_title: str, pool_size: int, requested: int):
        self.section_title = section_title
        self.pool_size = pool_size
        self.requested = requested
        super().__init__(
            f"Section '{section_title}' needs {requested} questions "
            f"but its pool only has {pool_size}"
        )


class GradingError(AttemptEngineError):
    """Grading could not complete; attempt remains in progress."""

    pass


class StorageError(AttemptEngineError):
    """Persistent store failure."""

    pass
