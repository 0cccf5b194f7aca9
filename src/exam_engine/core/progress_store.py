"""Progress store: incremental response saves with optimistic concurrency.

Responsibilities:
- Validate a batch of partial responses against the attempt's bound set
- Merge by question id (create-or-update, never append duplicates)
- Persist conditioned on the attempt version; on conflict refetch and
  retry once, then raise ConcurrencyError

A merge only touches the fields present in each incoming response, so a
client sending {question_id, selected} does not reset its time or flags.
Re-sending an identical payload leaves the stored responses unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import structlog

from exam_engine.core.errors import (
    AttemptNotFoundError,
    ConcurrencyError,
    InvalidPayloadError,
    UnknownQuestionError,
)
from exam_engine.core.models import Attempt, Reference, Response, normalize_keys, utc_now
from exam_engine.db import attempts_repository

logger = structlog.get_logger(__name__)


def _selected(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise TypeError("expected a list of option ids")
    for option in value:
        if isinstance(option, bool) or not isinstance(option, (str, int)):
            raise TypeError(f"option id {option!r} is not a string")
    return [str(option) for option in value]


def _flag(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError("expected true or false")
    return value


# Client fields a save may update, with their validation
_UPDATABLE_FIELDS: dict[str, Callable[[Any], Any]] = {
    "selected": _selected,
    "time_spent": float,
    "attempts": int,
    "flagged": _flag,
    "confidence": lambda v: float(v) if v is not None else None,
}

_ALIASES = {"question": "question_id", "selected_options": "selected"}

MAX_WRITE_TRIES = 2  # first write plus one retry


@dataclass
class ResponseUpdate:
    """Fields of one response present in a save payload."""

    question_id: str
    changes: dict[str, Any]


@dataclass
class SaveResult:
    """Result of a progress save."""

    attempt_id: str
    version: int
    updated: int
    time_left: int


def parse_response_updates(raw_responses: list[Any]) -> list[ResponseUpdate]:
    """Parse a save payload into partial updates.

    Raises:
        InvalidPayloadError: If any entry is malformed (whole batch rejected)
    """
    if not isinstance(raw_responses, list):
        raise InvalidPayloadError("responses must be a list")

    updates: list[ResponseUpdate] = []
    for index, raw in enumerate(raw_responses):
        if isinstance(raw, Response):
            raw = raw.to_dict()
        if not isinstance(raw, dict):
            raise InvalidPayloadError(f"Response #{index} is not an object")

        data = normalize_keys(raw, _ALIASES)
        ref = Reference.parse(data.get("question_id"))
        if ref is None:
            raise InvalidPayloadError(f"Response #{index} has no question id")

        changes: dict[str, Any] = {}
        for name, coerce in _UPDATABLE_FIELDS.items():
            if name not in data:
                continue
            try:
                changes[name] = coerce(data[name])
            except (TypeError, ValueError) as e:
                raise InvalidPayloadError(f"Response #{index}: invalid '{name}': {e}") from e

        if "selected" in changes and len(set(changes["selected"])) != len(changes["selected"]):
            changes["selected"] = list(dict.fromkeys(changes["selected"]))
        if changes.get("time_spent", 0) < 0 or changes.get("attempts", 0) < 0:
            raise InvalidPayloadError(f"Response #{index}: negative time_spent/attempts")

        updates.append(ResponseUpdate(question_id=ref.id, changes=changes))

    return updates


def validate_bound(attempt: Attempt, updates: list[ResponseUpdate]) -> None:
    """Reject the batch if any response is outside the bound question set."""
    bound = set(attempt.bound_ids)
    unknown = [u.question_id for u in updates if u.question_id not in bound]
    if unknown:
        raise UnknownQuestionError(list(dict.fromkeys(unknown)))


def merge_responses(attempt: Attempt, updates: list[ResponseUpdate], now: datetime) -> int:
    """Apply updates to the attempt's response slots in place.

    Returns:
        Number of responses whose stored content changed
    """
    stamp = now.isoformat()
    changed = 0

    for update in updates:
        response = attempt.response_for(update.question_id)
        if response is None:
            response = Response(question_id=update.question_id)
            attempt.responses.append(response)

        modified = False
        for name, value in update.changes.items():
            if getattr(response, name) != value:
                setattr(response, name, value)
                modified = True

        if response.visited_at is None:
            response.visited_at = stamp
            modified = True

        status = "answered" if response.selected else "unanswered"
        if response.status != status:
            response.status = status
            modified = True

        if modified:
            response.last_modified_at = stamp
            changed += 1

    return changed


class ProgressStore:
    """Applies response batches to attempts under optimistic concurrency."""

    def __init__(
        self,
        load: Callable[[str], Attempt | None] = attempts_repository.get_attempt,
        write: Callable[[Attempt, int], bool] = attempts_repository.update_attempt,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._load = load
        self._write = write
        self._clock = clock

    def load(self, attempt_id: str) -> Attempt:
        attempt = self._load(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)
        return attempt

    def write(self, attempt: Attempt, expected_version: int) -> bool:
        """Conditional write; False when the stored version moved on."""
        return self._write(attempt, expected_version)

    def save(
        self,
        attempt_id: str,
        raw_responses: list[Any],
        time_left_seconds: int | None = None,
    ) -> SaveResult:
        """Merge responses into an in-progress attempt.

        Args:
            attempt_id: Attempt to update
            raw_responses: Partial response dicts (camelCase or snake_case)
            time_left_seconds: Client timer value; clamped to [0, duration]

        Returns:
            SaveResult with the new version

        Raises:
            AttemptNotFoundError, AttemptNotInProgressError, AttemptTerminatedError,
            UnknownQuestionError, InvalidPayloadError, ConcurrencyError
        """
        updates = parse_response_updates(raw_responses)
        expected_version = -1

        for try_number in range(1, MAX_WRITE_TRIES + 1):
            attempt = self.load(attempt_id)
            attempt.require_in_progress()
            validate_bound(attempt, updates)

            expected_version = attempt.version
            changed = merge_responses(attempt, updates, self._clock())
            if time_left_seconds is not None:
                attempt.time_left = max(0, min(int(time_left_seconds), attempt.duration_seconds))

            if self.write(attempt, expected_version):
                logger.info(
                    "progress_saved",
                    attempt_id=attempt_id,
                    version=attempt.version,
                    responses=len(updates),
                    changed=changed,
                    try_number=try_number,
                )
                return SaveResult(
                    attempt_id=attempt_id,
                    version=attempt.version,
                    updated=changed,
                    time_left=attempt.time_left,
                )

            logger.warning(
                "save_conflict_retry",
                attempt_id=attempt_id,
                expected_version=expected_version,
                try_number=try_number,
            )

        raise ConcurrencyError(attempt_id, expected_version)
