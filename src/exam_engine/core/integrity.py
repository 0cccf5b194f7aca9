"""Anti-cheating monitor.

Ingests client-reported integrity events for strict-mode attempts:
- classify event types into low / medium / high severity
- accumulate a cheating score (never decreases, events are never removed)
- move integrity status clean -> flagged -> terminated at the configured
  thresholds, aborting the attempt at termination

The monitor mutates an in-memory Attempt; the attempt engine persists it
with the same version check used for progress saves.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from exam_engine.config.app_config import IntegrityConfig
from exam_engine.core.errors import IntegrityNotEnabledError, InvalidPayloadError
from exam_engine.core.models import (
    CHEATING_EVENT_METADATA_DEFAULTS,
    Attempt,
    AttemptStatus,
    CheatingEvent,
    apply_defaults,
    normalize_keys,
)

logger = structlog.get_logger(__name__)

SEVERITY_LEVELS = ("low", "medium", "high")

# Event payload keys copied into CheatingEvent.metadata
_METADATA_KEYS = tuple(CHEATING_EVENT_METADATA_DEFAULTS)


@dataclass
class IntegrityResult:
    """Outcome of logging one integrity event."""

    cheating_score: int
    total_cheating_attempts: int
    integrity_status: str
    should_terminate: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "cheating_score": self.cheating_score,
            "total_cheating_attempts": self.total_cheating_attempts,
            "integrity_status": self.integrity_status,
            "should_terminate": self.should_terminate,
        }


class IntegrityMonitor:
    """Severity scoring and termination policy for strict-mode attempts."""

    def __init__(self, config: IntegrityConfig | None = None):
        self.config = config or IntegrityConfig()

    def classify(self, event_type: str) -> str:
        """Severity for an event type; unknown types are medium."""
        return self.config.violation_severity.get(event_type, self.config.default_severity)

    def points_for(self, severity: str) -> int:
        default = self.config.severity_points.get(self.config.default_severity, 3)
        return self.config.severity_points.get(severity, default)

    def status_for(self, cheating_score: int) -> str:
        if cheating_score >= self.config.terminate_threshold:
            return "terminated"
        if cheating_score >= self.config.flag_threshold:
            return "flagged"
        return "clean"

    def build_event(self, event_data: dict[str, Any], now: datetime) -> CheatingEvent:
        """Build a CheatingEvent from a client payload.

        Raises:
            InvalidPayloadError: If the payload has no event type
        """
        if not isinstance(event_data, dict):
            raise InvalidPayloadError("Integrity event must be an object")

        data = normalize_keys(event_data)
        event_type = data.get("type")
        if not event_type or not isinstance(event_type, str):
            raise InvalidPayloadError("Integrity event requires a 'type'")

        severity = data.get("severity")
        if severity not in SEVERITY_LEVELS:
            severity = self.classify(event_type)

        metadata = normalize_keys(data.get("metadata") or {})
        for key in _METADATA_KEYS:
            if key in data:
                metadata[key] = data[key]

        try:
            question_index = int(data.get("question_index") or 0)
        except (TypeError, ValueError) as e:
            raise InvalidPayloadError(f"Invalid question_index: {e}") from e

        return CheatingEvent(
            type=event_type,
            severity=severity,
            timestamp=now.isoformat(),
            question_index=question_index,
            description=data.get("description") or f"{event_type} detected",
            metadata=apply_defaults(metadata, CHEATING_EVENT_METADATA_DEFAULTS),
        )

    def apply_event(self, attempt: Attempt, event: CheatingEvent) -> IntegrityResult:
        """Record an event on an in-progress strict-mode attempt.

        Args:
            attempt: Attempt to update in place
            event: Event built with build_event()

        Returns:
            IntegrityResult after the event

        Raises:
            IntegrityNotEnabledError: If strict mode is off for the attempt
            AttemptNotInProgressError / AttemptTerminatedError: If the attempt
                no longer accepts events
        """
        if not attempt.strict_mode_enabled:
            raise IntegrityNotEnabledError(attempt.attempt_id)
        attempt.require_in_progress()

        attempt.cheating_events.append(event)
        attempt.total_cheating_attempts += 1
        attempt.cheating_score += self.points_for(event.severity)

        status = self.status_for(attempt.cheating_score)
        # Status only escalates
        if _rank(status) > _rank(attempt.integrity_status):
            attempt.integrity_status = status

        if attempt.integrity_status == "terminated":
            attempt.exam_terminated_for_cheating = True
            attempt.transition(AttemptStatus.ABORTED)

        return IntegrityResult(
            cheating_score=attempt.cheating_score,
            total_cheating_attempts=attempt.total_cheating_attempts,
            integrity_status=attempt.integrity_status,
            should_terminate=attempt.exam_terminated_for_cheating,
        )


_STATUS_RANK = {"clean": 0, "flagged": 1, "terminated": 2}


def _rank(status: str) -> int:
    return _STATUS_RANK.get(status, 0)


# =============================================================================
# REPORTING
# =============================================================================


def cheating_stats(attempt: Attempt) -> dict[str, Any]:
    """Integrity summary for one attempt."""
    return {
        "attempt_id": attempt.attempt_id,
        "strict_mode_enabled": attempt.strict_mode_enabled,
        "cheating_score": attempt.cheating_score,
        "total_cheating_attempts": attempt.total_cheating_attempts,
        "integrity_status": attempt.integrity_status,
        "is_terminated": attempt.exam_terminated_for_cheating,
        "events": [e.to_dict() for e in attempt.cheating_events],
    }


def integrity_overview(attempts: list[Attempt]) -> dict[str, Any]:
    """Admin overview across strict-mode attempts.

    Returns:
        Dict with per-integrity-status aggregates and a violation breakdown
        sorted by count (descending)
    """
    by_status: dict[str, list[Attempt]] = defaultdict(list)
    type_counts: Counter[str] = Counter()
    type_points: dict[str, list[int]] = defaultdict(list)

    for attempt in attempts:
        if not attempt.strict_mode_enabled:
            continue
        by_status[attempt.integrity_status].append(attempt)
        for event in attempt.cheating_events:
            type_counts[event.type] += 1
            # low=1, medium=2, high=3
            level = SEVERITY_LEVELS.index(event.severity) + 1 if event.severity in SEVERITY_LEVELS else 2
            type_points[event.type].append(level)

    integrity_stats = [
        {
            "integrity_status": status,
            "count": len(group),
            "avg_cheating_score": round(sum(a.cheating_score for a in group) / len(group), 2),
            "total_cheating_attempts": sum(a.total_cheating_attempts for a in group),
        }
        for status, group in sorted(by_status.items())
    ]

    violation_breakdown = [
        {
            "type": event_type,
            "count": count,
            "avg_severity": round(sum(type_points[event_type]) / count, 2),
        }
        for event_type, count in sorted(type_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    return {
        "total_strict_attempts": sum(s["count"] for s in integrity_stats),
        "integrity_stats": integrity_stats,
        "violation_breakdown": violation_breakdown,
    }
