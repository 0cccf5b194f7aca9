"""Reward/streak notification hook.

Point and streak accounting lives outside the engine. After a submission is
graded and committed, the engine hands a RewardEvent to a RewardNotifier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RewardEvent:
    """A graded submission, as seen by the rewards service."""

    student_id: str
    series_id: str
    attempt_id: str
    score: float
    percentage: float
    submitted_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "series_id": self.series_id,
            "attempt_id": self.attempt_id,
            "score": self.score,
            "percentage": self.percentage,
            "submitted_at": self.submitted_at,
        }


class RewardNotifier(Protocol):
    def notify(self, event: RewardEvent) -> None:
        ...


class LoggingRewardNotifier:
    """Default notifier: records the event in the log only."""

    def notify(self, event: RewardEvent) -> None:
        logger.info("reward_event", **event.to_dict())
