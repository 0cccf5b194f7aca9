"""Domain models for test series, questions and attempts.

All models are dataclasses with to_dict()/from_dict(). Incoming dicts may use
camelCase keys (as sent by web clients) or snake_case; both are accepted.

Absent keys are filled from the explicit *_DEFAULTS tables below, once, at
deserialization. A key that is present keeps its value even when it is
empty or zero.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal

from exam_engine.core.errors import (
    AttemptNotInProgressError,
    AttemptTerminatedError,
    InvalidTransitionError,
)

# =============================================================================
# TYPES
# =============================================================================

SeriesMode = Literal["practice", "live", "official"]
Difficulty = Literal["Easy", "Medium", "Hard", "Not-mentioned"]
ResponseStatus = Literal["answered", "unanswered", "correct", "incorrect"]
Severity = Literal["low", "medium", "high"]
IntegrityStatus = Literal["clean", "flagged", "terminated"]


class AttemptStatus(str, Enum):
    """Attempt lifecycle states ('not started' has no record)."""

    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"
    ABORTED = "aborted"


ALLOWED_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.IN_PROGRESS: frozenset({AttemptStatus.SUBMITTED, AttemptStatus.ABORTED}),
    AttemptStatus.SUBMITTED: frozenset({AttemptStatus.GRADED}),
    AttemptStatus.GRADED: frozenset(),
    AttemptStatus.ABORTED: frozenset(),
}

# =============================================================================
# HELPERS
# =============================================================================

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub(r"_\1", key).lower()


def normalize_keys(data: dict[str, Any], aliases: dict[str, str] | None = None) -> dict[str, Any]:
    """Convert camelCase keys to snake_case and apply field aliases."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        name = _snake(key)
        if aliases and name in aliases:
            name = aliases[name]
        result[name] = value
    return result


def apply_defaults(data: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Fill absent keys from a defaults table.

    Callable defaults are invoked so mutable values are never shared.
    """
    result = dict(data)
    for key, default in defaults.items():
        if key not in result:
            result[key] = default() if callable(default) else default
    return result


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# REFERENCES
# =============================================================================


@dataclass(frozen=True)
class Reference:
    """Reference to an external entity (subject, topic, branch...).

    Stored either as a bare id or as a populated object; both normalize here.
    """

    id: str
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id

    @classmethod
    def parse(cls, value: Any) -> Reference | None:
        if value is None or value == "":
            return None
        if isinstance(value, Reference):
            return value
        if isinstance(value, dict):
            ref_id = value.get("id", value.get("_id"))
            if ref_id is None:
                return None
            return cls(id=str(ref_id), name=value.get("name"))
        return cls(id=str(value))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id}
        if self.name is not None:
            result["name"] = self.name
        return result


# =============================================================================
# QUESTION BANK MODELS
# =============================================================================


@dataclass
class Option:
    """A single answer option."""

    option_id: str
    text: str
    is_correct: bool = False
    img: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "option_id": self.option_id,
            "text": self.text,
            "is_correct": self.is_correct,
            "img": self.img,
        }


@dataclass
class Translation:
    """Question content in one language."""

    text: str
    options: list[Option]
    explanations: list[dict[str, Any]] = field(default_factory=list)

    def correct_option_ids(self) -> frozenset[str]:
        return frozenset(o.option_id for o in self.options if o.is_correct)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "options": [o.to_dict() for o in self.options],
            "explanations": self.explanations,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], correct_indices: list[int] | None = None) -> Translation:
        data = normalize_keys(data, {"question_text": "text"})
        options: list[Option] = []
        for index, raw in enumerate(data.get("options", [])):
            if isinstance(raw, str):
                raw = {"text": raw}
            raw = normalize_keys(raw, {"id": "option_id", "_id": "option_id"})
            is_correct = bool(raw.get("is_correct", False))
            if correct_indices is not None and index in correct_indices:
                is_correct = True
            options.append(
                Option(
                    option_id=str(raw.get("option_id", index)),
                    text=raw.get("text", ""),
                    is_correct=is_correct,
                    img=raw.get("img", ""),
                )
            )
        return cls(
            text=data.get("text", ""),
            options=options,
            explanations=list(data.get("explanations", [])),
        )


QUESTION_DEFAULTS: dict[str, Any] = {
    "difficulty": "Medium",
    "marks": 1.0,
    "type": "single",
    "subject": None,
    "topic": None,
    "sub_topic": None,
    "branch": None,
}


@dataclass
class Question:
    """A question as resolved from the question bank (read-only to the engine)."""

    question_id: str
    translations: dict[str, Translation]
    difficulty: Difficulty = "Medium"
    marks: float = 1.0
    type: str = "single"
    subject: Reference | None = None
    topic: Reference | None = None
    sub_topic: Reference | None = None
    branch: Reference | None = None

    def primary(self, language: str = "en") -> Translation:
        """Translation in the requested language, else the first available."""
        if language in self.translations:
            return self.translations[language]
        if not self.translations:
            raise ValueError(f"Question '{self.question_id}' has no translations")
        return next(iter(self.translations.values()))

    def correct_option_ids(self, language: str = "en") -> frozenset[str]:
        return self.primary(language).correct_option_ids()

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "translations": {lang: t.to_dict() for lang, t in self.translations.items()},
            "difficulty": self.difficulty,
            "marks": self.marks,
            "type": self.type,
            "subject": self.subject.to_dict() if self.subject else None,
            "topic": self.topic.to_dict() if self.topic else None,
            "sub_topic": self.sub_topic.to_dict() if self.sub_topic else None,
            "branch": self.branch.to_dict() if self.branch else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        data = apply_defaults(
            normalize_keys(data, {"id": "question_id", "_id": "question_id", "subtopic": "sub_topic"}),
            QUESTION_DEFAULTS,
        )
        correct_indices = data.get("correct_options")

        if "translations" in data:
            translations = {
                lang: Translation.from_dict(t, correct_indices)
                for lang, t in data["translations"].items()
            }
        else:
            # Flat single-language shape: questionText + options
            translations = {"en": Translation.from_dict(data, correct_indices)}

        return cls(
            question_id=str(data["question_id"]),
            translations=translations,
            difficulty=data["difficulty"],
            marks=float(data["marks"]),
            type=data["type"],
            subject=Reference.parse(data["subject"]),
            topic=Reference.parse(data["topic"]),
            sub_topic=Reference.parse(data["sub_topic"]),
            branch=Reference.parse(data["branch"]),
        )


# =============================================================================
# TEST SERIES MODELS
# =============================================================================


@dataclass
class SectionEntry:
    """A fixed question in a section, with an optional marks override."""

    question_id: str
    marks: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"question_id": self.question_id, "marks": self.marks}

    @classmethod
    def from_value(cls, value: Any) -> SectionEntry:
        if isinstance(value, dict):
            value = normalize_keys(value, {"question": "question_id", "id": "question_id"})
            ref = Reference.parse(value["question_id"])
            marks = value.get("marks")
            return cls(question_id=ref.id, marks=float(marks) if marks is not None else None)
        return cls(question_id=str(value))


SECTION_DEFAULTS: dict[str, Any] = {
    "order": 0,
    "questions": list,
    "question_pool": list,
    "questions_to_select": 0,
    "randomize_question_order": False,
}


@dataclass
class Section:
    """Group of questions: a fixed list, a pool with a pick count, or both."""

    title: str
    order: int = 0
    questions: list[SectionEntry] = field(default_factory=list)
    question_pool: list[str] = field(default_factory=list)
    questions_to_select: int = 0
    randomize_question_order: bool = False

    @property
    def bound_size(self) -> int:
        return len(self.questions) + self.questions_to_select

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "order": self.order,
            "questions": [q.to_dict() for q in self.questions],
            "question_pool": list(self.question_pool),
            "questions_to_select": self.questions_to_select,
            "randomize_question_order": self.randomize_question_order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Section:
        data = apply_defaults(
            normalize_keys(
                data,
                {
                    "questions_to_select_from_pool": "questions_to_select",
                    "randomize_question_order_in_section": "randomize_question_order",
                },
            ),
            SECTION_DEFAULTS,
        )
        return cls(
            title=data["title"],
            order=int(data["order"]),
            questions=[SectionEntry.from_value(q) for q in data["questions"]],
            question_pool=[Reference.parse(q).id for q in data["question_pool"]],
            questions_to_select=int(data["questions_to_select"]),
            randomize_question_order=bool(data["randomize_question_order"]),
        )


@dataclass
class Variant:
    """Alternate arrangement of the same series (Set A, Set B...)."""

    code: str
    sections: list[Section]

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "sections": [s.to_dict() for s in self.sections]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Variant:
        return cls(
            code=str(data["code"]),
            sections=[Section.from_dict(s) for s in data.get("sections", [])],
        )


SERIES_DEFAULTS: dict[str, Any] = {
    "mode": "practice",
    "start_at": None,
    "end_at": None,
    "max_attempts": 1,
    "strict_mode": False,
    "randomize_section_order": False,
    "sections": list,
    "variants": list,
}


@dataclass
class TestSeries:
    """A full mock test definition."""

    __test__ = False  # not a pytest test class

    series_id: str
    title: str
    duration_minutes: int
    mode: SeriesMode = "practice"
    start_at: str | None = None
    end_at: str | None = None
    max_attempts: int = 1
    strict_mode: bool = False
    randomize_section_order: bool = False
    sections: list[Section] = field(default_factory=list)
    variants: list[Variant] = field(default_factory=list)

    @property
    def duration_seconds(self) -> int:
        return int(self.duration_minutes * 60)

    def sections_for(self, variant_code: str | None) -> list[Section]:
        """Sections of the given variant, or the base sections."""
        if variant_code is None:
            return self.sections
        for variant in self.variants:
            if variant.code == variant_code:
                return variant.sections
        raise KeyError(variant_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "series_id": self.series_id,
            "title": self.title,
            "duration_minutes": self.duration_minutes,
            "mode": self.mode,
            "start_at": self.start_at,
            "end_at": self.end_at,
            "max_attempts": self.max_attempts,
            "strict_mode": self.strict_mode,
            "randomize_section_order": self.randomize_section_order,
            "sections": [s.to_dict() for s in self.sections],
            "variants": [v.to_dict() for v in self.variants],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestSeries:
        data = apply_defaults(
            normalize_keys(data, {"id": "series_id", "_id": "series_id", "duration": "duration_minutes"}),
            SERIES_DEFAULTS,
        )
        start_at = parse_timestamp(data["start_at"])
        end_at = parse_timestamp(data["end_at"])
        return cls(
            series_id=str(data["series_id"]),
            title=data["title"],
            duration_minutes=int(data["duration_minutes"]),
            mode=str(data["mode"]).lower(),
            start_at=to_iso(start_at),
            end_at=to_iso(end_at),
            max_attempts=int(data["max_attempts"]),
            strict_mode=bool(data["strict_mode"]),
            randomize_section_order=bool(data["randomize_section_order"]),
            sections=[Section.from_dict(s) for s in data["sections"]],
            variants=[Variant.from_dict(v) for v in data["variants"]],
        )


# =============================================================================
# ATTEMPT MODELS
# =============================================================================


@dataclass
class BoundQuestion:
    """A question bound to an attempt at start time."""

    question_id: str
    section_title: str
    section_order: int
    position: int
    marks: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "section_title": self.section_title,
            "section_order": self.section_order,
            "position": self.position,
            "marks": self.marks,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoundQuestion:
        return cls(
            question_id=data["question_id"],
            section_title=data["section_title"],
            section_order=int(data["section_order"]),
            position=int(data["position"]),
            marks=float(data["marks"]),
        )


RESPONSE_DEFAULTS: dict[str, Any] = {
    "selected": list,
    "earned": 0.0,
    "status": "unanswered",
    "time_spent": 0.0,
    "attempts": 0,
    "flagged": False,
    "confidence": None,
    "visited_at": None,
    "last_modified_at": None,
}


@dataclass
class Response:
    """A student's response slot for one bound question."""

    question_id: str
    selected: list[str] = field(default_factory=list)
    earned: float = 0.0
    status: ResponseStatus = "unanswered"
    time_spent: float = 0.0
    attempts: int = 0
    flagged: bool = False
    confidence: float | None = None
    visited_at: str | None = None
    last_modified_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "selected": list(self.selected),
            "earned": self.earned,
            "status": self.status,
            "time_spent": self.time_spent,
            "attempts": self.attempts,
            "flagged": self.flagged,
            "confidence": self.confidence,
            "visited_at": self.visited_at,
            "last_modified_at": self.last_modified_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Response:
        data = apply_defaults(
            normalize_keys(data, {"question": "question_id", "selected_options": "selected"}),
            RESPONSE_DEFAULTS,
        )
        confidence = data["confidence"]
        return cls(
            question_id=Reference.parse(data["question_id"]).id,
            selected=[str(s) for s in data["selected"]],
            earned=float(data["earned"]),
            status=data["status"],
            time_spent=float(data["time_spent"]),
            attempts=int(data["attempts"]),
            flagged=bool(data["flagged"]),
            confidence=float(confidence) if confidence is not None else None,
            visited_at=data["visited_at"],
            last_modified_at=data["last_modified_at"],
        )


CHEATING_EVENT_METADATA_DEFAULTS: dict[str, Any] = {
    "time_remaining": 0,
    "current_section": "",
    "user_agent": "",
    "screen_resolution": "",
    "client_signature": "",
}


@dataclass
class CheatingEvent:
    """An integrity event (append-only)."""

    type: str
    severity: Severity
    timestamp: str
    question_index: int = 0
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "timestamp": self.timestamp,
            "question_index": self.question_index,
            "description": self.description,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheatingEvent:
        data = normalize_keys(data)
        return cls(
            type=data["type"],
            severity=data["severity"],
            timestamp=data["timestamp"],
            question_index=int(data.get("question_index", 0)),
            description=data.get("description", ""),
            metadata=apply_defaults(normalize_keys(data.get("metadata", {})), CHEATING_EVENT_METADATA_DEFAULTS),
        )


ATTEMPT_DEFAULTS: dict[str, Any] = {
    "status": AttemptStatus.IN_PROGRESS.value,
    "responses": list,
    "score": None,
    "max_score": None,
    "percentage": None,
    "cheating_score": 0,
    "total_cheating_attempts": 0,
    "integrity_status": "clean",
    "exam_terminated_for_cheating": False,
    "strict_mode_enabled": False,
    "cheating_events": list,
    "version": 0,
    "submitted_at": None,
    "graded_at": None,
    "variant_code": None,
    "selection_seed": None,
    "attempt_no": 1,
}


@dataclass
class Attempt:
    """One student's bound, timed instance of a test series."""

    attempt_id: str
    student_id: str
    series_id: str
    bound_questions: list[BoundQuestion]
    started_at: str
    duration_seconds: int
    time_left: int
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    responses: list[Response] = field(default_factory=list)
    score: float | None = None
    max_score: float | None = None
    percentage: float | None = None
    cheating_score: int = 0
    total_cheating_attempts: int = 0
    integrity_status: IntegrityStatus = "clean"
    exam_terminated_for_cheating: bool = False
    strict_mode_enabled: bool = False
    cheating_events: list[CheatingEvent] = field(default_factory=list)
    version: int = 0
    submitted_at: str | None = None
    graded_at: str | None = None
    variant_code: str | None = None
    selection_seed: int | None = None
    attempt_no: int = 1

    @property
    def bound_ids(self) -> list[str]:
        return [b.question_id for b in self.bound_questions]

    def response_for(self, question_id: str) -> Response | None:
        for response in self.responses:
            if response.question_id == question_id:
                return response
        return None

    def require_in_progress(self) -> None:
        """Raise unless the attempt still accepts mutations."""
        if self.status == AttemptStatus.ABORTED:
            raise AttemptTerminatedError(self.attempt_id, self.exam_terminated_for_cheating)
        if self.status != AttemptStatus.IN_PROGRESS:
            raise AttemptNotInProgressError(self.attempt_id, self.status.value)

    def transition(self, target: AttemptStatus) -> None:
        """Move to a new status, enforcing the transition table."""
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, target.value)
        self.status = target

    def bound_sections(self) -> list[dict[str, Any]]:
        """Bound questions grouped by section, in bound order."""
        sections: list[dict[str, Any]] = []
        for bound in self.bound_questions:
            if not sections or sections[-1]["title"] != bound.section_title:
                sections.append(
                    {"title": bound.section_title, "order": bound.section_order, "questions": []}
                )
            sections[-1]["questions"].append(
                {"question_id": bound.question_id, "position": bound.position, "marks": bound.marks}
            )
        return sections

    def to_dict(self) -> dict[str, Any]:
        return {
            "$schema": "attempt_v1",
            "attempt_id": self.attempt_id,
            "student_id": self.student_id,
            "series_id": self.series_id,
            "status": self.status.value,
            "bound_questions": [b.to_dict() for b in self.bound_questions],
            "responses": [r.to_dict() for r in self.responses],
            "started_at": self.started_at,
            "duration_seconds": self.duration_seconds,
            "time_left": self.time_left,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "cheating_score": self.cheating_score,
            "total_cheating_attempts": self.total_cheating_attempts,
            "integrity_status": self.integrity_status,
            "exam_terminated_for_cheating": self.exam_terminated_for_cheating,
            "strict_mode_enabled": self.strict_mode_enabled,
            "cheating_events": [e.to_dict() for e in self.cheating_events],
            "version": self.version,
            "submitted_at": self.submitted_at,
            "graded_at": self.graded_at,
            "variant_code": self.variant_code,
            "selection_seed": self.selection_seed,
            "attempt_no": self.attempt_no,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attempt:
        data = apply_defaults(normalize_keys(data), ATTEMPT_DEFAULTS)
        return cls(
            attempt_id=data["attempt_id"],
            student_id=data["student_id"],
            series_id=data["series_id"],
            bound_questions=[BoundQuestion.from_dict(b) for b in data["bound_questions"]],
            started_at=data["started_at"],
            duration_seconds=int(data["duration_seconds"]),
            time_left=int(data["time_left"]),
            status=AttemptStatus(data["status"]),
            responses=[Response.from_dict(r) for r in data["responses"]],
            score=data["score"],
            max_score=data["max_score"],
            percentage=data["percentage"],
            cheating_score=int(data["cheating_score"]),
            total_cheating_attempts=int(data["total_cheating_attempts"]),
            integrity_status=data["integrity_status"],
            exam_terminated_for_cheating=bool(data["exam_terminated_for_cheating"]),
            strict_mode_enabled=bool(data["strict_mode_enabled"]),
            cheating_events=[CheatingEvent.from_dict(e) for e in data["cheating_events"]],
            version=int(data["version"]),
            submitted_at=data["submitted_at"],
            graded_at=data["graded_at"],
            variant_code=data["variant_code"],
            selection_seed=data["selection_seed"],
            attempt_no=int(data["attempt_no"]),
        )


@dataclass
class AttemptCounter:
    """How many attempts a student has started on a series."""

    student_id: str
    series_id: str
    count: int = 0
    last_attempt_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "series_id": self.series_id,
            "count": self.count,
            "last_attempt_at": self.last_attempt_at,
        }


Clock = Callable[[], datetime]
