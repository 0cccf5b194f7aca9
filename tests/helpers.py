"""Test helpers shared across test folders."""

from datetime import datetime, timedelta, timezone
from typing import Any

START_TIME = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingNotifier:
    """Reward notifier that remembers what it was sent."""

    def __init__(self):
        self.events = []

    def notify(self, event) -> None:
        self.events.append(event)


def make_question(
    question_id: str,
    correct: tuple[str, ...] = ("b",),
    marks: float = 4,
    difficulty: str = "Medium",
    subject: str | None = "Physics",
    topic: str | None = None,
) -> dict[str, Any]:
    """Question dict with options a-d; `correct` lists the right option ids."""
    data: dict[str, Any] = {
        "question_id": question_id,
        "difficulty": difficulty,
        "marks": marks,
        "translations": {
            "en": {
                "text": f"Question {question_id}",
                "options": [
                    {"option_id": oid, "text": oid.upper(), "is_correct": oid in correct}
                    for oid in ("a", "b", "c", "d")
                ],
            }
        },
    }
    if subject:
        data["subject"] = {"id": subject.lower(), "name": subject}
    if topic:
        data["topic"] = {"id": topic.lower(), "name": topic}
    return data


def answer_all_correct(engine, attempt_id: str) -> list[dict[str, Any]]:
    """Responses selecting the correct options of every bound question."""
    attempt = engine.get_attempt(attempt_id)
    questions = engine.catalog.get_questions(attempt.bound_ids)
    return [
        {"question_id": qid, "selected": sorted(questions[qid].correct_option_ids())}
        for qid in attempt.bound_ids
    ]


SAMPLE_QUESTIONS = [
    make_question("p1", ("b",), difficulty="Easy", topic="Kinematics"),
    make_question("p2", ("a", "c"), difficulty="Medium", topic="Kinematics"),
    make_question("p3", ("d",), difficulty="Hard", topic="Dynamics"),
    make_question("c1", ("a",), marks=2, difficulty="Easy", subject="Chemistry"),
    make_question("c2", ("b",), marks=2, difficulty="Medium", subject="Chemistry"),
    make_question("c3", ("c",), marks=2, difficulty="Medium", subject="Chemistry"),
    make_question("c4", ("d",), marks=2, difficulty="Hard", subject="Chemistry"),
    make_question("c5", ("a",), marks=2, difficulty="Hard", subject="Chemistry"),
]

SAMPLE_SERIES = [
    {
        "series_id": "mock-1",
        "title": "Mock Test 1",
        "duration_minutes": 60,
        "mode": "practice",
        "max_attempts": 2,
        "sections": [
            {
                "title": "Physics",
                "order": 1,
                "questions": [{"question_id": "p1"}, {"question_id": "p2"}, {"question_id": "p3"}],
            },
            {
                "title": "Chemistry",
                "order": 2,
                "question_pool": ["c1", "c2", "c3", "c4", "c5"],
                "questions_to_select": 2,
            },
        ],
    },
    {
        "series_id": "single-shot",
        "title": "One Attempt Only",
        "duration_minutes": 30,
        "max_attempts": 1,
        "sections": [{"title": "Physics", "questions": ["p1", "p2"]}],
    },
    {
        "series_id": "live-1",
        "title": "Live Test",
        "duration_minutes": 30,
        "mode": "live",
        "strict_mode": True,
        "max_attempts": 1,
        "start_at": (START_TIME - timedelta(hours=1)).isoformat(),
        "end_at": (START_TIME + timedelta(hours=2)).isoformat(),
        "sections": [{"title": "Physics", "questions": ["p1", "p2", "p3"]}],
    },
    {
        "series_id": "variants-1",
        "title": "Variant Test",
        "duration_minutes": 20,
        "max_attempts": 5,
        "variants": [
            {"code": "A", "sections": [{"title": "Set A", "questions": ["p1", "c1"]}]},
            {"code": "B", "sections": [{"title": "Set B", "questions": ["p2", "c2"]}]},
        ],
    },
]
