"""Question pool selection.

Turns a list of sections into the flat, ordered question sequence bound to
one attempt:
- Fixed entries are used as-is
- Pool sections contribute exactly `questions_to_select` distinct ids,
  sampled uniformly without replacement
- Section order may be permuted (question order inside a section only when
  the section asks for it)

Randomness comes from an injected random.Random so selections can be
reproduced from a stored seed.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

import structlog

from exam_engine.core.errors import DuplicateQuestionError, InsufficientPoolError
from exam_engine.core.models import Section

logger = structlog.get_logger(__name__)


@dataclass
class SelectedQuestion:
    """One selected question and where it came from."""

    question_id: str
    section_title: str
    section_order: int
    position: int
    marks: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "section_title": self.section_title,
            "section_order": self.section_order,
            "position": self.position,
            "marks": self.marks,
        }


def _select_section(
    section: Section,
    already_bound: set[str],
    rng: random.Random,
) -> list[tuple[str, float | None]]:
    """Pick the questions for a single section."""
    picked: list[tuple[str, float | None]] = []

    for entry in section.questions:
        if entry.question_id in already_bound:
            raise DuplicateQuestionError(entry.question_id)
        already_bound.add(entry.question_id)
        picked.append((entry.question_id, entry.marks))

    if section.questions_to_select > 0:
        # De-duplicate the pool preserving order so sampling stays reproducible
        pool = [q for q in dict.fromkeys(section.question_pool) if q not in already_bound]
        if len(pool) < section.questions_to_select:
            raise InsufficientPoolError(section.title, len(pool), section.questions_to_select)

        for question_id in rng.sample(pool, section.questions_to_select):
            already_bound.add(question_id)
            picked.append((question_id, None))

    if section.randomize_question_order:
        rng.shuffle(picked)

    return picked


def select_questions(
    sections: list[Section],
    randomize_section_order: bool = False,
    rng: random.Random | None = None,
) -> list[SelectedQuestion]:
    """Build the bound question sequence for one attempt.

    Args:
        sections: Sections in their defined order
        randomize_section_order: Permute section order before concatenation
        rng: Source of randomness (new unseeded Random if omitted)

    Returns:
        Flat list of SelectedQuestion, positions numbered from 0

    Raises:
        InsufficientPoolError: If a pool cannot supply its pick count
        DuplicateQuestionError: If a fixed question appears twice
    """
    if rng is None:
        rng = random.Random()

    ordered = sorted(sections, key=lambda s: s.order)
    if randomize_section_order:
        ordered = list(ordered)
        rng.shuffle(ordered)

    # Fixed entries are reserved across all sections first so that pool
    # sampling never collides with a later section's fixed question.
    reserved: set[str] = set()
    for section in ordered:
        for entry in section.questions:
            if entry.question_id in reserved:
                raise DuplicateQuestionError(entry.question_id)
            reserved.add(entry.question_id)

    bound: set[str] = set()
    result: list[SelectedQuestion] = []

    for section in ordered:
        fixed_ids = {e.question_id for e in section.questions}
        # Exclude other sections' fixed questions from this section's pool
        blocked = bound | (reserved - fixed_ids)
        picked = _select_section(section, blocked, rng)
        for question_id, marks in picked:
            bound.add(question_id)
            result.append(
                SelectedQuestion(
                    question_id=question_id,
                    section_title=section.title,
                    section_order=section.order,
                    position=len(result),
                    marks=marks,
                )
            )

    logger.debug(
        "questions_selected",
        sections=len(ordered),
        total=len(result),
        randomized_sections=randomize_section_order,
    )
    return result


def expected_size(sections: list[Section]) -> int:
    """Number of questions an attempt over these sections binds."""
    return sum(s.bound_size for s in sections)
