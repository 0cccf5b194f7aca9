"""Tests for question pool selection."""

import random

import pytest

from exam_engine.core.errors import DuplicateQuestionError, InsufficientPoolError
from exam_engine.core.models import Section
from exam_engine.core.pool_selector import expected_size, select_questions


def _pool_section(pool, n, title="Pool", order=0, **kwargs) -> Section:
    return Section.from_dict(
        {"title": title, "order": order, "question_pool": pool, "questions_to_select": n, **kwargs}
    )


def _fixed_section(ids, title="Fixed", order=0, **kwargs) -> Section:
    return Section.from_dict({"title": title, "order": order, "questions": ids, **kwargs})


class TestPoolSampling:
    """Pool sections sample exactly n distinct questions."""

    @pytest.mark.parametrize("pool_size,n", [(5, 5), (10, 3), (4, 1)])
    def test_samples_exactly_n_distinct(self, pool_size, n):
        pool = [f"q{i}" for i in range(pool_size)]
        selected = select_questions([_pool_section(pool, n)], rng=random.Random(1))
        ids = [s.question_id for s in selected]
        assert len(ids) == n
        assert len(set(ids)) == n
        assert set(ids) <= set(pool)

    def test_pool_smaller_than_n_raises(self):
        with pytest.raises(InsufficientPoolError) as exc_info:
            select_questions([_pool_section(["q1", "q2"], 3, title="Chem")])
        assert exc_info.value.pool_size == 2
        assert exc_info.value.requested == 3
        assert "Chem" in str(exc_info.value)

    def test_duplicates_in_pool_do_not_count(self):
        with pytest.raises(InsufficientPoolError):
            select_questions([_pool_section(["q1", "q1", "q2"], 3)])

    def test_same_seed_same_selection(self):
        sections = [_pool_section([f"q{i}" for i in range(20)], 5)]
        first = select_questions(sections, rng=random.Random(42))
        second = select_questions(sections, rng=random.Random(42))
        assert [s.question_id for s in first] == [s.question_id for s in second]


class TestFixedSections:
    """Fixed lists are used as-is."""

    def test_fixed_order_and_marks_override(self):
        section = _fixed_section(["a", {"question_id": "b", "marks": 8}, "c"])
        selected = select_questions([section])
        assert [s.question_id for s in selected] == ["a", "b", "c"]
        assert [s.marks for s in selected] == [None, 8.0, None]

    def test_duplicate_fixed_question_rejected(self):
        sections = [_fixed_section(["a", "b"], order=1), _fixed_section(["b"], title="Other", order=2)]
        with pytest.raises(DuplicateQuestionError):
            select_questions(sections)

    def test_pool_excludes_questions_bound_elsewhere(self):
        sections = [
            _fixed_section(["a", "b"], order=1),
            _pool_section(["a", "b", "c", "d"], 2, order=2),
        ]
        selected = select_questions(sections, rng=random.Random(3))
        assert sorted(s.question_id for s in selected[2:]) == ["c", "d"]

    def test_pool_excludes_later_fixed_questions(self):
        sections = [
            _pool_section(["a", "b", "c"], 2, order=1),
            _fixed_section(["a"], order=2),
        ]
        selected = select_questions(sections, rng=random.Random(5))
        ids = [s.question_id for s in selected]
        assert sorted(ids[:2]) == ["b", "c"]
        assert ids[2] == "a"

    def test_exclusion_can_make_pool_insufficient(self):
        sections = [
            _fixed_section(["a", "b"], order=1),
            _pool_section(["a", "b", "c"], 2, order=2),
        ]
        with pytest.raises(InsufficientPoolError):
            select_questions(sections)


class TestOrdering:
    """Section and question ordering."""

    def test_sections_sorted_by_order_and_positions_sequential(self):
        sections = [_fixed_section(["c1"], title="Chem", order=2), _fixed_section(["p1", "p2"], title="Phys", order=1)]
        selected = select_questions(sections)
        assert [s.section_title for s in selected] == ["Phys", "Phys", "Chem"]
        assert [s.position for s in selected] == [0, 1, 2]

    def test_randomized_sections_keep_question_order(self):
        sections = [
            _fixed_section([f"s{n}q{i}" for i in range(4)], title=f"S{n}", order=n)
            for n in range(6)
        ]
        selected = select_questions(sections, randomize_section_order=True, rng=random.Random(7))
        by_section = {}
        for s in selected:
            by_section.setdefault(s.section_title, []).append(s.question_id)
        for title, ids in by_section.items():
            n = title[1:]
            assert ids == [f"s{n}q{i}" for i in range(4)]
        assert len(selected) == 24

    def test_randomized_question_order_stays_inside_section(self):
        sections = [
            _fixed_section([f"a{i}" for i in range(8)], title="A", order=1, randomize_question_order=True),
            _fixed_section(["b0", "b1"], title="B", order=2),
        ]
        selected = select_questions(sections, rng=random.Random(11))
        ids = [s.question_id for s in selected]
        assert sorted(ids[:8]) == [f"a{i}" for i in range(8)]
        assert ids[8:] == ["b0", "b1"]

    def test_expected_size(self):
        sections = [_fixed_section(["a", "b"]), _pool_section(["c", "d", "e"], 2)]
        assert expected_size(sections) == 4
        assert len(select_questions(sections)) == 4
