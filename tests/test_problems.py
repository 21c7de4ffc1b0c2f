from __future__ import annotations

import random

from math_trainer.problems import ProblemGenerator, SessionConfig, generate


def test_generate_count_and_operand_range() -> None:
    cfg = SessionConfig(min_operand=-5, max_operand=12, count=200, shuffle=True)
    problems = generate(cfg, random.Random(3))

    assert len(problems) == 200
    for p in problems:
        assert -5 <= p.a <= 12
        assert -5 <= p.b <= 12
        assert p.op == "+"
        assert p.answer == p.a + p.b


def test_zero_count_yields_empty_batch() -> None:
    assert generate(SessionConfig(count=0), random.Random(1)) == []
    assert generate(SessionConfig(count=-3), random.Random(1)) == []


def test_ids_unique_within_batch() -> None:
    problems = generate(SessionConfig(min_operand=0, max_operand=2, count=50), random.Random(9))
    ids = [p.problem_id for p in problems]
    assert len(set(ids)) == len(ids)


def test_shuffle_only_reorders() -> None:
    # Operands are drawn before shuffling, so the same seed gives the same multiset.
    plain = generate(SessionConfig(count=30, shuffle=False), random.Random(77))
    shuffled = generate(SessionConfig(count=30, shuffle=True), random.Random(77))

    assert sorted(plain, key=lambda p: p.problem_id) == sorted(shuffled, key=lambda p: p.problem_id)
    assert [p.problem_id for p in plain] == [f"{p.a}-{p.b}-{i}" for i, p in enumerate(plain)]


def test_degenerate_and_swapped_ranges() -> None:
    same = generate(SessionConfig(min_operand=4, max_operand=4, count=5), random.Random(0))
    assert all((p.a, p.b) == (4, 4) for p in same)

    swapped = generate(SessionConfig(min_operand=10, max_operand=1, count=40), random.Random(0))
    assert all(1 <= p.a <= 10 and 1 <= p.b <= 10 for p in swapped)


def test_prompt_format() -> None:
    p = generate(SessionConfig(min_operand=3, max_operand=3, count=1), random.Random(0))[0]
    assert p.prompt == "3 + 3 = "


def test_seeded_generator_is_reproducible() -> None:
    cfg = SessionConfig(count=25)
    g1 = ProblemGenerator(seed=1234)
    g2 = ProblemGenerator(seed=1234)

    assert g1.seed == 1234
    assert g1.generate(cfg) == g2.generate(cfg)
