"""Addition problem generation for the drill.

A batch is produced up front from a :class:`SessionConfig`: each position
draws two operands uniformly from the inclusive operand range, and the batch
is optionally shuffled with a uniform Fisher-Yates permutation. Generation is
pure apart from the injected ``random.Random`` so runs can be replayed from a
seed.
"""

from __future__ import annotations

import os
import random
from dataclasses import dataclass

SEED_ENV = "MATH_TRAINER_SEED"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    min_operand: int = 0
    max_operand: int = 20
    count: int = 20
    time_per_problem_s: int = 0  # 0 = no timer
    auto_next: bool = True
    shuffle: bool = True

    @property
    def timed(self) -> bool:
        return self.time_per_problem_s > 0


@dataclass(frozen=True, slots=True)
class Problem:
    a: int
    b: int
    problem_id: str
    op: str = "+"

    @property
    def answer(self) -> int:
        return self.a + self.b

    @property
    def prompt(self) -> str:
        return f"{self.a} {self.op} {self.b} = "


def generate(config: SessionConfig, rng: random.Random | None = None) -> list[Problem]:
    """Build the ordered batch of problems for one run.

    Swapped bounds are ordered rather than rejected and a negative count
    yields an empty batch, so malformed settings degrade to a defined result.
    """

    r = rng if rng is not None else random.Random()
    lo = min(int(config.min_operand), int(config.max_operand))
    hi = max(int(config.min_operand), int(config.max_operand))

    problems: list[Problem] = []
    for i in range(max(0, int(config.count))):
        a = r.randint(lo, hi)
        b = r.randint(lo, hi)
        problems.append(Problem(a=a, b=b, problem_id=f"{a}-{b}-{i}"))

    if config.shuffle:
        r.shuffle(problems)
    return problems


class ProblemGenerator:
    """Seeded generator so a run can be reproduced from its seed."""

    def __init__(self, seed: int | None = None) -> None:
        self._seed = int(seed) if seed is not None else new_seed()
        self._rng = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def generate(self, config: SessionConfig) -> list[Problem]:
        return generate(config, self._rng)


def new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def seed_from_env() -> int | None:
    raw = os.environ.get(SEED_ENV, "").strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None
