"""Deterministic RNG wrapper built on top of random.Random."""
from __future__ import annotations

from random import Random
from typing import Protocol


class DiceRoller(Protocol):
    """Anything that can produce an inclusive random integer."""

    def randint(self, a: int, b: int) -> int:
        ...


class RNG:
    """Wrapper around random.Random that provides deterministic helpers."""

    def __init__(self, seed: int | None = None) -> None:
        self._random = Random(seed)

    def randint(self, a: int, b: int) -> int:
        """Return a random integer N such that a <= N <= b."""
        return self._random.randint(a, b)

    def roll_d20(self) -> int:
        """Return a single twenty-sided die roll."""
        return self._random.randint(1, 20)
