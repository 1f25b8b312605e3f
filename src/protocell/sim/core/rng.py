from __future__ import annotations

import math
import random
from typing import Sequence, TypeVar

from pygame.math import Vector2

T = TypeVar("T")


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_centered(self, span: float = 1.0) -> float:
        return (self._random.random() - 0.5) * span

    def chance(self, probability: float) -> bool:
        return self._random.random() < probability

    def jitter(self, amount: float) -> float:
        """Multiplicative mutation factor in [1 - amount, 1 + amount]."""
        return 1.0 + self._random.uniform(-amount, amount)

    def next_unit_circle(self) -> Vector2:
        angle = self._random.uniform(0, 2 * math.pi)
        vector = Vector2()
        vector.from_polar((1, math.degrees(angle)))
        return vector

    def sample_choice(self, items: Sequence[T]) -> T | None:
        if not items:
            return None
        return self._random.choice(items)
