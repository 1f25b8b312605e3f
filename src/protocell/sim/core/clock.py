from __future__ import annotations

import math


class SimulationClock:
    """Discrete tick counter plus the simulated seconds it corresponds to."""

    def __init__(self, frame_seconds: float = 1.0 / 60.0) -> None:
        self._tick = 0
        self._frame_seconds = frame_seconds

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def real_time(self) -> float:
        return self._tick * self._frame_seconds

    def advance(self) -> int:
        self._tick += 1
        return self._tick

    def every(self, interval: int) -> bool:
        return interval > 0 and self._tick % interval == 0

    def subjective_scale(self, energy: float, speed: float) -> float:
        """Per-entity time multiplier: lively entities run faster, modulated by a slow real-time wave."""
        return (0.5 + energy * 0.5) * (math.sin(self.real_time * 0.1) * 0.2 + 1.0) * speed

    def reset(self) -> None:
        self._tick = 0
