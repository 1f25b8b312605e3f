from __future__ import annotations

import logging
import math
from typing import Tuple

import numpy as np
from pygame.math import Vector2

from .config import FieldConfig
from .errors import ConfigurationError
from .rng import DeterministicRng

logger = logging.getLogger(__name__)

_VON_NEUMANN = ((1, 0), (-1, 0), (0, 1), (0, -1))
_MOORE = _VON_NEUMANN + ((1, 1), (1, -1), (-1, 1), (-1, -1))


def _shift_slices(offset: int, size: int) -> Tuple[slice, slice]:
    """Source and destination slices for moving values `offset` cells along one axis."""
    source = slice(max(0, -offset), size - max(0, offset))
    target = slice(max(0, offset), size - max(0, -offset))
    return source, target


class EnergyField:
    """
    Grid of non-negative energy cells indexed as ``[x, y]``.

    Extraction and injection are point operations on a single cell; diffusion redistributes
    energy between neighbours from a snapshot of the previous state, so the total only moves
    by floating point rounding.
    """

    def __init__(self, width: int, height: int, diffusion_rate: float = 0.05, neighborhood: int = 8) -> None:
        if width <= 0 or height <= 0:
            raise ConfigurationError("energy_field", f"grid dimensions must be positive, got {width}x{height}")
        if not 0.0 <= diffusion_rate < 1.0:
            raise ConfigurationError("energy_field.diffusion_rate", f"must be in [0, 1), got {diffusion_rate}")
        if neighborhood not in (4, 8):
            raise ConfigurationError("energy_field.neighborhood", f"must be 4 or 8, got {neighborhood}")
        self._width = int(width)
        self._height = int(height)
        self._diffusion_rate = float(diffusion_rate)
        self._offsets = _MOORE if neighborhood == 8 else _VON_NEUMANN
        self._energy = np.zeros((self._width, self._height), dtype=np.float64)
        self._weights = np.ones((self._width, self._height), dtype=np.float64)

    @classmethod
    def seeded(cls, config: FieldConfig, rng: DeterministicRng, budget: float) -> "EnergyField":
        """Create a field holding `budget` energy spread along a sinusoidal noise surface."""
        energy_field = cls(config.width, config.height, config.diffusion_rate, config.neighborhood)
        seed_x = rng.next_float() * 1000.0
        seed_y = rng.next_float() * 1000.0
        nx = np.arange(energy_field._width, dtype=np.float64)[:, None] * config.noise_scale + seed_x
        ny = np.arange(energy_field._height, dtype=np.float64)[None, :] * config.noise_scale + seed_y
        weights = (np.sin(nx) * np.sin(ny) + np.sin(nx / 2.0) * np.sin(ny / 2.0) + 1.0) / 3.0
        energy_field._weights = np.clip(weights, 0.0, None)
        energy_field.distribute(budget)
        return energy_field

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def diffusion_rate(self) -> float:
        return self._diffusion_rate

    def distribute(self, budget: float) -> None:
        """Replace the field contents with `budget` energy allocated proportionally to the cell weights."""
        total_weight = float(self._weights.sum())
        if total_weight <= 0.0:
            self._weights = np.ones_like(self._weights)
            total_weight = float(self._weights.size)
        self._energy = self._weights / total_weight * max(0.0, budget)
        logger.debug("Distributed %.4f energy over %dx%d cells", budget, self._width, self._height)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self._width and 0 <= y < self._height

    def cell_of(self, position: Vector2) -> Tuple[int, int]:
        return (int(math.floor(position.x)), int(math.floor(position.y)))

    def _clamped_cell(self, position: Vector2) -> Tuple[int, int]:
        x, y = self.cell_of(position)
        return (min(max(x, 0), self._width - 1), min(max(y, 0), self._height - 1))

    def cell_energy(self, x: int, y: int) -> float:
        if not self.in_bounds(x, y):
            return 0.0
        return float(self._energy[x, y])

    def sample(self, position: Vector2) -> float:
        x, y = self.cell_of(position)
        return self.cell_energy(x, y)

    def extract(self, position: Vector2, requested: float) -> float:
        if requested <= 0.0:
            return 0.0
        x, y = self.cell_of(position)
        if not self.in_bounds(x, y):
            return 0.0
        available = float(self._energy[x, y])
        granted = min(requested, available)
        if granted <= 0.0:
            return 0.0
        self._energy[x, y] = available - granted
        return granted

    def inject(self, position: Vector2, amount: float) -> None:
        if amount <= 0.0:
            return
        x, y = self._clamped_cell(position)
        self._energy[x, y] += amount

    def withdraw(self, amount: float) -> float:
        """Remove up to `amount` energy proportionally from every cell and return what was removed."""
        total = self.total_energy()
        if amount <= 0.0 or total <= 0.0:
            return 0.0
        taken = min(amount, total)
        self._energy *= 1.0 - taken / total
        return taken

    def diffuse(self) -> None:
        if self._diffusion_rate <= 0.0:
            return
        snapshot = self._energy.copy()
        share = snapshot * (self._diffusion_rate / len(self._offsets))
        result = snapshot
        for dx, dy in self._offsets:
            src_x, dst_x = _shift_slices(dx, self._width)
            src_y, dst_y = _shift_slices(dy, self._height)
            moving = share[src_x, src_y]
            result[src_x, src_y] -= moving
            result[dst_x, dst_y] += moving
        self._energy = result

    def total_energy(self) -> float:
        return float(self._energy.sum())

    def energy_grid(self) -> np.ndarray:
        view = self._energy.copy()
        view.setflags(write=False)
        return view
