from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True, slots=True)
class EntityView:
    id: int
    x: float
    y: float
    vx: float
    vy: float
    energy: float
    age: int
    tissue_integrity: float
    oscillation: float
    stability: float
    elasticity: float
    permeability: float
    thickness: float
    is_merged: bool
    merged_with: Tuple[int, ...]
    pattern_count: int
    queued_energy: float
