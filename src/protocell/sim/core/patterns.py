from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import ClassVar, Optional, Sequence, Union

from ..utils.ring import RingBuffer


class PatternKind(str, Enum):
    VIBRATION = "vibration"
    MEMBRANE = "membrane"
    MOVEMENT = "movement"
    VIBRATION_MOVEMENT = "vibration-movement"
    MAINTAIN = "maintain"


class PatternOrigin(str, Enum):
    OWN = "own"
    SHARED = "shared"
    INHERITED = "inherited"
    DEATH_MEMORY = "death_memory"
    GROUP = "group"
    ABSTRACTED = "abstracted"


@dataclass(frozen=True, slots=True)
class VibrationParams:
    kind: ClassVar[PatternKind] = PatternKind.VIBRATION
    target_oscillation: float


@dataclass(frozen=True, slots=True)
class MembraneParams:
    kind: ClassVar[PatternKind] = PatternKind.MEMBRANE
    permeability: float
    elasticity: float
    thickness: Optional[float] = None


@dataclass(frozen=True, slots=True)
class MovementParams:
    kind: ClassVar[PatternKind] = PatternKind.MOVEMENT
    velocity_x: float
    velocity_y: float
    oscillation_based: bool = False
    target_oscillation: float = 0.3


@dataclass(frozen=True, slots=True)
class VibrationMovementParams:
    kind: ClassVar[PatternKind] = PatternKind.VIBRATION_MOVEMENT
    frequency: float
    amplitude: float
    phase_shift: float
    clockwise: bool = True


@dataclass(frozen=True, slots=True)
class MaintainParams:
    kind: ClassVar[PatternKind] = PatternKind.MAINTAIN
    oscillation: float


PatternParams = Union[VibrationParams, MembraneParams, MovementParams, VibrationMovementParams, MaintainParams]


@dataclass(frozen=True, slots=True)
class PatternConditions:
    """State the owning entity was in when the pattern was worth using."""

    energy: float
    oscillation: float
    collisions: int = 0


def _numeric(value: object) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    return float(value)  # type: ignore[arg-type]


def blend_params(base: PatternParams, other: PatternParams, weight: float) -> PatternParams:
    """Move `base` toward `other` by `weight`. Mismatched kinds keep `base` unchanged."""
    if type(base) is not type(other):
        return base
    changes = {}
    for item in fields(base):
        mine = getattr(base, item.name)
        theirs = getattr(other, item.name)
        if mine is None or theirs is None:
            continue
        if isinstance(mine, bool):
            changes[item.name] = theirs if weight >= 0.5 else mine
        else:
            changes[item.name] = mine * (1.0 - weight) + theirs * weight
    return replace(base, **changes)


def average_params(items: Sequence[PatternParams]) -> PatternParams:
    first = items[0]
    changes = {}
    for item in fields(first):
        values = [_numeric(getattr(params, item.name)) for params in items]
        if any(value is None for value in values):
            continue
        mean = sum(values) / len(values)  # type: ignore[arg-type]
        if isinstance(getattr(first, item.name), bool):
            changes[item.name] = mean >= 0.5
        else:
            changes[item.name] = mean
    return replace(first, **changes)


def params_distance(a: PatternParams, b: PatternParams) -> float:
    """Root mean square difference of the shared numeric parameters; infinite across kinds."""
    if type(a) is not type(b):
        return math.inf
    total = 0.0
    count = 0
    for item in fields(a):
        left = _numeric(getattr(a, item.name))
        right = _numeric(getattr(b, item.name))
        if left is None or right is None:
            continue
        total += (left - right) ** 2
        count += 1
    if count == 0:
        return 0.0
    return math.sqrt(total / count)


@dataclass(slots=True, eq=False)
class BehaviorPattern:
    params: PatternParams
    conditions: PatternConditions
    success_rate: float = 0.5
    strength: float = 0.5
    usage_count: int = 0
    last_used: int = 0
    created_at: int = 0
    origin: PatternOrigin = PatternOrigin.OWN
    source_id: Optional[int] = None
    shared_at: Optional[int] = None
    relevance_score: float = 0.0
    energy_contribution: float = 0.0
    integrations: int = 0
    outcomes: RingBuffer[bool] = field(default_factory=lambda: RingBuffer(10))

    @property
    def kind(self) -> PatternKind:
        return self.params.kind

    def copy(self, **changes) -> "BehaviorPattern":
        """Value copy for handing a pattern to another entity; the outcome history is not shared."""
        outcomes: RingBuffer[bool] = RingBuffer(self.outcomes.capacity)
        for outcome in self.outcomes:
            outcomes.append(outcome)
        changes.setdefault("outcomes", outcomes)
        return replace(self, **changes)
