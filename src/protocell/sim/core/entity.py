from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Set

from pygame.math import Vector2

from ..utils.ring import RingBuffer
from .config import SimulationConfig
from .patterns import BehaviorPattern
from .rng import DeterministicRng


@dataclass(slots=True)
class InternalState:
    oscillation: float = 0.3
    stability: float = 0.7


@dataclass(slots=True)
class MembraneProperties:
    elasticity: float = 0.5
    permeability: float = 0.5
    thickness: float = 0.5


@dataclass(slots=True)
class MergeState:
    is_merged: bool = False
    merged_with: Set[int] = field(default_factory=set)
    merge_strength: float = 0.0
    energy_transfer_rate: float = 0.05
    merge_timer: int = 0


@dataclass(slots=True)
class ReturnObligation:
    position: Vector2
    amount: float


@dataclass(slots=True)
class VibrationSample:
    oscillation: float
    energy: float
    tick: int
    energy_delta: float
    velocity: Vector2
    position: Vector2


@dataclass(slots=True)
class VibrationMemory:
    samples: RingBuffer[VibrationSample]
    resonance_frequency: float = 0.3
    optimal_oscillation: float = 0.3
    last_energy_level: float = 0.7


@dataclass(slots=True)
class TissueState:
    vibration_history: RingBuffer[float]
    cumulative_vibration_stress: float = 0.0
    repair_capacity: float = 1.2


@dataclass(slots=True)
class AdaptationRecord:
    tick: int
    description: str


@dataclass(slots=True)
class AdaptiveMemory:
    capacity: int
    shared_capacity: int
    recent_energy_gains: RingBuffer[float]
    adaptation_history: RingBuffer[AdaptationRecord]
    patterns: List[BehaviorPattern] = field(default_factory=list)
    shared: List[BehaviorPattern] = field(default_factory=list)
    recent_collisions: int = 0

    def remember_shared(self, pattern: BehaviorPattern) -> None:
        self.shared.append(pattern)
        if len(self.shared) > self.shared_capacity:
            del self.shared[0]


@dataclass(slots=True, eq=False)
class Entity:
    id: int
    position: Vector2
    velocity: Vector2
    energy: float
    internal: InternalState
    membrane: MembraneProperties
    merge: MergeState
    tissue: TissueState
    vibration: VibrationMemory
    memory: AdaptiveMemory
    age: int = 0
    birth_tick: int = 0
    tissue_integrity: float = 1.0
    is_active: bool = True
    collision_count: int = 0
    return_queue: Deque[ReturnObligation] = field(default_factory=deque)

    @property
    def queued_energy(self) -> float:
        return sum(item.amount for item in self.return_queue)

    def resonance_with(self, other: "Entity") -> float:
        return 1.0 - abs(self.internal.oscillation - other.internal.oscillation)


def create_entity(
    config: SimulationConfig,
    rng: DeterministicRng,
    entity_id: int,
    position: Vector2,
    energy: float,
    tick: int = 0,
    velocity: Optional[Vector2] = None,
) -> Entity:
    """Build a fresh entity with randomized membrane properties and default internal state."""
    entity_config = config.entity
    learning = config.learning
    if velocity is None:
        span = entity_config.initial_speed
        velocity = Vector2(rng.next_centered(span), rng.next_centered(span))
    membrane = MembraneProperties(
        elasticity=0.5 + rng.next_float() * 0.3,
        permeability=0.3 + rng.next_float() * 0.4,
        thickness=0.4 + rng.next_float() * 0.3,
    )
    return Entity(
        id=entity_id,
        position=Vector2(position),
        velocity=Vector2(velocity),
        energy=max(0.0, min(1.0, energy)),
        internal=InternalState(),
        membrane=membrane,
        merge=MergeState(energy_transfer_rate=config.merge.initial_transfer_rate),
        tissue=TissueState(
            vibration_history=RingBuffer(entity_config.tissue_history),
            repair_capacity=entity_config.initial_repair_capacity,
        ),
        vibration=VibrationMemory(
            samples=RingBuffer(entity_config.vibration_samples),
            last_energy_level=energy,
        ),
        memory=AdaptiveMemory(
            capacity=learning.memory_capacity,
            shared_capacity=learning.shared_capacity,
            recent_energy_gains=RingBuffer(entity_config.energy_gain_history),
            adaptation_history=RingBuffer(entity_config.adaptation_history),
        ),
        birth_tick=tick,
    )
