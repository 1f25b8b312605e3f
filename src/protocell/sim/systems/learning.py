from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from pygame.math import Vector2

from ..core.entity import Entity
from ..core.patterns import (
    BehaviorPattern,
    MaintainParams,
    MembraneParams,
    MovementParams,
    PatternConditions,
    PatternKind,
    PatternOrigin,
    VibrationMovementParams,
    VibrationParams,
    average_params,
    blend_params,
    params_distance,
)
from ..utils.math2d import _clamp01, _clamp_length, _clamp_value
from ..utils.ring import RingBuffer

if TYPE_CHECKING:
    from ..core.engine import Engine

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    ENERGY_GAIN = "energy_gain"
    DEFENSE = "defense"
    EXPLORATION = "exploration"
    BALANCED = "balanced"


@dataclass(slots=True)
class PendingEvaluation:
    """A pattern application whose reward is judged once `due_tick` is reached."""

    entity_id: int
    pattern: BehaviorPattern
    applied_tick: int
    due_tick: int
    start_energy: float
    start_position: Vector2


def conditions_of(entity: Entity) -> PatternConditions:
    return PatternConditions(
        energy=entity.energy,
        oscillation=entity.internal.oscillation,
        collisions=entity.memory.recent_collisions,
    )


def adopt(engine: Engine, entity: Entity, pattern: BehaviorPattern) -> None:
    entity.memory.patterns.append(pattern)
    if len(entity.memory.patterns) > entity.memory.capacity:
        compress(engine, entity)


def importance(pattern: BehaviorPattern, tick: int) -> float:
    recency = 1.0 / (1.0 + max(0, tick - pattern.last_used) / 100.0)
    contribution = _clamp_value(pattern.energy_contribution * 10.0, -0.1, 0.1)
    return (
        pattern.success_rate * 0.4
        + min(pattern.usage_count / 10.0, 1.0) * 0.2
        + pattern.strength * 0.2
        + recency * 0.1
        + contribution
    )


def compress(engine: Engine, entity: Entity) -> int:
    """Keep the highest-importance patterns up to capacity. Returns how many were dropped."""
    memory = entity.memory
    excess = len(memory.patterns) - memory.capacity
    if excess <= 0:
        return 0
    tick = engine._clock.tick
    memory.patterns.sort(key=lambda pattern: importance(pattern, tick), reverse=True)
    del memory.patterns[memory.capacity :]
    return excess


def relevance_for_other(owner: Entity, pattern: BehaviorPattern, other: Entity) -> float:
    score = 0.5
    score += (1.0 - abs(other.energy - pattern.conditions.energy)) * 0.3
    score += (1.0 - abs(other.internal.oscillation - pattern.conditions.oscillation)) * 0.2
    if pattern.kind is PatternKind.MEMBRANE:
        similarity = 1.0 - (
            abs(other.membrane.permeability - owner.membrane.permeability)
            + abs(other.membrane.elasticity - owner.membrane.elasticity)
        ) / 2.0
        score += similarity * 0.2
    elif pattern.kind is PatternKind.MOVEMENT:
        similarity = 1.0 - (abs(other.velocity.x - owner.velocity.x) + abs(other.velocity.y - owner.velocity.y)) / 2.0
        score += similarity * 0.2
    return _clamp01(score)


def share_memories(engine: Engine, source: Entity, target: Entity) -> int:
    """Offer `target` value copies of the source's most relevant successful patterns."""
    cfg = engine._config.learning
    tick = engine._clock.tick
    scored = [
        (relevance_for_other(source, pattern, target), pattern)
        for pattern in source.memory.patterns
        if pattern.success_rate > cfg.share_success
    ]
    scored = [item for item in scored if item[0] > cfg.share_relevance]
    scored.sort(key=lambda item: item[0], reverse=True)

    shared_count = 0
    for relevance, pattern in scored[: cfg.share_count]:
        offered = pattern.copy(
            strength=pattern.strength * (1.0 - (1.0 - relevance) * 0.3),
            origin=PatternOrigin.SHARED,
            source_id=source.id,
            shared_at=tick,
            relevance_score=relevance,
        )
        inbox = target.memory.shared
        index = next((i for i, held in enumerate(inbox) if held.kind is offered.kind), None)
        if index is None:
            target.memory.remember_shared(offered)
            shared_count += 1
        elif offered.success_rate > inbox[index].success_rate:
            inbox[index] = offered
            shared_count += 1
    return shared_count


def memory_relevance(entity: Entity, pattern: BehaviorPattern) -> float:
    conditions = pattern.conditions
    score = 0.5
    score += (1.0 - abs(entity.energy - conditions.energy)) * 0.2
    score += (1.0 - abs(entity.internal.oscillation - conditions.oscillation)) * 0.2
    score += (1.0 - abs(entity.memory.recent_collisions - conditions.collisions) / 5.0) * 0.1
    return _clamp01(score)


def needs_integration(entity: Entity, shared: BehaviorPattern) -> bool:
    memory = entity.memory
    energy_deficit = entity.energy < 0.4
    low_gain = sum(memory.recent_energy_gains) < 0.03
    same_kind = [pattern for pattern in memory.patterns if pattern.kind is shared.kind]
    higher_success = all(shared.success_rate > pattern.success_rate for pattern in same_kind)
    new_kind = not same_kind
    drifted = abs(entity.internal.oscillation - entity.vibration.optimal_oscillation) > 0.2
    return (energy_deficit and low_gain) or higher_success or new_kind or drifted


def integrate_shared(engine: Engine, entity: Entity) -> int:
    """
    Fold peer memories into the entity's own patterns.

    Stale memories are dropped first. A relevant, needed memory blends into an existing pattern
    of the same kind (weighted by own success against the memory's relevance) or is adopted
    as a new pattern at reduced strength. Integrated memories leave the inbox.
    """
    cfg = engine._config.learning
    tick = engine._clock.tick
    memory = entity.memory
    memory.shared = [
        pattern
        for pattern in memory.shared
        if pattern.shared_at is None or tick - pattern.shared_at < cfg.shared_memory_ttl
    ]

    integrated = 0
    for shared in list(memory.shared):
        if memory_relevance(entity, shared) <= cfg.share_relevance or not needs_integration(entity, shared):
            continue
        existing = next((pattern for pattern in memory.patterns if pattern.kind is shared.kind), None)
        if existing is not None:
            own_weight = existing.success_rate * 0.7
            shared_weight = shared.relevance_score * 0.3
            total = own_weight + shared_weight
            if total <= 0.0:
                continue
            existing.params = blend_params(existing.params, shared.params, shared_weight / total)
            existing.success_rate = _clamp01(
                (existing.success_rate * own_weight + shared.success_rate * shared_weight) / total
            )
            existing.integrations += 1
        else:
            adopt(
                engine,
                entity,
                shared.copy(strength=shared.strength * shared.relevance_score, last_used=tick, integrations=1),
            )
        memory.shared.remove(shared)
        integrated += 1
    return integrated


def synthesize(engine: Engine, entity: Entity) -> BehaviorPattern:
    """Propose a new candidate pattern from the entity's current state."""
    rng = engine._rng
    tick = engine._clock.tick
    oscillation = entity.internal.oscillation
    membrane = entity.membrane

    if rng.chance(0.4):
        target = entity.vibration.optimal_oscillation + rng.next_centered(0.1)
        params = VibrationParams(target_oscillation=_clamp_value(target, 0.1, 0.9))
    elif rng.chance(0.3):
        if entity.energy < 0.3:
            permeability = membrane.permeability + rng.next_float() * 0.2
            elasticity = membrane.elasticity - rng.next_float() * 0.1
        else:
            permeability = membrane.permeability - rng.next_float() * 0.1
            elasticity = membrane.elasticity + rng.next_float() * 0.2
        params = MembraneParams(
            permeability=_clamp_value(permeability, 0.1, 0.9),
            elasticity=_clamp_value(elasticity, 0.1, 0.9),
            thickness=_clamp_value(membrane.thickness + rng.next_centered(0.1), 0.1, 0.9),
        )
    elif rng.chance(0.5):
        if oscillation < 0.3:
            heading = rng.next_unit_circle() * 0.1
        elif oscillation < 0.6:
            heading = rng.next_unit_circle() * (0.05 + rng.next_float() * 0.1)
        else:
            spiral = 0.1 + rng.next_float() * 0.2
            heading = Vector2(rng.next_centered(spiral), rng.next_centered(spiral))
        heading *= 0.5 + entity.energy * 0.5
        params = MovementParams(
            velocity_x=heading.x,
            velocity_y=heading.y,
            oscillation_based=True,
            target_oscillation=oscillation,
        )
    elif rng.chance(0.3):
        params = VibrationMovementParams(
            frequency=0.2 + rng.next_float() * 0.6,
            amplitude=0.05 + rng.next_float() * 0.15,
            phase_shift=rng.next_float() * 2.0 * math.pi,
            clockwise=rng.chance(0.5),
        )
    else:
        params = MaintainParams(oscillation=oscillation)

    return BehaviorPattern(
        params=params,
        conditions=conditions_of(entity),
        success_rate=0.0,
        strength=0.5,
        last_used=tick,
        created_at=tick,
        outcomes=RingBuffer(engine._config.learning.outcome_history),
    )


def select_strategy(entity: Entity) -> Strategy:
    if entity.energy < 0.3:
        return Strategy.ENERGY_GAIN
    if entity.memory.recent_collisions > 3:
        return Strategy.DEFENSE
    if entity.energy > 0.8:
        return Strategy.EXPLORATION
    return Strategy.BALANCED


def strategic_value(strategy: Strategy, pattern: BehaviorPattern) -> float:
    match strategy, pattern.params:
        case Strategy.ENERGY_GAIN, MembraneParams(permeability=permeability) if permeability > 0.6:
            return 0.3
        case Strategy.DEFENSE, MembraneParams(thickness=thickness) if thickness is not None and thickness > 0.6:
            return 0.3
        case Strategy.EXPLORATION, MovementParams():
            return 0.3
        case Strategy.BALANCED, _:
            return 0.1
        case _:
            return 0.0


def pattern_relevance(entity: Entity, pattern: BehaviorPattern) -> float:
    score = 0.5
    score += (1.0 - abs(entity.energy - pattern.conditions.energy)) * 0.3
    score += (1.0 - abs(entity.internal.oscillation - pattern.conditions.oscillation)) * 0.2
    return _clamp01(score)


def apply_pattern(engine: Engine, entity: Entity, pattern: BehaviorPattern) -> None:
    internal = entity.internal
    membrane = entity.membrane
    max_speed = engine._config.entity.max_speed
    match pattern.params:
        case VibrationParams(target_oscillation=target):
            internal.oscillation = _clamp01(internal.oscillation * 0.7 + target * 0.3)
        case MembraneParams(permeability=permeability, elasticity=elasticity, thickness=thickness):
            membrane.permeability = _clamp01(membrane.permeability * 0.8 + permeability * 0.2)
            membrane.elasticity = _clamp01(membrane.elasticity * 0.8 + elasticity * 0.2)
            if thickness is not None:
                membrane.thickness = _clamp01(membrane.thickness * 0.8 + thickness * 0.2)
        case MovementParams(velocity_x=vx, velocity_y=vy, oscillation_based=based, target_oscillation=target):
            entity.velocity = _clamp_length(entity.velocity + Vector2(vx, vy) * 0.1, max_speed)
            if based:
                internal.oscillation = _clamp01(internal.oscillation * 0.8 + target * 0.2)
        case VibrationMovementParams(frequency=frequency, amplitude=amplitude, phase_shift=shift, clockwise=clockwise):
            phase = (engine._clock.real_time * frequency + shift) % (2.0 * math.pi)
            internal.oscillation = _clamp_value(internal.oscillation + math.sin(phase) * 0.1, 0.1, 0.9)
            if clockwise:
                push = Vector2(math.cos(phase), math.sin(phase)) * amplitude
            else:
                push = Vector2(math.sin(phase), math.cos(phase)) * amplitude
            entity.velocity = _clamp_length(entity.velocity + push, max_speed)
        case MaintainParams():
            pass


def apply_best(engine: Engine, entity: Entity) -> Optional[BehaviorPattern]:
    """Apply the pattern that best fits the current situation and schedule its evaluation."""
    cfg = engine._config.learning
    patterns = entity.memory.patterns
    if not patterns:
        return None
    strategy = select_strategy(entity)
    best = max(
        patterns,
        key=lambda pattern: pattern_relevance(entity, pattern) * 0.6
        + strategic_value(strategy, pattern)
        + pattern.success_rate * 0.2,
    )
    score = pattern_relevance(entity, best) * 0.6 + strategic_value(strategy, best) + best.success_rate * 0.2
    if score <= cfg.application_threshold:
        return None

    tick = engine._clock.tick
    start_energy = entity.energy
    start_position = Vector2(entity.position)
    apply_pattern(engine, entity, best)
    best.last_used = tick
    best.usage_count += 1
    engine.schedule_evaluation(
        PendingEvaluation(
            entity_id=entity.id,
            pattern=best,
            applied_tick=tick,
            due_tick=tick + cfg.evaluation_delay,
            start_energy=start_energy,
            start_position=start_position,
        )
    )
    return best


def judge(pattern: BehaviorPattern, energy_change: float, moved: float, start_energy: float, energy: float) -> bool:
    match pattern.params:
        case VibrationParams():
            return energy_change > 0.0
        case MembraneParams():
            return energy >= start_energy * 0.95
        case MovementParams():
            return moved > 0.5
        case VibrationMovementParams():
            return moved > 0.5 and energy_change >= 0.0
        case MaintainParams():
            return energy_change >= 0.0
    return False


def resolve_evaluation(engine: Engine, evaluation: PendingEvaluation) -> Optional[bool]:
    """Reward or penalise an applied pattern. Returns None when the entity has died since."""
    entity = engine._population.get(evaluation.entity_id)
    if entity is None:
        return None
    pattern = evaluation.pattern
    energy_change = entity.energy - evaluation.start_energy
    moved = entity.position.distance_to(evaluation.start_position)
    success = judge(pattern, energy_change, moved, evaluation.start_energy, entity.energy)

    pattern.success_rate = _clamp01(pattern.success_rate * 0.9 + (0.1 if success else 0.0))
    if success:
        pattern.strength = min(1.0, pattern.strength * 1.05)
    else:
        pattern.strength = max(0.1, pattern.strength * 0.98)
    pattern.energy_contribution = pattern.energy_contribution * 0.8 + energy_change * 0.2
    pattern.outcomes.append(success)
    return success


def abstract_patterns(engine: Engine, entity: Entity) -> int:
    """
    Replace clusters of near-identical patterns of one kind with a single averaged pattern.

    Clusters are grown greedily around each unclaimed pattern; only clusters of at least the
    configured size are collapsed. Returns the number of abstractions created.
    """
    cfg = engine._config.learning
    tick = engine._clock.tick
    memory = entity.memory
    created = 0
    for kind in PatternKind:
        remaining = [
            pattern
            for pattern in memory.patterns
            if pattern.kind is kind and pattern.origin is not PatternOrigin.ABSTRACTED
        ]
        while len(remaining) >= cfg.abstraction_min_cluster:
            seed = remaining.pop(0)
            cluster = [seed] + [
                pattern
                for pattern in remaining
                if params_distance(seed.params, pattern.params) <= cfg.abstraction_distance
            ]
            if len(cluster) < cfg.abstraction_min_cluster:
                continue
            remaining = [pattern for pattern in remaining if not any(pattern is member for member in cluster)]
            count = len(cluster)
            abstracted = BehaviorPattern(
                params=average_params([pattern.params for pattern in cluster]),
                conditions=PatternConditions(
                    energy=sum(pattern.conditions.energy for pattern in cluster) / count,
                    oscillation=sum(pattern.conditions.oscillation for pattern in cluster) / count,
                    collisions=round(sum(pattern.conditions.collisions for pattern in cluster) / count),
                ),
                success_rate=sum(pattern.success_rate for pattern in cluster) / count,
                strength=max(pattern.strength for pattern in cluster),
                usage_count=sum(pattern.usage_count for pattern in cluster),
                last_used=max(pattern.last_used for pattern in cluster),
                created_at=tick,
                origin=PatternOrigin.ABSTRACTED,
                energy_contribution=sum(pattern.energy_contribution for pattern in cluster) / count,
                outcomes=RingBuffer(cfg.outcome_history),
            )
            memory.patterns = [pattern for pattern in memory.patterns if not any(pattern is m for m in cluster)]
            memory.patterns.append(abstracted)
            created += 1
    return created


def housekeeping(engine: Engine, entity: Entity) -> None:
    cfg = engine._config.learning
    if engine._rng.chance(cfg.synthesis_probability):
        adopt(engine, entity, synthesize(engine, entity))
    if engine._clock.every(cfg.housekeeping_interval):
        integrate_shared(engine, entity)
        apply_best(engine, entity)


def preserve_on_death(engine: Engine, entity: Entity) -> int:
    """Leave the entity's best patterns with living neighbours, weaker the farther away they are."""
    cfg = engine._config.learning
    tick = engine._clock.tick
    legacy = sorted(
        (pattern for pattern in entity.memory.patterns if pattern.success_rate > cfg.death_memory_success),
        key=lambda pattern: pattern.success_rate,
        reverse=True,
    )[: cfg.death_memory_count]
    if not legacy:
        return 0
    radius = cfg.death_memory_radius
    recipients = 0
    for other in engine._grid.get_neighbors(entity.position, radius, exclude_id=entity.id):
        distance = entity.position.distance_to(other.position)
        if distance >= radius:
            continue
        factor = 1.0 - distance / radius
        for pattern in legacy:
            other.memory.remember_shared(
                pattern.copy(
                    strength=pattern.strength * factor * 0.7,
                    relevance_score=0.7,
                    origin=PatternOrigin.DEATH_MEMORY,
                    source_id=entity.id,
                    shared_at=tick,
                )
            )
        recipients += 1
    return recipients


def inherit(engine: Engine, parent: Entity, child: Entity) -> List[BehaviorPattern]:
    division = engine._config.division
    cfg = engine._config.learning
    tick = engine._clock.tick
    eligible = sorted(
        (pattern for pattern in parent.memory.patterns if pattern.success_rate > division.inherit_success),
        key=lambda pattern: pattern.success_rate,
        reverse=True,
    )[: cfg.inherit_count]
    child.memory.patterns = [
        pattern.copy(
            strength=pattern.strength * division.inherit_strength,
            origin=PatternOrigin.INHERITED,
            source_id=parent.id,
            usage_count=0,
            created_at=tick,
        )
        for pattern in eligible
    ]
    return child.memory.patterns
