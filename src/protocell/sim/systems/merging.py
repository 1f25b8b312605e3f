from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from pygame.math import Vector2

from ..core.entity import Entity
from ..core.patterns import PatternKind, PatternOrigin
from ..utils.math2d import _clamp01, _clamp_length, _safe_normalize_xy
from . import learning
from .metabolism import transfer

if TYPE_CHECKING:
    from ..core.engine import Engine

logger = logging.getLogger(__name__)


def merge(engine: Engine, a: Entity, b: Entity) -> bool:
    """
    Bond `a` and `b`, then union their existing groups.

    Strength comes from the averaged membranes; the faster transfer rate of the two is kept.
    Velocities are averaged weighted by how many partners each side has after linking, and
    part of the energy gap is closed immediately. Every member of one group ends up linked to
    every member of the other.
    """
    cfg = engine._config.merge
    population = engine._population
    group_a = [a, *population.partners(a)]
    group_b = [b, *population.partners(b)]
    if not population.link(a, b):
        return False

    permeability = (a.membrane.permeability + b.membrane.permeability) / 2.0
    elasticity = (a.membrane.elasticity + b.membrane.elasticity) / 4.0
    strength = 0.3 + permeability + elasticity
    rate = strength * 0.2
    for entity in (a, b):
        entity.merge.merge_strength = max(entity.merge.merge_strength, strength)
        entity.merge.energy_transfer_rate = min(cfg.max_transfer_rate, max(entity.merge.energy_transfer_rate, rate))
        entity.merge.merge_timer = 0

    size_a = len(a.merge.merged_with)
    size_b = len(b.merge.merged_with)
    shared = (a.velocity * size_a + b.velocity * size_b) / (size_a + size_b)
    a.velocity = Vector2(shared)
    b.velocity = Vector2(shared)

    gap = abs(a.energy - b.energy) * cfg.energy_equalization
    if a.energy > b.energy:
        transfer(a, b, gap)
    elif b.energy > a.energy:
        transfer(b, a, gap)

    for left in group_a:
        for right in group_b:
            population.link(left, right)

    logger.debug("Entities %d and %d merged (strength %.3f)", a.id, b.id, strength)
    return True


def update_merged(engine: Engine, entity: Entity) -> None:
    cfg = engine._config.merge
    population = engine._population
    state = entity.merge
    state.merge_timer += 1

    partners = population.partners(entity)
    if not partners:
        population.unlink_all(entity)
        return

    centroid = Vector2(entity.position)
    for other in partners:
        centroid += other.position
    centroid /= len(partners) + 1
    toward = centroid - entity.position
    if toward.length_squared() > 0.0:
        entity.velocity = entity.velocity + _safe_normalize_xy(toward.x, toward.y) * (cfg.cohesion * state.merge_strength)

    for other in partners:
        share_energy(entity, other)
        maintain_distance(engine, entity, other)
        if should_separate(engine, entity, other):
            separate(engine, entity, other)
            continue
        sync_vibrations(engine, entity, other)

    remaining = population.partners(entity)
    if not remaining:
        return
    if state.merge_timer % cfg.group_motion_interval == 0:
        sync_group_movement(entity, remaining)
    if state.merge_timer % cfg.group_vibration_interval == 0:
        sync_group_vibrations(engine, entity, remaining)


def share_energy(entity: Entity, other: Entity) -> None:
    amount = (entity.energy - other.energy) * entity.merge.energy_transfer_rate
    if amount > 0:
        transfer(entity, other, amount)
    elif amount < 0:
        transfer(other, entity, -amount)


def maintain_distance(engine: Engine, entity: Entity, other: Entity) -> None:
    """Spring toward a band around twice the combined membrane thickness; damp inside the band."""
    cfg = engine._config.merge
    offset = other.position - entity.position
    distance = offset.length()
    ideal = (entity.membrane.thickness + other.membrane.thickness) * cfg.distance_factor
    max_speed = engine._config.entity.max_speed

    if distance > ideal * 1.3:
        push = offset / distance * (cfg.pull_force * entity.merge.merge_strength)
        entity.velocity = _clamp_length(entity.velocity + push, max_speed)
        other.velocity = _clamp_length(other.velocity - push, max_speed)
    elif distance < ideal * 0.7 and distance > 0.0:
        push = offset / distance * (cfg.push_force * entity.merge.merge_strength)
        entity.velocity = _clamp_length(entity.velocity - push, max_speed)
        other.velocity = _clamp_length(other.velocity + push, max_speed)
    else:
        entity.velocity = entity.velocity * cfg.band_damping
        other.velocity = other.velocity * cfg.band_damping


def should_separate(engine: Engine, entity: Entity, other: Entity) -> bool:
    time_factor = min(entity.merge.merge_timer / 1200.0, 1.0)
    energy_factor = 1.0 - min(abs(entity.energy - other.energy) / 0.9, 1.0)
    resonance_factor = 1.0 - entity.resonance_with(other)
    probability = time_factor * 0.2 + energy_factor * 0.15 + resonance_factor * 0.15
    return engine._rng.chance(probability * engine._config.merge.separation_scale)


def separate(engine: Engine, entity: Entity, other: Entity) -> None:
    engine._population.unlink(entity, other)
    offset = other.position - entity.position
    if offset.length_squared() > 0.0:
        push = _safe_normalize_xy(offset.x, offset.y) * engine._config.merge.separation_repulsion
        entity.velocity = entity.velocity - push
        other.velocity = other.velocity + push
    logger.debug("Entities %d and %d separated", entity.id, other.id)


def sync_vibrations(engine: Engine, entity: Entity, other: Entity) -> None:
    rate = entity.merge.merge_strength * engine._config.merge.vibration_sync
    mine = entity.vibration
    theirs = other.vibration

    difference = other.internal.oscillation - entity.internal.oscillation
    entity.internal.oscillation = _clamp01(entity.internal.oscillation + difference * rate)
    other.internal.oscillation = _clamp01(other.internal.oscillation - difference * rate)

    difference = theirs.resonance_frequency - mine.resonance_frequency
    mine.resonance_frequency = _clamp01(mine.resonance_frequency + difference * rate)
    theirs.resonance_frequency = _clamp01(theirs.resonance_frequency - difference * rate)

    difference = theirs.optimal_oscillation - mine.optimal_oscillation
    mine.optimal_oscillation = _clamp01(mine.optimal_oscillation + difference * rate)
    theirs.optimal_oscillation = _clamp01(theirs.optimal_oscillation - difference * rate)

    time_bonus = min(entity.merge.merge_timer / 500.0, 0.5)
    if engine._rng.chance(rate + time_bonus) and len(mine.samples) and len(theirs.samples):
        my_sample = engine._rng.sample_choice(mine.samples.to_list())
        their_sample = engine._rng.sample_choice(theirs.samples.to_list())
        mine.samples.append(their_sample)
        theirs.samples.append(my_sample)


def sync_group_movement(entity: Entity, partners: List[Entity]) -> None:
    average = Vector2(entity.velocity)
    for other in partners:
        average += other.velocity
    average /= len(partners) + 1
    factor = min(entity.merge.merge_timer / 200.0, 0.8)
    entity.velocity = entity.velocity * (1.0 - factor) + average * factor


def sync_group_vibrations(engine: Engine, entity: Entity, partners: List[Entity]) -> None:
    """Pull toward the group's mean vibration state and occasionally spread its best vibration pattern."""
    members = [entity, *partners]
    count = len(members)
    mean_oscillation = sum(member.internal.oscillation for member in members) / count
    mean_frequency = sum(member.vibration.resonance_frequency for member in members) / count
    mean_optimal = sum(member.vibration.optimal_oscillation for member in members) / count
    factor = min(1.0, min(entity.merge.merge_timer / 300.0, 0.7) * entity.merge.merge_strength)

    entity.internal.oscillation = _clamp01(entity.internal.oscillation * (1 - factor) + mean_oscillation * factor)
    memory = entity.vibration
    memory.resonance_frequency = _clamp01(memory.resonance_frequency * (1 - factor) + mean_frequency * factor)
    memory.optimal_oscillation = _clamp01(memory.optimal_oscillation * (1 - factor) + mean_optimal * factor)
    entity.tissue.vibration_history.append(entity.internal.oscillation)

    if not engine._rng.chance(factor * 0.3):
        return
    candidates = [
        pattern
        for member in members
        for pattern in member.memory.patterns
        if pattern.kind is PatternKind.VIBRATION
    ]
    if not candidates:
        return
    best = max(candidates, key=lambda pattern: pattern.success_rate)
    tick = engine._clock.tick
    for member in members:
        if any(pattern is best for pattern in member.memory.patterns):
            continue
        learning.adopt(
            engine, member, best.copy(origin=PatternOrigin.GROUP, source_id=entity.id, shared_at=tick, usage_count=0)
        )
