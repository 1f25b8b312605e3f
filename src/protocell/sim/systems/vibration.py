from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..core.entity import Entity, VibrationSample
from ..utils.math2d import _clamp01, _clamp_length, _clamp_value, _safe_normalize_xy, _sign

if TYPE_CHECKING:
    from ..core.engine import Engine

_OSCILLATION_FLOOR = 0.1
_OSCILLATION_CEILING = 0.9


def apply_locomotion(engine: Engine, entity: Entity) -> None:
    """Bend the heading along a sinusoid of the oscillation without changing speed."""
    cfg = engine._config.entity
    oscillation = entity.internal.oscillation
    velocity = Vector2(entity.velocity)
    bend = oscillation * cfg.locomotion_strength
    phase = (engine._clock.real_time * oscillation) % (2.0 * math.pi)

    speed = velocity.length() or 0.01
    direction = _safe_normalize_xy(velocity.x + math.cos(phase) * bend, velocity.y + math.sin(phase) * bend)
    if direction.length_squared() > 0.0:
        velocity = direction * speed

    if oscillation > cfg.chaos_threshold and engine._rng.chance(oscillation * 0.3):
        velocity = velocity + engine._rng.next_unit_circle() * (oscillation * 0.1)

    difference = abs(oscillation - entity.vibration.optimal_oscillation)
    if difference < cfg.optimal_band:
        velocity = velocity * (1.0 + (cfg.optimal_band - difference))

    entity.velocity = _clamp_length(velocity, cfg.max_speed)


def record_sample(engine: Engine, entity: Entity) -> None:
    memory = entity.vibration
    memory.samples.append(
        VibrationSample(
            oscillation=entity.internal.oscillation,
            energy=entity.energy,
            tick=engine._clock.tick,
            energy_delta=entity.energy - memory.last_energy_level,
            velocity=Vector2(entity.velocity),
            position=Vector2(entity.position),
        )
    )
    memory.last_energy_level = entity.energy
    if engine._clock.every(engine._config.entity.resonance_interval):
        find_optimal_oscillation(entity)
    entity.tissue.cumulative_vibration_stress += entity.internal.oscillation * 0.01


def find_optimal_oscillation(entity: Entity) -> None:
    """
    Drift the optimal oscillation toward the levels that paid off recently.

    Energy-gaining samples are scored by gain over distance from the resonance frequency,
    movement by how far the entity travelled along its intended heading. The two winners are
    blended 0.6 / 0.4 and the optimum moves a fifth of the way toward the result.
    """
    memory = entity.vibration
    samples = memory.samples.to_list()
    if len(samples) < 5:
        return

    best_energy_oscillation = entity.internal.oscillation
    best_energy_gain = -math.inf
    best_movement_oscillation = entity.internal.oscillation
    best_movement_score = -math.inf

    for previous, sample in zip(samples, samples[1:]):
        if sample.energy_delta > 0:
            gain = sample.energy_delta / (0.1 + abs(sample.oscillation - memory.resonance_frequency))
            if gain > best_energy_gain:
                best_energy_gain = gain
                best_energy_oscillation = sample.oscillation

        moved = sample.position - previous.position
        intended = previous.velocity
        moved_length = moved.length() or 0.001
        intended_length = intended.length() or 0.001
        alignment = intended.dot(moved) / (intended_length * moved_length)
        efficiency = moved_length / (0.01 + abs(sample.energy_delta))
        score = alignment * moved_length * (1.0 + efficiency)
        if score > best_movement_score:
            best_movement_score = score
            best_movement_oscillation = sample.oscillation

    if best_energy_gain <= 0:
        return
    if best_movement_score > 0:
        target = best_energy_oscillation * 0.6 + best_movement_oscillation * 0.4
    else:
        target = best_energy_oscillation
    memory.optimal_oscillation = _clamp01(0.8 * memory.optimal_oscillation + 0.2 * target)


def adjust_toward_optimal(entity: Entity) -> None:
    rate = 0.03 if entity.energy < 0.3 else 0.01
    internal = entity.internal
    optimal = entity.vibration.optimal_oscillation
    if internal.oscillation < optimal:
        internal.oscillation += rate
    elif internal.oscillation > optimal:
        internal.oscillation -= rate
    internal.oscillation = _clamp_value(internal.oscillation, _OSCILLATION_FLOOR, _OSCILLATION_CEILING)


def proximity_interference(engine: Engine, entity: Entity) -> None:
    """Weak oscillation coupling with unmerged neighbours inside a thickness-dependent range."""
    cfg = engine._config.entity
    rng = engine._rng
    reach = cfg.proximity_base_range + entity.membrane.thickness * 2.0
    for other in engine._grid.get_neighbors(entity.position, reach, exclude_id=entity.id):
        if other.id in entity.merge.merged_with:
            continue
        distance = entity.position.distance_to(other.position)
        if distance >= reach:
            continue
        permeability = (entity.membrane.permeability + other.membrane.permeability) / 2.0
        strength = (1.0 - distance / reach) * permeability * cfg.proximity_strength

        if rng.chance(strength * 5.0):
            difference = other.internal.oscillation - entity.internal.oscillation
            if entity.resonance_with(other) > 0.7:
                entity.internal.oscillation += difference * strength
                other.internal.oscillation -= difference * strength
            else:
                entity.internal.oscillation -= _sign(difference) * strength * 0.5
                other.internal.oscillation += _sign(difference) * strength * 0.5
            entity.internal.oscillation = _clamp01(entity.internal.oscillation)
            other.internal.oscillation = _clamp01(other.internal.oscillation)
            entity.tissue.vibration_history.append(entity.internal.oscillation)

        if rng.chance(strength * 3.0):
            difference = other.vibration.resonance_frequency - entity.vibration.resonance_frequency
            entity.vibration.resonance_frequency = _clamp01(
                entity.vibration.resonance_frequency + difference * strength * 0.5
            )
            other.vibration.resonance_frequency = _clamp01(
                other.vibration.resonance_frequency - difference * strength * 0.5
            )


def collision_interference(entity: Entity, other: Entity, impact: float) -> None:
    resonance = entity.resonance_with(other)
    strength = impact * resonance * 0.5
    mine = entity.vibration
    theirs = other.vibration
    difference = theirs.resonance_frequency - mine.resonance_frequency
    if resonance > 0.7:
        mine.resonance_frequency += difference * strength * 0.2
        theirs.resonance_frequency -= difference * strength * 0.2
    else:
        mine.resonance_frequency -= _sign(difference) * strength * 0.1
        theirs.resonance_frequency += _sign(difference) * strength * 0.1
    mine.resonance_frequency = _clamp01(mine.resonance_frequency)
    theirs.resonance_frequency = _clamp01(theirs.resonance_frequency)

    optimal_difference = theirs.optimal_oscillation - mine.optimal_oscillation
    mine.optimal_oscillation = _clamp01(mine.optimal_oscillation + optimal_difference * strength * 0.1)
    theirs.optimal_oscillation = _clamp01(theirs.optimal_oscillation - optimal_difference * strength * 0.1)
