from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional

from pygame.math import Vector2

from ..core.entity import Entity, create_entity
from ..utils.math2d import _clamp01, _clamp_value
from . import learning
from .metabolism import drain_returns

if TYPE_CHECKING:
    from ..core.engine import Engine

logger = logging.getLogger(__name__)


def is_viable(engine: Engine, entity: Entity) -> bool:
    return entity.energy > 0.0 and entity.tissue_integrity > engine._config.entity.death_integrity


def check_vitality(engine: Engine, entity: Entity) -> bool:
    """Kill the entity if it ran out of energy or structure. Returns True while it stays alive."""
    if not entity.is_active:
        return False
    if is_viable(engine, entity):
        return True
    die(engine, entity)
    return False


def die(engine: Engine, entity: Entity) -> float:
    """
    Return everything the entity holds to the field and mark it inactive.

    Queued obligations are paid first, then the remaining energy is spread evenly over a
    widening ring of offsets around the entity. Returns the total amount handed back.
    """
    cfg = engine._config.entity
    returned = drain_returns(engine, entity)

    remaining = max(0.0, entity.energy)
    steps = max(1, cfg.death_return_steps)
    share = remaining / steps
    for index in range(steps):
        angle = 2.0 * math.pi * index / steps
        radius = index * cfg.death_return_spacing
        offset = Vector2(math.cos(angle), math.sin(angle)) * radius
        engine._field.inject(entity.position + offset, share)
    returned += remaining
    entity.energy = 0.0

    learning.preserve_on_death(engine, entity)
    engine._population.unlink_all(entity)
    entity.is_active = False
    engine._deaths_this_tick += 1
    logger.debug("Entity %d died at age %d, returned %.4f", entity.id, entity.age, returned)
    return returned


def try_division(engine: Engine, entity: Entity) -> Optional[Entity]:
    """Accumulate instability, divide when critical, then let stability recover and oscillation decay."""
    cfg = engine._config.division
    internal = entity.internal

    energy_stress = entity.energy / cfg.energy_threshold
    internal.stability = _clamp01(internal.stability - cfg.instability_rate * energy_stress)
    internal.oscillation = _clamp01(internal.oscillation + entity.velocity.length() * cfg.impact_rate)

    child = None
    if internal.oscillation > cfg.critical_oscillation and entity.energy >= cfg.energy_threshold:
        chance = (1.0 - internal.stability) * 0.4 + (internal.oscillation - cfg.critical_oscillation) * 0.3
        if engine._rng.chance(chance) and engine._population.has_room():
            child = divide(engine, entity)
            internal.stability = cfg.stability_after
            internal.oscillation *= cfg.oscillation_after

    recovery = cfg.recovery_rate / (1.0 + internal.oscillation)
    internal.stability = min(1.0, internal.stability + recovery)
    internal.oscillation = _clamp01(internal.oscillation * (0.999 - entity.energy * 0.001))
    return child


def divide(engine: Engine, parent: Entity) -> Optional[Entity]:
    """Split off a mutated child holding part of the parent's energy; it joins the population at tick end."""
    cfg = engine._config.division
    rng = engine._rng
    population = engine._population
    if not population.has_room():
        return None

    child_energy = parent.energy * (1.0 - cfg.split_ratio)
    parent.energy -= child_energy

    energy_field = engine._field
    position = Vector2(
        _clamp_value(parent.position.x + rng.next_centered(cfg.child_offset * 2.0), 0.0, energy_field.width - 1e-6),
        _clamp_value(parent.position.y + rng.next_centered(cfg.child_offset * 2.0), 0.0, energy_field.height - 1e-6),
    )
    child = create_entity(
        engine._config, rng, population.next_id(), position, child_energy, tick=engine._clock.tick
    )

    mutation = cfg.mutation
    child.internal.oscillation = _clamp01(parent.internal.oscillation * rng.jitter(mutation))
    child.vibration.resonance_frequency = _clamp01(parent.vibration.resonance_frequency * rng.jitter(mutation))
    child.vibration.optimal_oscillation = _clamp01(parent.vibration.optimal_oscillation * rng.jitter(mutation))
    child.membrane.elasticity = _clamp01(parent.membrane.elasticity * rng.jitter(mutation))
    child.membrane.permeability = _clamp01(parent.membrane.permeability * rng.jitter(mutation))
    child.membrane.thickness = _clamp01(parent.membrane.thickness * rng.jitter(mutation))
    child.tissue_integrity = _clamp01(parent.tissue_integrity * (0.8 + parent.tissue_integrity * 0.2))
    child.tissue.repair_capacity = parent.tissue.repair_capacity * rng.jitter(mutation)

    learning.inherit(engine, parent, child)
    population.queue_birth(child)
    engine._births_this_tick += 1
    logger.debug("Entity %d divided into %d (energy %.3f / %.3f)", parent.id, child.id, parent.energy, child.energy)
    return child
