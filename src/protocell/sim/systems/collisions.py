from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.entity import AdaptationRecord, Entity
from ..utils.math2d import _clamp01, _clamp_length, _safe_normalize_xy
from . import learning, merging, tissue, vibration
from .metabolism import queue_return, spend

if TYPE_CHECKING:
    from ..core.engine import Engine

logger = logging.getLogger(__name__)

_SEARCH_RADIUS = 2.0


def resolve_collisions(engine: Engine, entity: Entity) -> int:
    """Handle every other active entity sharing the entity's floor cell, each pair once per tick."""
    energy_field = engine._field
    cell = energy_field.cell_of(entity.position)
    handled = 0
    for other in engine._grid.get_neighbors(entity.position, _SEARCH_RADIUS, exclude_id=entity.id):
        if not entity.is_active:
            break
        if not other.is_active or energy_field.cell_of(other.position) != cell:
            continue
        pair = (min(entity.id, other.id), max(entity.id, other.id))
        if pair in engine._collided_pairs:
            continue
        engine._collided_pairs.add(pair)
        handle_collision(engine, entity, other)
        handled += 1
    if engine._clock.every(engine._config.entity.collision_reset_interval):
        entity.memory.recent_collisions = 0
    return handled


def handle_collision(engine: Engine, entity: Entity, other: Entity) -> bool:
    """
    Resolve one contact initiated by `entity`.

    Both sides lose a small amount of energy, which is queued back to the field from the
    initiator's position. The initiator takes the larger share of the oscillation kick, the
    stability loss and the tissue damage. A strong, resonant contact between well-fed
    entities shares memories and may bond them. Returns True when a merge happened.
    """
    cfg = engine._config.entity
    merge_cfg = engine._config.merge

    loss = cfg.collision_energy_loss * min(entity.energy, other.energy)
    lost = spend(entity, loss) + spend(other, loss)
    queue_return(entity, entity.position, lost, cfg.collision_return_steps)

    impact = entity.velocity.length() * 0.8
    _push_apart(engine, entity, other, impact)

    entity.internal.oscillation = _clamp01(entity.internal.oscillation + impact)
    other.internal.oscillation = _clamp01(other.internal.oscillation + impact * 0.7)
    entity.internal.stability = _clamp01(entity.internal.stability - impact * 0.2)
    other.internal.stability = _clamp01(other.internal.stability - impact * 0.15)

    vibration.collision_interference(entity, other, impact)

    tissue_impact = impact * (1.0 - entity.membrane.elasticity)
    tissue.damage(entity, tissue_impact * 0.025)
    tissue.damage(other, tissue_impact * 0.015)

    entity.memory.recent_collisions += 1
    entity.collision_count += 1
    other.collision_count += 1

    merged = False
    resonance = entity.resonance_with(other)
    if (
        impact > merge_cfg.share_impact
        and entity.energy > merge_cfg.share_energy
        and other.energy > merge_cfg.share_energy
        and resonance > merge_cfg.share_resonance
    ):
        learning.share_memories(engine, entity, other)
        if resonance > merge_cfg.bidirectional_resonance:
            learning.share_memories(engine, other, entity)
        if can_merge(engine, entity, other, resonance) and engine._rng.chance(merge_cfg.merge_chance):
            merged = merging.merge(engine, entity, other)
            if merged:
                engine._merges_this_tick += 1

    adjust_membrane(engine, entity)
    return merged


def can_merge(engine: Engine, entity: Entity, other: Entity, resonance: float) -> bool:
    cfg = engine._config.merge
    return (
        entity.membrane.permeability > cfg.merge_permeability
        and other.membrane.permeability > cfg.merge_permeability
        and resonance > cfg.merge_resonance
        and entity.energy > cfg.merge_energy
        and other.energy > cfg.merge_energy
        and len(entity.merge.merged_with) < cfg.max_partners
        and len(other.merge.merged_with) < cfg.max_partners
        and other.id not in entity.merge.merged_with
    )


def _push_apart(engine: Engine, entity: Entity, other: Entity, impact: float) -> None:
    cfg = engine._config.entity
    offset = entity.position - other.position
    if offset.length_squared() > 0.0:
        direction = _safe_normalize_xy(offset.x, offset.y)
    else:
        direction = engine._rng.next_unit_circle()
    push = direction * (cfg.collision_impulse * (0.5 + impact))
    entity.velocity = _clamp_length(entity.velocity + push, cfg.max_speed)
    other.velocity = _clamp_length(other.velocity - push, cfg.max_speed)


def adjust_membrane(engine: Engine, entity: Entity) -> bool:
    """Toughen the membrane under frequent contact and tune permeability to the energy level."""
    membrane = entity.membrane
    changes = []

    if entity.memory.recent_collisions > 3:
        elasticity = membrane.elasticity
        thickness = membrane.thickness
        membrane.elasticity = min(0.9, membrane.elasticity + 0.02)
        membrane.thickness = min(0.8, membrane.thickness + 0.01)
        if abs(membrane.elasticity - elasticity) > 0.01 or abs(membrane.thickness - thickness) > 0.01:
            changes.append("raised elasticity and thickness after frequent collisions")
    else:
        elasticity = membrane.elasticity
        membrane.elasticity = max(0.3, membrane.elasticity - 0.01)
        if abs(membrane.elasticity - elasticity) > 0.01:
            changes.append("lowered elasticity while collisions are rare")

    permeability = membrane.permeability
    if entity.energy < 0.3:
        membrane.permeability = min(0.9, membrane.permeability + 0.02)
    elif entity.energy > 0.8:
        membrane.permeability = max(0.2, membrane.permeability - 0.01)
    if abs(membrane.permeability - permeability) > 0.01:
        changes.append("raised permeability to absorb more" if entity.energy < 0.3 else "lowered permeability")

    if not changes:
        return False
    entity.memory.adaptation_history.append(AdaptationRecord(engine._clock.tick, "; ".join(changes)))
    return True
