from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.entity import Entity
from ..utils.math2d import _clamp01

if TYPE_CHECKING:
    from ..core.engine import Engine


def degenerate(engine: Engine, entity: Entity) -> None:
    cfg = engine._config.entity
    tissue = entity.tissue
    oscillation = entity.internal.oscillation

    tissue.vibration_history.append(oscillation)
    tissue.cumulative_vibration_stress += max(0.0, oscillation * (cfg.stress_offset - entity.energy))
    tissue.repair_capacity = max(cfg.repair_capacity_floor, tissue.repair_capacity - cfg.repair_capacity_decay)

    repair = cfg.repair_rate * entity.energy * tissue.repair_capacity
    degeneration = cfg.degeneration_rate * (tissue.cumulative_vibration_stress / 100.0)
    entity.tissue_integrity = _clamp01(entity.tissue_integrity + repair - degeneration)

    threshold = cfg.membrane_degradation_threshold
    if entity.tissue_integrity < threshold:
        factor = 1.0 - (threshold - entity.tissue_integrity) * cfg.membrane_degradation_rate
        entity.membrane.permeability = _clamp01(entity.membrane.permeability * factor)
        entity.membrane.elasticity = _clamp01(entity.membrane.elasticity * factor)


def damage(entity: Entity, amount: float) -> None:
    entity.tissue_integrity = _clamp01(entity.tissue_integrity - max(0.0, amount))
