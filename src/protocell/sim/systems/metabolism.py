from __future__ import annotations

from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..core.entity import Entity, ReturnObligation

if TYPE_CHECKING:
    from ..core.engine import Engine


def queue_return(entity: Entity, position: Vector2, amount: float, steps: int) -> None:
    """Spread `amount` over `steps` obligations so the field is refunded gradually."""
    if amount <= 0.0:
        return
    steps = max(1, steps)
    share = amount / steps
    for _ in range(steps):
        entity.return_queue.append(ReturnObligation(Vector2(position), share))


def drain_returns(engine: Engine, entity: Entity, limit: int | None = None) -> float:
    queue = entity.return_queue
    count = len(queue) if limit is None else min(limit, len(queue))
    returned = 0.0
    for _ in range(count):
        item = queue.popleft()
        engine._field.inject(item.position, item.amount)
        returned += item.amount
    return returned


def settle_overflow(engine: Engine, entity: Entity) -> None:
    """Hand anything above full energy straight back to the entity's cell."""
    if entity.energy > 1.0:
        engine._field.inject(entity.position, entity.energy - 1.0)
        entity.energy = 1.0


def spend(entity: Entity, amount: float) -> float:
    """Remove at most the entity's current energy and return how much was actually removed."""
    taken = min(max(0.0, amount), entity.energy)
    entity.energy -= taken
    return taken


def transfer(source: Entity, target: Entity, amount: float) -> float:
    moved = spend(source, amount)
    target.energy += moved
    return moved


def exchange_energy(engine: Engine, entity: Entity, time_scale: float) -> float:
    """Pay the metabolic cost, absorb from the field and refund queued obligations. Returns the gain."""
    cfg = engine._config.entity
    membrane = entity.membrane

    cost = cfg.base_energy_decay * time_scale * (0.8 + membrane.thickness * 0.4)
    consumed = spend(entity, cost)
    queue_return(entity, entity.position, consumed, cfg.decay_return_steps)

    gain = engine._field.extract(entity.position, cfg.extraction_rate * (0.5 + membrane.permeability))
    entity.energy += gain
    settle_overflow(engine, entity)
    entity.memory.recent_energy_gains.append(gain)

    drain_returns(engine, entity, cfg.max_returns_per_tick)
    return gain
