from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pygame.math import Vector2

from ..core.entity import Entity
from ..utils.math2d import _clamp_length, _safe_normalize_xy

if TYPE_CHECKING:
    from ..core.engine import Engine

_EDGE_EPSILON = 1e-6


def reflect(x: float, y: float, vx: float, vy: float, width: float, height: float) -> tuple[float, float, float, float]:
    max_x = width - _EDGE_EPSILON
    max_y = height - _EDGE_EPSILON
    while True:
        crossed = False
        if x < 0:
            x = -x
            vx = -vx
            crossed = True
        if x > max_x:
            x = 2 * max_x - x
            vx = -vx
            crossed = True
        if y < 0:
            y = -y
            vy = -vy
            crossed = True
        if y > max_y:
            y = 2 * max_y - y
            vy = -vy
            crossed = True
        if not crossed:
            break

    return x, y, vx, vy


def integrate(engine: Engine, entity: Entity) -> None:
    """Move by velocity, push back from the margin band, bounce off the hard edge, then jitter."""
    cfg = engine._config.entity
    width = engine._field.width
    height = engine._field.height
    position = entity.position + entity.velocity
    vx = entity.velocity.x
    vy = entity.velocity.y

    margin = min(cfg.boundary_margin, width / 2.0, height / 2.0)
    if position.x < margin:
        vx += cfg.boundary_force
    elif position.x > width - margin:
        vx -= cfg.boundary_force
    if position.y < margin:
        vy += cfg.boundary_force
    elif position.y > height - margin:
        vy -= cfg.boundary_force

    x, y, vx, vy = reflect(position.x, position.y, vx, vy, width, height)
    entity.position = Vector2(x, y)
    entity.velocity = Vector2(vx, vy)

    if cfg.brownian_enabled:
        entity.velocity = _clamp_length(entity.velocity + brownian_jitter(engine, entity), cfg.max_speed)


def brownian_jitter(engine: Engine, entity: Entity) -> Vector2:
    strength = engine._config.entity.brownian_scale * (1.0 - entity.energy * 0.5)
    strength *= 1.0 + entity.internal.oscillation
    return Vector2(engine._rng.next_centered(strength), engine._rng.next_centered(strength))


def chemotaxis(engine: Engine, entity: Entity) -> None:
    """Steer toward the richest of several sample points if it beats the current cell by a margin."""
    cfg = engine._config.entity
    energy_field = engine._field
    samples: list[tuple[float, Vector2]] = []
    directions = max(1, cfg.chemotaxis_directions)
    for index in range(directions):
        angle = 2.0 * math.pi * index / directions
        point = entity.position + Vector2(math.cos(angle), math.sin(angle)) * cfg.chemotaxis_radius
        x, y = energy_field.cell_of(point)
        if energy_field.in_bounds(x, y):
            samples.append((energy_field.cell_energy(x, y), point))

    if len(samples) <= 3:
        return

    best_energy, best_point = max(samples, key=lambda item: item[0])
    if best_energy - energy_field.sample(entity.position) <= cfg.chemotaxis_margin:
        return

    sensitivity = cfg.chemotaxis_strength * (0.5 + entity.membrane.permeability)
    scarcity = 0.5 + (1.0 - min(1.0, entity.energy)) * 0.5
    offset = best_point - entity.position
    pull = _safe_normalize_xy(offset.x, offset.y) * (sensitivity * scarcity)
    entity.velocity = _clamp_length(entity.velocity + pull, cfg.max_speed)
