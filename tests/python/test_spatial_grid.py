from __future__ import annotations

from pygame.math import Vector2

from protocell.sim.core.config import SimulationConfig
from protocell.sim.core.entity import create_entity
from protocell.sim.core.rng import DeterministicRng
from protocell.sim.core.spatial_grid import SpatialGrid


def _entities(positions):
    config = SimulationConfig()
    rng = DeterministicRng(1)
    return [create_entity(config, rng, idx, pos, 0.5) for idx, pos in enumerate(positions)]


def test_neighbor_query_matches_bruteforce():
    grid = SpatialGrid(cell_size=2.5)
    entities = _entities([Vector2(0, 0), Vector2(1, 1), Vector2(3, 0.5), Vector2(6, 6), Vector2(-1.5, 2.0)])
    grid.rebuild(entities)

    center = Vector2(1, 1)
    radius = 3.0
    found = sorted(entity.id for entity in grid.get_neighbors(center, radius))
    brute = sorted(e.id for e in entities if (e.position - center).length_squared() <= radius * radius)
    assert found == brute


def test_neighbor_query_excludes_self_and_inactive():
    grid = SpatialGrid()
    entities = _entities([Vector2(5, 5), Vector2(5.5, 5), Vector2(6, 5)])
    entities[2].is_active = False
    grid.rebuild(entities)

    found = grid.get_neighbors(entities[0].position, 2.0, exclude_id=entities[0].id)

    assert [entity.id for entity in found] == [1]


def test_rebuild_drops_stale_positions():
    grid = SpatialGrid()
    (entity,) = _entities([Vector2(2, 2)])
    grid.rebuild([entity])
    entity.position = Vector2(20, 20)
    grid.rebuild([entity])

    assert grid.get_neighbors(Vector2(2, 2), 1.0) == []
    assert grid.get_neighbors(Vector2(20, 20), 0.5) == [entity]


def test_cell_key_floors_negative_coordinates():
    grid = SpatialGrid(cell_size=2.0)
    assert grid.cell_key(Vector2(-0.5, 3.9)) == (-1, 1)
