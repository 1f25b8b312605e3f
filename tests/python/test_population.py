from __future__ import annotations

import dataclasses

import pytest
from pygame.math import Vector2

from protocell.sim.core.config import SimulationConfig
from protocell.sim.core.entity import create_entity
from protocell.sim.core.population import Population
from protocell.sim.core.rng import DeterministicRng


def _populate(count: int, capacity: int = 10):
    config = SimulationConfig()
    rng = DeterministicRng(5)
    population = Population(capacity, config.merge.initial_transfer_rate)
    entities = []
    for index in range(count):
        entity = create_entity(config, rng, population.next_id(), Vector2(index, index), 0.5)
        population.add(entity)
        entities.append(entity)
    return population, entities


def test_link_is_symmetric_and_idempotent():
    population, (a, b, c) = _populate(3)

    assert population.link(a, b)
    assert not population.link(b, a)
    assert not population.link(a, a)
    assert a.id in b.merge.merged_with and b.id in a.merge.merged_with
    assert a.merge.is_merged and b.merge.is_merged
    assert not c.merge.is_merged
    assert population.is_symmetric()


def test_unlink_settles_entities_without_partners():
    population, (a, b, c) = _populate(3)
    population.link(a, b)
    population.link(a, c)
    a.merge.merge_strength = 0.9
    b.merge.merge_strength = 0.9

    population.unlink(a, b)

    assert b.merge.merged_with == set()
    assert not b.merge.is_merged
    assert b.merge.merge_strength == 0.0
    assert a.merge.is_merged
    assert a.merge.merged_with == {c.id}
    assert population.is_symmetric()


def test_remove_inactive_unlinks_the_dead():
    population, (a, b, c) = _populate(3)
    population.link(a, b)
    population.link(b, c)
    b.is_active = False

    removed = population.remove_inactive()

    assert removed == [b]
    assert b.id not in population
    assert population.get(b.id) is None
    assert b.id not in a.merge.merged_with
    assert b.id not in c.merge.merged_with
    assert population.is_symmetric()


def test_births_wait_for_flush_and_respect_capacity():
    population, entities = _populate(2, capacity=3)
    config = SimulationConfig()
    child = create_entity(config, DeterministicRng(1), population.next_id(), Vector2(), 0.2)

    assert population.queue_birth(child)
    assert len(population) == 2
    assert child.id not in population
    assert not population.has_room()
    extra = create_entity(config, DeterministicRng(2), population.next_id(), Vector2(), 0.2)
    assert not population.queue_birth(extra)

    assert population.flush_births() == 1
    assert child.id in population
    assert [entity.id for entity in population] == [0, 1, 2]


def test_snapshot_views_are_frozen_copies():
    population, (a, b) = _populate(2)
    population.link(a, b)

    views = population.snapshot()

    assert [view.id for view in views] == [a.id, b.id]
    view = views[0]
    assert view.merged_with == (b.id,)
    with pytest.raises(dataclasses.FrozenInstanceError):
        view.energy = 1.0  # type: ignore[misc]
    a.energy = 0.9
    a.position.x = 99.0
    assert view.energy == pytest.approx(0.5)
    assert view.x == pytest.approx(0.0)


def test_partners_lists_active_partners_in_id_order():
    population, (a, b, c) = _populate(3)
    population.link(a, c)
    population.link(a, b)
    c.is_active = False

    assert population.partners(a) == [b]
    assert population.group_ids(a) == {a.id, b.id, c.id}
