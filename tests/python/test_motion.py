from pygame.math import Vector2
from pytest import approx

from protocell.sim.core.engine import Engine
from protocell.sim.systems import motion, vibration


def _single(small_config, brownian: bool = False):
    config = small_config(initial_entity_count=1)
    config.entity.brownian_enabled = brownian
    engine = Engine(config)
    (entity,) = engine.population.active()
    entity.energy = 0.5
    entity.membrane.permeability = 0.5
    return engine, entity


def test_locomotion_bends_heading_but_keeps_speed(small_config):
    engine, entity = _single(small_config)
    entity.velocity = Vector2(0.1, 0.3)
    entity.internal.oscillation = 0.3
    entity.vibration.optimal_oscillation = 0.9

    vibration.apply_locomotion(engine, entity)

    assert entity.velocity.length() == approx(Vector2(0.1, 0.3).length())
    assert entity.velocity.normalize() != Vector2(0.1, 0.3).normalize()


def test_locomotion_speeds_up_near_optimal_oscillation(small_config):
    engine, entity = _single(small_config)
    entity.velocity = Vector2(0.1, 0.3)
    entity.internal.oscillation = 0.3
    entity.vibration.optimal_oscillation = 0.3

    vibration.apply_locomotion(engine, entity)

    assert entity.velocity.length() == approx(Vector2(0.1, 0.3).length() * 1.1)


def test_locomotion_respects_max_speed(small_config):
    engine, entity = _single(small_config)
    entity.velocity = Vector2(0.5, 0.0)
    entity.internal.oscillation = 0.3
    entity.vibration.optimal_oscillation = 0.3

    vibration.apply_locomotion(engine, entity)

    assert entity.velocity.length() == approx(engine.config.entity.max_speed)


def test_margin_band_pushes_back_inward(small_config):
    engine, entity = _single(small_config)
    entity.position = Vector2(2.0, 15.0)
    entity.velocity = Vector2(-0.1, 0.0)

    motion.integrate(engine, entity)

    assert entity.position.x == approx(1.9)
    assert entity.velocity.x == approx(-0.05)
    assert entity.velocity.y == 0.0


def test_hard_edges_reflect_position_and_velocity(small_config):
    engine, entity = _single(small_config)
    entity.position = Vector2(0.05, 15.0)
    entity.velocity = Vector2(-0.2, 0.0)

    motion.integrate(engine, entity)

    assert entity.position.x == approx(0.15)
    assert entity.velocity.x == approx(0.15)

    entity.position = Vector2(39.95, 15.0)
    entity.velocity = Vector2(0.2, 0.0)

    motion.integrate(engine, entity)

    assert entity.position.x == approx(39.85)
    assert entity.velocity.x == approx(-0.15)
    assert 0.0 <= entity.position.x < engine.field.width


def test_brownian_jitter_is_bounded(small_config):
    engine, entity = _single(small_config)
    entity.energy = 0.0
    entity.internal.oscillation = 1.0
    # Each component is centered on zero with span brownian_scale * (1 + oscillation).
    limit = engine.config.entity.brownian_scale
    for _ in range(50):
        jitter = motion.brownian_jitter(engine, entity)
        assert abs(jitter.x) <= limit and abs(jitter.y) <= limit


def test_chemotaxis_steers_toward_a_richer_cell(small_config):
    engine, entity = _single(small_config)
    entity.position = Vector2(20.5, 15.5)
    entity.velocity = Vector2()
    engine.field.inject(Vector2(23.5, 15.5), 5.0)

    motion.chemotaxis(engine, entity)

    # strength 0.05 * (0.5 + permeability) * (0.5 + (1 - energy) * 0.5)
    assert entity.velocity.x == approx(0.0375)
    assert entity.velocity.y == approx(0.0, abs=1e-12)


def test_chemotaxis_needs_enough_in_bounds_samples(small_config):
    engine, entity = _single(small_config)
    entity.position = Vector2(0.5, 0.5)
    entity.velocity = Vector2()
    engine.field.inject(Vector2(3.5, 0.5), 5.0)

    motion.chemotaxis(engine, entity)

    assert entity.velocity == Vector2()
