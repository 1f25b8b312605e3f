from pygame.math import Vector2
from pytest import approx

from protocell.sim.core.engine import Engine
from protocell.sim.core.patterns import (
    BehaviorPattern,
    MembraneParams,
    MovementParams,
    PatternConditions,
    PatternKind,
    PatternOrigin,
    VibrationParams,
)
from protocell.sim.systems import learning


def _pattern(target: float = 0.4, success: float = 0.5, energy: float = 0.5, oscillation: float = 0.3, **extra):
    return BehaviorPattern(
        params=VibrationParams(target_oscillation=target),
        conditions=PatternConditions(energy=energy, oscillation=oscillation),
        success_rate=success,
        **extra,
    )


def _steady(entity, energy: float = 0.5, oscillation: float = 0.3) -> None:
    entity.energy = energy
    entity.internal.oscillation = oscillation
    entity.vibration.optimal_oscillation = oscillation
    entity.memory.recent_collisions = 0


def _pair(small_config):
    engine = Engine(small_config(initial_entity_count=2))
    a, b = engine.population.active()
    _steady(a)
    _steady(b)
    return engine, a, b


def test_compress_keeps_most_important_patterns(small_config):
    engine, a, _ = _pair(small_config)
    capacity = a.memory.capacity
    for index in range(capacity + 2):
        a.memory.patterns.append(_pattern(success=index / (capacity + 2)))

    dropped = learning.compress(engine, a)

    assert dropped == 2
    assert len(a.memory.patterns) == capacity
    assert min(p.success_rate for p in a.memory.patterns) == approx(2 / (capacity + 2))


def test_adopt_compresses_past_capacity(small_config):
    engine, a, _ = _pair(small_config)
    for _ in range(a.memory.capacity + 5):
        learning.adopt(engine, a, _pattern())
    assert len(a.memory.patterns) == a.memory.capacity


def test_share_memories_hands_over_independent_copies(small_config):
    engine, a, b = _pair(small_config)
    own = _pattern(success=0.9, strength=0.6)
    own.outcomes.append(True)
    a.memory.patterns = [own, _pattern(success=0.2)]

    assert learning.share_memories(engine, a, b) == 1

    (offered,) = b.memory.shared
    assert offered is not own
    assert offered.origin is PatternOrigin.SHARED
    assert offered.source_id == a.id
    assert offered.relevance_score == approx(1.0)
    assert offered.strength == approx(0.6)
    offered.outcomes.append(False)
    assert own.outcomes.to_list() == [True]


def test_share_memories_replaces_weaker_memory_of_same_kind(small_config):
    engine, a, b = _pair(small_config)
    b.memory.shared = [_pattern(success=0.75)]
    a.memory.patterns = [_pattern(success=0.95)]

    assert learning.share_memories(engine, a, b) == 1
    assert len(b.memory.shared) == 1
    assert b.memory.shared[0].success_rate == approx(0.95)


def test_integrate_shared_adopts_new_kind_and_empties_inbox(small_config):
    engine, _, b = _pair(small_config)
    shared = _pattern(success=0.9, strength=0.6, shared_at=0, relevance_score=0.9, origin=PatternOrigin.SHARED)
    b.memory.shared = [shared]

    assert learning.integrate_shared(engine, b) == 1

    assert b.memory.shared == []
    (adopted,) = b.memory.patterns
    assert adopted.kind is PatternKind.VIBRATION
    assert adopted.strength == approx(0.54)
    assert adopted.integrations == 1


def test_integrate_shared_blends_into_existing_pattern(small_config):
    engine, _, b = _pair(small_config)
    own = _pattern(target=0.3, success=0.5)
    b.memory.patterns = [own]
    b.memory.shared = [_pattern(target=0.5, success=0.9, shared_at=0, relevance_score=1.0)]

    assert learning.integrate_shared(engine, b) == 1

    assert b.memory.patterns == [own]
    assert 0.3 < own.params.target_oscillation < 0.5
    assert 0.5 < own.success_rate < 0.9
    assert own.integrations == 1


def test_stale_shared_memories_are_dropped(small_config):
    engine, _, b = _pair(small_config)
    ttl = engine.config.learning.shared_memory_ttl
    b.memory.shared = [_pattern(success=0.9, shared_at=-ttl, relevance_score=1.0)]

    assert learning.integrate_shared(engine, b) == 0
    assert b.memory.shared == []
    assert b.memory.patterns == []


def test_apply_best_schedules_a_delayed_evaluation(small_config):
    engine, a, _ = _pair(small_config)
    pattern = _pattern(target=0.4)
    a.memory.patterns = [pattern]

    assert learning.apply_best(engine, a) is pattern

    assert a.internal.oscillation == approx(0.33)
    assert pattern.usage_count == 1
    delay = engine.config.learning.evaluation_delay
    assert engine.pending_evaluations() == 1
    (evaluation,) = engine._evaluations[delay]
    assert evaluation.entity_id == a.id
    assert evaluation.start_energy == approx(0.5)


def test_apply_best_skips_poor_matches(small_config):
    engine, a, _ = _pair(small_config)
    a.memory.patterns = [_pattern(success=0.0, energy=1.0, oscillation=1.0)]
    a.energy = 0.1
    assert learning.apply_best(engine, a) is None
    assert engine.pending_evaluations() == 0


def test_resolve_evaluation_updates_success_rate(small_config):
    engine, a, _ = _pair(small_config)
    pattern = _pattern(target=0.4)
    a.memory.patterns = [pattern]
    learning.apply_best(engine, a)
    (evaluation,) = engine._evaluations[engine.config.learning.evaluation_delay]

    a.energy = 0.6
    assert learning.resolve_evaluation(engine, evaluation) is True

    assert pattern.success_rate == approx(0.55)
    assert pattern.strength == approx(0.525)
    assert pattern.outcomes.to_list() == [True]
    assert pattern.energy_contribution == approx(0.02)


def test_failed_evaluation_decays_pattern(small_config):
    engine, a, _ = _pair(small_config)
    pattern = _pattern(target=0.4)
    a.memory.patterns = [pattern]
    learning.apply_best(engine, a)
    (evaluation,) = engine._evaluations[engine.config.learning.evaluation_delay]

    a.energy = 0.4
    assert learning.resolve_evaluation(engine, evaluation) is False
    assert pattern.success_rate == approx(0.45)
    assert pattern.strength == approx(0.49)


def test_evaluation_for_dead_entity_is_discarded(small_config):
    engine, a, _ = _pair(small_config)
    a.memory.patterns = [_pattern()]
    learning.apply_best(engine, a)
    (evaluation,) = engine._evaluations[engine.config.learning.evaluation_delay]
    a.is_active = False
    assert learning.resolve_evaluation(engine, evaluation) is None


def test_engine_resolves_evaluations_when_due(small_config):
    engine, a, _ = _pair(small_config)
    a.memory.patterns = [_pattern()]
    learning.apply_best(engine, a)
    delay = engine.config.learning.evaluation_delay

    for _ in range(delay):
        engine.tick()

    assert delay not in engine._evaluations


def test_abstraction_collapses_similar_patterns(small_config):
    engine, a, _ = _pair(small_config)
    cluster = [_pattern(target=t, success=s) for t, s in ((0.40, 0.6), (0.42, 0.8), (0.41, 0.7))]
    movement = BehaviorPattern(
        params=MovementParams(velocity_x=0.1, velocity_y=0.0),
        conditions=PatternConditions(energy=0.5, oscillation=0.3),
    )
    a.memory.patterns = cluster + [movement]

    assert learning.abstract_patterns(engine, a) == 1

    assert len(a.memory.patterns) == 2
    abstracted = next(p for p in a.memory.patterns if p.origin is PatternOrigin.ABSTRACTED)
    assert abstracted.params.target_oscillation == approx(0.41)
    assert abstracted.success_rate == approx(0.7)
    assert movement in a.memory.patterns


def test_dissimilar_patterns_are_not_abstracted(small_config):
    engine, a, _ = _pair(small_config)
    a.memory.patterns = [_pattern(target=t) for t in (0.1, 0.5, 0.9)]
    assert learning.abstract_patterns(engine, a) == 0
    assert len(a.memory.patterns) == 3


def test_dying_entity_leaves_memories_with_neighbours(small_config):
    engine, a, b = _pair(small_config)
    a.position = Vector2(10.0, 10.0)
    b.position = Vector2(11.0, 10.0)
    engine._grid.rebuild(engine.population)
    a.memory.patterns = [_pattern(success=0.95, strength=0.5), _pattern(success=0.3)]

    assert learning.preserve_on_death(engine, a) == 1

    (legacy,) = b.memory.shared
    assert legacy.origin is PatternOrigin.DEATH_MEMORY
    assert legacy.source_id == a.id
    assert legacy.strength == approx(0.5 * (1.0 - 1.0 / 5.0) * 0.7)


def test_child_inherits_only_successful_patterns(small_config):
    engine, a, b = _pair(small_config)
    a.memory.patterns = [_pattern(success=0.9, strength=0.5, usage_count=4), _pattern(success=0.4)]

    inherited = learning.inherit(engine, a, b)

    assert len(inherited) == 1
    assert inherited[0].origin is PatternOrigin.INHERITED
    assert inherited[0].strength == approx(0.4)
    assert inherited[0].usage_count == 0
    assert inherited[0] is not a.memory.patterns[0]


def test_strategy_selection_follows_state(small_config):
    _, a, _ = _pair(small_config)
    a.energy = 0.2
    assert learning.select_strategy(a) is learning.Strategy.ENERGY_GAIN
    a.energy = 0.5
    a.memory.recent_collisions = 4
    assert learning.select_strategy(a) is learning.Strategy.DEFENSE
    a.memory.recent_collisions = 0
    a.energy = 0.9
    assert learning.select_strategy(a) is learning.Strategy.EXPLORATION

    permeable = BehaviorPattern(
        params=MembraneParams(permeability=0.8, elasticity=0.5),
        conditions=PatternConditions(energy=0.2, oscillation=0.3),
    )
    assert learning.strategic_value(learning.Strategy.ENERGY_GAIN, permeable) == approx(0.3)
    assert learning.strategic_value(learning.Strategy.DEFENSE, permeable) == 0.0


def test_synthesized_patterns_start_untested(small_config):
    engine, a, _ = _pair(small_config)
    for _ in range(20):
        pattern = learning.synthesize(engine, a)
        assert pattern.success_rate == 0.0
        assert pattern.origin is PatternOrigin.OWN
        assert pattern.conditions.energy == approx(a.energy)
