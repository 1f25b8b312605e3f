from __future__ import annotations

import logging
from time import perf_counter
from typing import Dict, List, Optional, Set, Tuple

from pygame.math import Vector2

from ..systems import collisions, learning, lifecycle, merging, metabolism, motion, tissue, vibration
from ..systems import metrics as metrics_system
from ..systems.learning import PendingEvaluation
from ..types.metrics import EnergyReport, TickMetrics
from ..types.snapshot import EntityView
from .clock import SimulationClock
from .config import SimulationConfig
from .energy_field import EnergyField
from .entity import Entity, create_entity
from .population import Population
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid

logger = logging.getLogger(__name__)


class Engine:
    """
    Owns one simulation run: the field, the population, the clock and the random source.

    Systems receive the engine and read its private state directly. Nothing here is global, so
    several engines can run side by side in one process.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config.validate()
        self._rng = DeterministicRng(config.seed)
        self._clock = SimulationClock(config.frame_seconds)
        self._grid = SpatialGrid(1.0)
        self._population = Population(config.max_entities, config.merge.initial_transfer_rate)
        self._evaluations: Dict[int, List[PendingEvaluation]] = {}
        self._collided_pairs: Set[Tuple[int, int]] = set()
        self._paused = False
        self._speed = config.speed
        self._metrics: TickMetrics | None = None
        self._last_report: EnergyReport | None = None
        self._births_this_tick = 0
        self._deaths_this_tick = 0
        self._merges_this_tick = 0
        self._field = self._create_field()
        self._bootstrap_population()
        logger.info(
            "Engine created: %dx%d grid, %d entities, seed %d",
            self._field.width,
            self._field.height,
            len(self._population),
            config.seed,
        )

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def population(self) -> Population:
        return self._population

    @property
    def field(self) -> EnergyField:
        return self._field

    @property
    def clock(self) -> SimulationClock:
        return self._clock

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def last_energy_report(self) -> EnergyReport | None:
        return self._last_report

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def tick_count(self) -> int:
        return self._clock.tick

    @property
    def population_size(self) -> int:
        return len(self._population.active())

    @property
    def mean_entity_energy(self) -> float:
        return metrics_system.population_stats(self)[1]

    @property
    def total_field_energy(self) -> float:
        return self._field.total_energy()

    def reset(self) -> None:
        """Restart the run from the configured seed, unpaused and at the configured speed."""
        self._rng.reset()
        self._paused = False
        self._speed = self._config.speed
        self._clock.reset()
        self._grid.clear()
        self._population.clear()
        self._evaluations.clear()
        self._collided_pairs.clear()
        self._metrics = None
        self._last_report = None
        self._field = self._create_field()
        self._bootstrap_population()

    def tick(self) -> None:
        """Advance one step. Does nothing while paused."""
        if self._paused:
            return
        start = perf_counter()
        config = self._config
        self._births_this_tick = 0
        self._deaths_this_tick = 0
        self._merges_this_tick = 0
        self._collided_pairs.clear()

        tick = self._clock.advance()
        self._grid.rebuild(self._population)

        for entity in self._population.active():
            if not entity.is_active:
                continue
            time_scale = self._clock.subjective_scale(entity.energy, self._speed)
            self._update_entity(entity, time_scale)

        if tick % max(1, round(config.energy_field.diffusion_interval / self._speed)) == 0:
            self._field.diffuse()

        resolved = 0
        for evaluation in self._evaluations.pop(tick, []):
            if learning.resolve_evaluation(self, evaluation) is not None:
                resolved += 1

        self._run_maintenance()

        self._population.flush_births()
        self._population.remove_inactive()

        if self._clock.every(config.energy_check_interval):
            self.audit_energy()

        elapsed_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            self,
            self._births_this_tick,
            self._deaths_this_tick,
            self._merges_this_tick,
            resolved,
            elapsed_ms,
        )

    def _update_entity(self, entity: Entity, time_scale: float) -> None:
        entity.age += 1
        tissue.degenerate(self, entity)
        if entity.merge.is_merged:
            merging.update_merged(self, entity)
        vibration.apply_locomotion(self, entity)
        motion.integrate(self, entity)
        metabolism.exchange_energy(self, entity, time_scale)
        vibration.record_sample(self, entity)
        vibration.adjust_toward_optimal(entity)
        vibration.proximity_interference(self, entity)
        collisions.resolve_collisions(self, entity)
        motion.chemotaxis(self, entity)
        learning.housekeeping(self, entity)
        if not lifecycle.check_vitality(self, entity):
            return
        lifecycle.try_division(self, entity)

    def _run_maintenance(self) -> None:
        cfg = self._config.learning
        if self._clock.every(cfg.compression_interval):
            dropped = sum(learning.compress(self, entity) for entity in self._population.active())
            logger.info("Tick %d: memory compression dropped %d patterns", self._clock.tick, dropped)
        if self._clock.every(cfg.abstraction_interval):
            created = sum(learning.abstract_patterns(self, entity) for entity in self._population.active())
            logger.info("Tick %d: pattern abstraction created %d patterns", self._clock.tick, created)

    def schedule_evaluation(self, evaluation: PendingEvaluation) -> None:
        self._evaluations.setdefault(evaluation.due_tick, []).append(evaluation)

    def pending_evaluations(self) -> int:
        return sum(len(items) for items in self._evaluations.values())

    def pause(self, paused: bool = True) -> None:
        self._paused = bool(paused)

    def set_simulation_speed(self, speed: float) -> None:
        if speed <= 0:
            raise ValueError(f"simulation speed must be positive, got {speed}")
        self._speed = float(speed)

    def spawn_entity(self, x: Optional[float] = None, y: Optional[float] = None) -> Optional[Entity]:
        """
        Add an entity at (x, y), or at a random position when a coordinate is omitted.

        Its energy is withdrawn from the field so the system total is unchanged. Returns None
        when the population is full.
        """
        energy_field = self._field
        if x is None:
            x = self._rng.next_float() * energy_field.width
        if y is None:
            y = self._rng.next_float() * energy_field.height
        if not (0.0 <= x < energy_field.width and 0.0 <= y < energy_field.height):
            raise ValueError(f"spawn position ({x}, {y}) is outside the {energy_field.width}x{energy_field.height} grid")
        if not self._population.has_room():
            return None
        energy = energy_field.withdraw(self._config.entity.initial_energy)
        entity = create_entity(
            self._config, self._rng, self._population.next_id(), Vector2(x, y), energy, tick=self._clock.tick
        )
        self._population.add(entity)
        logger.debug("Spawned entity %d at (%.2f, %.2f)", entity.id, x, y)
        return entity

    def snapshot(self) -> List[EntityView]:
        return self._population.snapshot()

    def cell_energy(self, x: int, y: int) -> float:
        return self._field.cell_energy(x, y)

    def total_system_energy(self) -> float:
        entity_energy, queued = self._held_energy()
        return entity_energy + queued + self._field.total_energy()

    def _held_energy(self) -> Tuple[float, float]:
        entity_energy = 0.0
        queued = 0.0
        for entity in [*self._population, *self._population.pending]:
            if not entity.is_active:
                continue
            entity_energy += entity.energy
            queued += entity.queued_energy
        return entity_energy, queued

    def audit_energy(self) -> EnergyReport:
        """Compare the energy currently held anywhere in the system with the configured total."""
        entity_energy, queued = self._held_energy()
        field_energy = self._field.total_energy()
        expected = self._config.energy_field.total_system_energy
        drift = entity_energy + field_energy + queued - expected
        report = EnergyReport(
            tick=self._clock.tick,
            entity_energy=entity_energy,
            field_energy=field_energy,
            queued_energy=queued,
            expected=expected,
            drift=drift,
            within_tolerance=abs(drift) <= self._config.energy_drift_tolerance,
        )
        if not report.within_tolerance:
            logger.warning(
                "Tick %d: energy drift %.4f exceeds tolerance (entities %.3f, field %.3f, queued %.3f)",
                report.tick,
                drift,
                entity_energy,
                field_energy,
                queued,
            )
        else:
            logger.debug("Tick %d: energy total %.4f (drift %.2e)", report.tick, report.total, drift)
        self._last_report = report
        return report

    def _create_field(self) -> EnergyField:
        config = self._config
        colony = config.initial_entity_count * config.entity.colony_energy
        return EnergyField.seeded(config.energy_field, self._rng, config.energy_field.total_system_energy - colony)

    def _bootstrap_population(self) -> None:
        config = self._config
        center = Vector2(self._field.width / 2.0, self._field.height / 2.0)
        for _ in range(config.initial_entity_count):
            entity = create_entity(
                config, self._rng, self._population.next_id(), center, config.entity.colony_energy
            )
            self._population.add(entity)
