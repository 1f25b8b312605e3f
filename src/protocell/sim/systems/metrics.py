from __future__ import annotations

from typing import TYPE_CHECKING, Tuple

from ..types.metrics import TelemetryRecord, TickMetrics

if TYPE_CHECKING:
    from ..core.engine import Engine


def population_stats(engine: Engine) -> Tuple[int, float]:
    population = 0
    energy_sum = 0.0
    for entity in engine._population:
        if not entity.is_active:
            continue
        population += 1
        energy_sum += entity.energy
    return population, 0.0 if population == 0 else energy_sum / population


def create_metrics(
    engine: Engine, births: int, deaths: int, merges: int, evaluations_resolved: int, duration_ms: float
) -> TickMetrics:
    population, avg_energy = population_stats(engine)
    return TickMetrics(
        tick=engine._clock.tick,
        population=population,
        births=births,
        deaths=deaths,
        merges=merges,
        average_energy=avg_energy,
        field_energy=engine._field.total_energy(),
        evaluations_resolved=evaluations_resolved,
        tick_duration_ms=duration_ms,
    )


def create_record(engine: Engine) -> TelemetryRecord:
    population, avg_energy = population_stats(engine)
    return TelemetryRecord(
        tick=engine._clock.tick,
        population=population,
        mean_energy=avg_energy,
        field_energy=engine._field.total_energy(),
    )
