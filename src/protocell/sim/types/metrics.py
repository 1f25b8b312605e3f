from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    births: int
    deaths: int
    merges: int
    average_energy: float
    field_energy: float
    evaluations_resolved: int
    tick_duration_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class EnergyReport:
    """Outcome of a global energy audit. `within_tolerance` is False when drift exceeded the configured bound."""

    tick: int
    entity_energy: float
    field_energy: float
    queued_energy: float
    expected: float
    drift: float
    within_tolerance: bool

    @property
    def total(self) -> float:
        return self.entity_energy + self.field_energy + self.queued_energy


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    tick: int
    population: int
    mean_energy: float
    field_energy: float
