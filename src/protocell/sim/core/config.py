from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigurationError


@dataclass
class FieldConfig:
    width: int = 180
    height: int = 100
    diffusion_rate: float = 0.05
    # 4 (von Neumann) or 8 (Moore) neighbours per cell.
    neighborhood: int = 8
    total_system_energy: float = 100.0
    # Diffusion runs every max(1, round(diffusion_interval / speed)) ticks.
    diffusion_interval: float = 3.0
    noise_scale: float = 0.1


@dataclass
class EntityConfig:
    initial_energy: float = 0.7
    colony_energy: float = 0.8
    initial_speed: float = 0.5
    max_speed: float = 0.5
    base_energy_decay: float = 0.0001
    extraction_rate: float = 0.01
    decay_return_steps: int = 2
    max_returns_per_tick: int = 5
    energy_gain_history: int = 10
    # Tissue
    tissue_history: int = 100
    stress_offset: float = 1.2
    repair_rate: float = 0.0015
    degeneration_rate: float = 0.001
    initial_repair_capacity: float = 1.2
    repair_capacity_decay: float = 0.00005
    repair_capacity_floor: float = 0.3
    membrane_degradation_threshold: float = 0.7
    membrane_degradation_rate: float = 0.3
    death_integrity: float = 0.05
    death_return_steps: int = 5
    death_return_spacing: float = 0.5
    # Kinematics
    boundary_margin: float = 5.0
    boundary_force: float = 0.05
    brownian_scale: float = 0.01
    brownian_enabled: bool = True
    # Chemotaxis
    chemotaxis_radius: float = 3.0
    chemotaxis_directions: int = 8
    chemotaxis_margin: float = 0.05
    chemotaxis_strength: float = 0.05
    # Vibration
    vibration_samples: int = 20
    resonance_interval: int = 30
    locomotion_strength: float = 0.2
    chaos_threshold: float = 0.7
    optimal_band: float = 0.1
    proximity_base_range: float = 3.0
    proximity_strength: float = 0.03
    # Collisions
    collision_energy_loss: float = 0.001
    collision_impulse: float = 0.05
    collision_return_steps: int = 4
    collision_reset_interval: int = 30
    adaptation_history: int = 20


@dataclass
class MergeConfig:
    share_impact: float = 0.2
    share_energy: float = 0.4
    share_resonance: float = 0.7
    bidirectional_resonance: float = 0.85
    merge_permeability: float = 0.4
    merge_resonance: float = 0.6
    merge_energy: float = 0.3
    max_partners: int = 5
    merge_chance: float = 0.5
    energy_equalization: float = 0.3
    initial_transfer_rate: float = 0.05
    max_transfer_rate: float = 0.5
    cohesion: float = 0.001
    distance_factor: float = 1.8
    pull_force: float = 0.015
    push_force: float = 0.012
    band_damping: float = 0.98
    separation_scale: float = 0.005
    separation_repulsion: float = 0.05
    group_motion_interval: int = 10
    group_vibration_interval: int = 15
    vibration_sync: float = 0.05


@dataclass
class DivisionConfig:
    energy_threshold: float = 0.7
    critical_oscillation: float = 0.5
    split_ratio: float = 0.6
    stability_after: float = 0.8
    oscillation_after: float = 0.3
    child_offset: float = 0.5
    mutation: float = 0.1
    inherit_success: float = 0.6
    inherit_strength: float = 0.8
    instability_rate: float = 0.015
    impact_rate: float = 0.15
    recovery_rate: float = 0.000005


@dataclass
class LearningConfig:
    memory_capacity: int = 12
    shared_capacity: int = 10
    housekeeping_interval: int = 20
    synthesis_probability: float = 0.01
    evaluation_delay: int = 30
    compression_interval: int = 100
    abstraction_interval: int = 200
    abstraction_min_cluster: int = 3
    abstraction_distance: float = 0.15
    shared_memory_ttl: int = 500
    application_threshold: float = 0.6
    share_success: float = 0.7
    share_relevance: float = 0.6
    share_count: int = 2
    inherit_count: int = 5
    death_memory_success: float = 0.8
    death_memory_count: int = 3
    death_memory_radius: float = 5.0
    outcome_history: int = 10


@dataclass
class SimulationConfig:
    seed: int = 42
    initial_entity_count: int = 3
    max_entities: int = 4000
    speed: float = 1.0
    frame_seconds: float = 1.0 / 60.0
    energy_check_interval: int = 50
    energy_drift_tolerance: float = 1.0
    telemetry_interval: int = 100
    telemetry_capacity: int = 1000
    energy_field: FieldConfig = field(default_factory=FieldConfig)
    entity: EntityConfig = field(default_factory=EntityConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    division: DivisionConfig = field(default_factory=DivisionConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)

    def validate(self) -> "SimulationConfig":
        grid = self.energy_field
        if grid.width <= 0 or grid.height <= 0:
            raise ConfigurationError("energy_field", f"grid dimensions must be positive, got {grid.width}x{grid.height}")
        if not 0.0 <= grid.diffusion_rate < 1.0:
            raise ConfigurationError("energy_field.diffusion_rate", f"must be in [0, 1), got {grid.diffusion_rate}")
        if grid.neighborhood not in (4, 8):
            raise ConfigurationError("energy_field.neighborhood", f"must be 4 or 8, got {grid.neighborhood}")
        if grid.total_system_energy <= 0:
            raise ConfigurationError("energy_field.total_system_energy", "must be positive")
        if self.max_entities <= 0:
            raise ConfigurationError("max_entities", f"capacity must be positive, got {self.max_entities}")
        if self.initial_entity_count < 0 or self.initial_entity_count > self.max_entities:
            raise ConfigurationError(
                "initial_entity_count", f"must be within [0, {self.max_entities}], got {self.initial_entity_count}"
            )
        if self.learning.memory_capacity <= 0:
            raise ConfigurationError("learning.memory_capacity", "capacity must be positive")
        if self.learning.shared_capacity <= 0:
            raise ConfigurationError("learning.shared_capacity", "capacity must be positive")
        if self.telemetry_capacity <= 0:
            raise ConfigurationError("telemetry_capacity", "capacity must be positive")
        if self.speed <= 0:
            raise ConfigurationError("speed", f"must be positive, got {self.speed}")
        for name in ("initial_energy", "colony_energy"):
            value = getattr(self.entity, name)
            if not 0.0 < value <= 1.0:
                raise ConfigurationError(f"entity.{name}", f"must be in (0, 1], got {value}")
        for section, name in (
            ("entity", "tissue_history"),
            ("entity", "vibration_samples"),
            ("entity", "energy_gain_history"),
            ("entity", "adaptation_history"),
            ("learning", "outcome_history"),
            ("merge", "group_motion_interval"),
            ("merge", "group_vibration_interval"),
        ):
            value = getattr(getattr(self, section), name)
            if value <= 0:
                raise ConfigurationError(f"{section}.{name}", f"must be positive, got {value}")
        if self.telemetry_interval <= 0:
            raise ConfigurationError("telemetry_interval", f"must be positive, got {self.telemetry_interval}")
        cluster = self.learning.abstraction_min_cluster
        if cluster < 2:
            raise ConfigurationError(
                "learning.abstraction_min_cluster", f"a cluster needs at least 2 patterns, got {cluster}"
            )
        if self.division.energy_threshold <= 0:
            raise ConfigurationError("division.energy_threshold", f"must be positive, got {self.division.energy_threshold}")
        if not 0.0 < self.division.split_ratio < 1.0:
            raise ConfigurationError("division.split_ratio", "must be in (0, 1)")
        if not 0.0 <= self.merge.max_transfer_rate <= 0.5:
            raise ConfigurationError("merge.max_transfer_rate", "must be in [0, 0.5]")
        initial = self.initial_entity_count * self.entity.colony_energy
        if initial > grid.total_system_energy:
            raise ConfigurationError(
                "initial_entity_count", "initial colony energy exceeds the total system energy"
            )
        return self


def _section(raw: dict, name: str, factory):
    try:
        return factory(**(raw.get(name) or {}))
    except TypeError as exc:
        raise ConfigurationError(name, str(exc)) from exc


def load_config(raw: dict) -> SimulationConfig:
    field_config = _section(raw, "energy_field", FieldConfig)
    entity = _section(raw, "entity", EntityConfig)
    merge = _section(raw, "merge", MergeConfig)
    division = _section(raw, "division", DivisionConfig)
    learning = _section(raw, "learning", LearningConfig)
    sim_values = {k: v for k, v in raw.items() if k not in {"energy_field", "entity", "merge", "division", "learning"}}
    try:
        config = SimulationConfig(
            energy_field=field_config, entity=entity, merge=merge, division=division, learning=learning, **sim_values
        )
    except TypeError as exc:
        raise ConfigurationError("simulation", str(exc)) from exc
    return config.validate()
