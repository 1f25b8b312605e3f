from __future__ import annotations

import argparse
import csv
import logging
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.engine import Engine
from ..sim.types.metrics import TickMetrics
from .telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)

_HEADER = [
    "tick",
    "population",
    "births",
    "deaths",
    "merges",
    "avg_energy",
    "field_energy",
    "total_energy",
    "evaluations",
    "tick_ms",
]


def _format_row(engine: Engine, metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.births,
        metrics.deaths,
        metrics.merges,
        f"{metrics.average_energy:.4f}",
        f"{metrics.field_energy:.4f}",
        f"{engine.total_system_energy():.4f}",
        metrics.evaluations_resolved,
        f"{tick_ms:.3f}",
    ]


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    config_path: Optional[Path] = None,
    telemetry_path: Optional[Path] = None,
    deterministic_log: bool = False,
) -> Engine:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    engine = Engine(config)
    recorder = TelemetryRecorder.for_engine(engine)

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    try:
        for _ in range(steps):
            engine.tick()
            metrics = engine.metrics
            recorder.observe(engine)
            if writer and metrics is not None:
                tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
                writer.writerow(_format_row(engine, metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    report = engine.audit_energy()
    logger.info(
        "Finished %d ticks: population %d, total energy %.4f (drift %.2e)",
        engine.tick_count,
        engine.population_size,
        report.total,
        report.drift,
    )
    if telemetry_path:
        recorder.export_json(telemetry_path)
    return engine


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless protocell simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding the default configuration")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write per-tick metrics")
    parser.add_argument("--telemetry", type=Path, default=None, help="JSON file to export telemetry records")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-event debug messages")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_headless(
        args.steps,
        args.seed,
        args.log,
        config_path=args.config,
        telemetry_path=args.telemetry,
        deterministic_log=args.deterministic_log,
    )


if __name__ == "__main__":
    main()
