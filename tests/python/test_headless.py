import csv
import json

from protocell.app.headless import run_headless


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def test_headless_log_header_and_rows(tmp_path):
    log_path = tmp_path / "run.csv"
    engine = run_headless(steps=3, seed=1, log_path=log_path, deterministic_log=True)
    rows = _read_csv(log_path)
    assert len(rows) == 4
    assert rows[0] == [
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
    assert [int(row[0]) for row in rows[1:]] == [1, 2, 3]
    assert all(row[-1] == "0.000" for row in rows[1:])
    assert engine.tick_count == 3


def test_deterministic_logs_match_for_same_seed(tmp_path):
    first = tmp_path / "first.csv"
    second = tmp_path / "second.csv"
    run_headless(steps=20, seed=5, log_path=first, deterministic_log=True)
    run_headless(steps=20, seed=5, log_path=second, deterministic_log=True)
    assert first.read_text() == second.read_text()


def test_headless_total_energy_column_is_conserved(tmp_path):
    log_path = tmp_path / "energy.csv"
    run_headless(steps=30, seed=2, log_path=log_path, deterministic_log=True)
    totals = {row[7] for row in _read_csv(log_path)[1:]}
    assert totals == {"100.0000"}


def test_headless_reads_yaml_config_and_exports_telemetry(tmp_path):
    config_path = tmp_path / "small.yaml"
    config_path.write_text(
        "seed: 3\n"
        "telemetry_interval: 5\n"
        "energy_field:\n"
        "  width: 30\n"
        "  height: 20\n"
        "  total_system_energy: 10.0\n"
    )
    telemetry_path = tmp_path / "telemetry.json"

    engine = run_headless(steps=12, seed=None, log_path=None, config_path=config_path, telemetry_path=telemetry_path)

    assert engine.field.width == 30
    assert engine.config.seed == 3
    payload = json.loads(telemetry_path.read_text())
    assert [record["tick"] for record in payload] == [5, 10]
    assert set(payload[0]) == {"tick", "population", "mean_energy", "field_energy"}
