import json

import pytest

from protocell.app.telemetry import TelemetryRecorder
from protocell.sim.core.engine import Engine
from protocell.sim.types.metrics import TelemetryRecord


def _run(small_config, ticks: int, **overrides):
    engine = Engine(small_config(**overrides))
    recorder = TelemetryRecorder.for_engine(engine)
    for _ in range(ticks):
        engine.tick()
        recorder.observe(engine)
    return engine, recorder


def test_records_on_interval_only(small_config):
    _, recorder = _run(small_config, 25, telemetry_interval=10)
    assert [record.tick for record in recorder.records] == [10, 20]


def test_capacity_keeps_most_recent(small_config):
    _, recorder = _run(small_config, 10, telemetry_interval=1, telemetry_capacity=4)
    assert [record.tick for record in recorder.records] == [7, 8, 9, 10]


def test_export_then_import_restores_records(small_config, tmp_path):
    _, recorder = _run(small_config, 6, telemetry_interval=2)
    path = tmp_path / "telemetry.json"
    text = recorder.export_json(path)
    assert json.loads(path.read_text()) == json.loads(text)

    restored = TelemetryRecorder(interval=2, capacity=1)
    restored.import_json(path)

    assert restored.records == recorder.records


def test_import_accepts_json_text():
    recorder = TelemetryRecorder()
    records = recorder.import_json('[{"tick": 3, "population": 2, "mean_energy": 0.5, "field_energy": 9.0}]')
    assert records == [TelemetryRecord(tick=3, population=2, mean_energy=0.5, field_energy=9.0)]


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        {"tick": 1},
        [1, 2],
        [{"tick": 1, "population": 2, "mean_energy": 0.5}],
        [{"tick": 1, "population": True, "mean_energy": 0.5, "field_energy": 1.0}],
        [{"tick": "1", "population": 2, "mean_energy": 0.5, "field_energy": 1.0}],
    ],
)
def test_invalid_imports_leave_records_untouched(payload):
    recorder = TelemetryRecorder()
    recorder.import_json([{"tick": 1, "population": 1, "mean_energy": 0.1, "field_energy": 1.0}])
    with pytest.raises(ValueError):
        recorder.import_json(payload)
    assert [record.tick for record in recorder.records] == [1]


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        TelemetryRecorder(interval=0)


def test_import_accepts_path_given_as_text(small_config, tmp_path):
    _, recorder = _run(small_config, 4, telemetry_interval=2)
    path = tmp_path / "run.json"
    recorder.export_json(path)

    restored = TelemetryRecorder()
    restored.import_json(str(path))

    assert restored.records == recorder.records


def test_missing_file_name_is_not_json():
    with pytest.raises(ValueError):
        TelemetryRecorder().import_json("missing-run.json")
