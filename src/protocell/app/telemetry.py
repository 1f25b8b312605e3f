from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, List, Union

from ..sim.core.engine import Engine
from ..sim.systems.metrics import create_record
from ..sim.types.metrics import TelemetryRecord
from ..sim.utils.ring import RingBuffer

logger = logging.getLogger(__name__)

_RECORD_FIELDS = tuple(item.name for item in fields(TelemetryRecord))


class TelemetryRecorder:
    """Keeps the most recent periodic telemetry records and moves them in and out of JSON."""

    def __init__(self, interval: int = 100, capacity: int = 1000) -> None:
        if interval <= 0:
            raise ValueError(f"telemetry interval must be positive, got {interval}")
        self.interval = interval
        self._records: RingBuffer[TelemetryRecord] = RingBuffer(capacity)

    @classmethod
    def for_engine(cls, engine: Engine) -> "TelemetryRecorder":
        config = engine.config
        return cls(config.telemetry_interval, config.telemetry_capacity)

    @property
    def records(self) -> List[TelemetryRecord]:
        return self._records.to_list()

    def observe(self, engine: Engine) -> TelemetryRecord | None:
        """Record after a tick when the engine's tick count falls on the interval."""
        if engine.tick_count % self.interval != 0:
            return None
        return self.record(engine)

    def record(self, engine: Engine) -> TelemetryRecord:
        record = create_record(engine)
        self._records.append(record)
        return record

    def clear(self) -> None:
        self._records.clear()

    def to_payload(self) -> List[dict]:
        return [asdict(record) for record in self._records]

    def export_json(self, path: Union[str, Path, None] = None) -> str:
        text = json.dumps(self.to_payload(), indent=2)
        if path is not None:
            Path(path).write_text(text)
            logger.info("Exported %d telemetry records to %s", len(self._records), path)
        return text

    def import_json(self, source: Union[str, Path, List[Any]]) -> List[TelemetryRecord]:
        """
        Replace the stored records with the ones in `source`, in their original order.

        `source` may be a path (a `Path` or a string naming an existing file), a JSON string or an
        already decoded list. Anything that is not a list of complete records raises ValueError and
        leaves the current records untouched.
        """
        if isinstance(source, str) and not source.lstrip().startswith(("[", "{")) and os.path.isfile(source):
            source = Path(source)
        if isinstance(source, Path):
            payload = json.loads(source.read_text())
        elif isinstance(source, str):
            payload = json.loads(source)
        else:
            payload = source
        records = [_parse_record(index, item) for index, item in enumerate(_require_list(payload))]
        self._records = RingBuffer(max(self._records.capacity, len(records)))
        for record in records:
            self._records.append(record)
        logger.info("Imported %d telemetry records", len(records))
        return records


def _require_list(payload: Any) -> List[Any]:
    if not isinstance(payload, list):
        raise ValueError(f"telemetry must be a list of records, got {type(payload).__name__}")
    return payload


def _parse_record(index: int, item: Any) -> TelemetryRecord:
    if not isinstance(item, dict):
        raise ValueError(f"record {index} is not an object")
    missing = [name for name in _RECORD_FIELDS if name not in item]
    if missing:
        raise ValueError(f"record {index} is missing {', '.join(missing)}")
    values = {}
    for name in _RECORD_FIELDS:
        value = item[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"record {index} field {name} must be a number")
        values[name] = value
    return TelemetryRecord(
        tick=int(values["tick"]),
        population=int(values["population"]),
        mean_energy=float(values["mean_energy"]),
        field_energy=float(values["field_energy"]),
    )
