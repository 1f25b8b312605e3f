from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from ..sim.core.config import SimulationConfig
from ..sim.core.engine import Engine
from .telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)


class SimulationController:
    def __init__(self, config: SimulationConfig):
        self.config = config
        self.engine = Engine(config)
        self.telemetry = TelemetryRecorder.for_engine(self.engine)
        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.frame_seconds / self.engine.speed)
            await self.step()

    async def step(self) -> bool:
        """Run one tick unless paused. Returns True when the engine advanced."""
        async with self._lock:
            if self.engine.is_paused:
                return False
            self.engine.tick()
            self.telemetry.observe(self.engine)
        return True

    async def pause(self, paused: bool) -> None:
        async with self._lock:
            self.engine.pause(paused)

    async def set_speed(self, speed: float) -> float:
        async with self._lock:
            self.engine.set_simulation_speed(speed)
            return self.engine.speed

    async def spawn(self, x: Optional[float] = None, y: Optional[float] = None) -> Optional[int]:
        async with self._lock:
            entity = self.engine.spawn_entity(x, y)
        return None if entity is None else entity.id

    async def import_telemetry(self, payload: Any) -> int:
        # HTTP clients send decoded records only, never file paths.
        if not isinstance(payload, list):
            raise ValueError(f"telemetry must be a list of records, got {type(payload).__name__}")
        async with self._lock:
            return len(self.telemetry.import_json(payload))

    def status(self) -> Dict[str, Any]:
        engine = self.engine
        metrics = engine.metrics
        return {
            "paused": engine.is_paused,
            "speed": engine.speed,
            "tick": engine.tick_count,
            "population": engine.population_size,
            "mean_energy": engine.mean_entity_energy,
            "field_energy": engine.total_field_energy,
            "metrics": None if metrics is None else asdict(metrics),
        }


app = FastAPI(title="Protocell Simulation")
controller = SimulationController(SimulationConfig())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await controller.stop()


@app.get("/api/status")
async def status() -> JSONResponse:
    return JSONResponse(controller.status())


@app.get("/api/snapshot")
async def snapshot() -> JSONResponse:
    views = controller.engine.snapshot()
    return JSONResponse({"tick": controller.engine.tick_count, "entities": [asdict(view) for view in views]})


@app.post("/api/control/pause")
async def pause_simulation() -> JSONResponse:
    await controller.pause(True)
    return JSONResponse({"paused": True})


@app.post("/api/control/resume")
async def resume_simulation() -> JSONResponse:
    await controller.pause(False)
    return JSONResponse({"paused": False})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    try:
        speed = await controller.set_speed(float(payload.get("multiplier", 1.0)))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"multiplier": speed})


@app.post("/api/control/spawn")
async def spawn_entity(payload: Optional[dict] = Body(None)) -> JSONResponse:
    payload = payload or {}
    try:
        x = payload.get("x")
        y = payload.get("y")
        entity_id = await controller.spawn(
            None if x is None else float(x),
            None if y is None else float(y),
        )
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"spawned": entity_id is not None, "id": entity_id})


@app.get("/api/telemetry")
async def telemetry() -> JSONResponse:
    return JSONResponse(controller.telemetry.to_payload())


@app.post("/api/telemetry/import")
async def import_telemetry(payload: Any = Body(None)) -> JSONResponse:
    try:
        count = await controller.import_telemetry(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"imported": count})


__all__ = ["app", "controller", "SimulationController"]
