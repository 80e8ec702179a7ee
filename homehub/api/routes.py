from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..core.timeutil import local_tz, now_local, now_utc
from ..domain.analyzer import parse_range
from ..domain.autolock import AutoLock, AutoLockManager
from ..domain.dewpoint import DewPointCalculator
from ..domain.interfaces import Lock, Switch
from ..domain.suite import VacationSuite
from ..domain.vacation import VacationLighting
from ..drivers.devices_sim import SimulatedContactSensor
from ..services.climate_sampler import ClimateSampler
from ..services.hub import Hub
from ..storage.sqlite_repo import SQLiteRepository
from .schemas import AnalyzerRequest, ContactRequest, ModeRequest, UpdateScheduleRequest

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# main.py points these at the live runtime via app.dependency_overrides.
def get_hub() -> Hub:  # overridden in main
    raise RuntimeError("Hub dependency not configured")

def get_repo() -> SQLiteRepository:  # overridden in main
    raise RuntimeError("Repo dependency not configured")

def get_suite() -> VacationSuite:  # overridden in main
    raise RuntimeError("Suite dependency not configured")

def get_autolocks() -> AutoLockManager:  # overridden in main
    raise RuntimeError("Auto lock dependency not configured")

def get_dewpoints() -> dict[str, DewPointCalculator]:  # overridden in main
    raise RuntimeError("Dew point dependency not configured")

def get_pihole() -> Optional[Any]:  # overridden in main
    return None

def get_sampler() -> Optional[ClimateSampler]:  # overridden in main
    return None


def _device_out(dev: Any) -> dict:
    return {
        "id": dev.device_id,
        "name": dev.display_name,
        "type": type(dev).__name__,
        "attributes": dev.attributes() if hasattr(dev, "attributes") else {},
    }


def _require_device(hub: Hub, device_id: str) -> Any:
    dev = hub.get(device_id)
    if dev is None:
        raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
    return dev


def _require_schedule(suite: VacationSuite, app_id: str) -> VacationLighting:
    schedule = suite.schedule(app_id)
    if schedule is None:
        raise HTTPException(status_code=404, detail=f"Unknown vacation schedule: {app_id}")
    return schedule


def _require_autolock(mgr: AutoLockManager, app_id: str) -> AutoLock:
    child = mgr.get(app_id)
    if child is None:
        raise HTTPException(status_code=404, detail=f"Unknown auto lock: {app_id}")
    return child


def _require_pihole(pihole: Optional[Any]) -> Any:
    if pihole is None:
        raise HTTPException(status_code=404, detail="Pi-hole is not enabled")
    return pihole


@router.get("/live")
async def get_live(
    hub: Hub = Depends(get_hub),
    suite: VacationSuite = Depends(get_suite),
    sampler: Optional[ClimateSampler] = Depends(get_sampler),
    pihole: Optional[Any] = Depends(get_pihole),
):
    r = sampler.live.last_reading if sampler else None
    return {
        "app": settings.app_name,
        "mode": hub.mode,
        "now_local": now_local().isoformat(),
        "devices": len(hub.devices()),
        "climate": {
            "ts_utc": r.ts_utc.isoformat() if r else None,
            "temperature": r.temperature if r else None,
            "humidity": r.humidity if r else None,
            "unit": r.unit if r else None,
            "ok": r.ok if r else None,
            "error": r.error if r else None,
        },
        "vacation": {s.config.app_id: {"running": s.state.running, "armed": s.arm_ok()} for s in suite.schedules()},
        "pihole": pihole.switch_state if pihole is not None else None,
    }


# --- Location mode ---
@router.get("/mode")
async def get_mode(hub: Hub = Depends(get_hub)):
    return {"mode": hub.mode}


@router.put("/mode")
async def set_mode(req: ModeRequest, hub: Hub = Depends(get_hub)):
    await hub.set_mode(req.mode)
    return {"ok": True, "mode": hub.mode}


# --- Devices ---
@router.get("/devices")
async def list_devices(hub: Hub = Depends(get_hub)):
    return {"devices": [_device_out(d) for d in hub.devices()]}


@router.get("/devices/{device_id}")
async def get_device(device_id: str, hub: Hub = Depends(get_hub)):
    return _device_out(_require_device(hub, device_id))


@router.get("/devices/{device_id}/events")
async def device_events(device_id: str, minutes: int = 1440, limit: int = 1000, hub: Hub = Depends(get_hub)):
    _require_device(hub, device_id)
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await hub.events_between(device_id, start, end, min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [{"ts_utc": e.ts_utc.isoformat(), "name": e.name, "value": e.value, "unit": e.unit} for e in rows],
    }


@router.post("/devices/{device_id}/on")
async def device_on(device_id: str, hub: Hub = Depends(get_hub)):
    dev = _require_device(hub, device_id)
    if not isinstance(dev, Switch):
        raise HTTPException(status_code=400, detail=f"{device_id} is not a switch")
    await dev.on()
    return {"ok": True, "switch": dev.switch_state}


@router.post("/devices/{device_id}/off")
async def device_off(device_id: str, hub: Hub = Depends(get_hub)):
    dev = _require_device(hub, device_id)
    if not isinstance(dev, Switch):
        raise HTTPException(status_code=400, detail=f"{device_id} is not a switch")
    await dev.off()
    return {"ok": True, "switch": dev.switch_state}


@router.post("/devices/{device_id}/lock")
async def device_lock(device_id: str, hub: Hub = Depends(get_hub)):
    dev = _require_device(hub, device_id)
    if not isinstance(dev, Lock):
        raise HTTPException(status_code=400, detail=f"{device_id} is not a lock")
    await dev.lock()
    return {"ok": True, "lock": dev.lock_state}


@router.post("/devices/{device_id}/unlock")
async def device_unlock(device_id: str, hub: Hub = Depends(get_hub)):
    dev = _require_device(hub, device_id)
    if not isinstance(dev, Lock):
        raise HTTPException(status_code=400, detail=f"{device_id} is not a lock")
    await dev.unlock()
    return {"ok": True, "lock": dev.lock_state}


@router.post("/devices/{device_id}/contact")
async def device_contact(device_id: str, req: ContactRequest, hub: Hub = Depends(get_hub)):
    dev = _require_device(hub, device_id)
    if not isinstance(dev, SimulatedContactSensor):
        raise HTTPException(status_code=400, detail=f"{device_id} is not a simulated contact sensor")
    await dev.set_contact(req.value)
    return {"ok": True, "contact": dev.contact_state}


@router.get("/events")
async def recent_events(minutes: int = 240, limit: int = 2000, repo: SQLiteRepository = Depends(get_repo)):
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await repo.recent_events(start, end, limit=min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [
            {
                "ts_utc": e.ts_utc.isoformat(),
                "device_id": e.device_id,
                "display_name": e.display_name,
                "name": e.name,
                "value": e.value,
                "description": e.description,
            }
            for e in rows
        ],
    }


@router.get("/readings")
async def readings(minutes: int = 60, limit: int = 5000, repo: SQLiteRepository = Depends(get_repo)):
    end = now_utc()
    start = end - timedelta(minutes=max(1, minutes))
    rows = await repo.query_readings(start, end, limit=min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [
            {"ts_utc": r.ts_utc.isoformat(), "temperature": r.temperature, "humidity": r.humidity,
             "ok": r.ok, "error": r.error}
            for r in rows
        ],
    }


# --- Vacation lighting ---
@router.get("/suite")
async def suite_summary(suite: VacationSuite = Depends(get_suite)):
    return {
        "label": suite.label,
        "summary": suite.summary(),
        "schedules": [s.config.app_id for s in suite.schedules()],
        "analyzer": suite.analyzer.config.app_id if suite.analyzer else None,
    }


@router.get("/vacation/{app_id}")
async def vacation_detail(app_id: str, suite: VacationSuite = Depends(get_suite)):
    schedule = _require_schedule(suite, app_id)
    cfg = schedule.config
    return {
        "id": cfg.app_id,
        "label": cfg.label,
        "configured": cfg.configured,
        "armed": schedule.arm_ok(),
        "window": cfg.window.label(),
        "state": schedule.state.to_dict(),
    }


@router.get("/vacation/{app_id}/status")
async def vacation_status(app_id: str, suite: VacationSuite = Depends(get_suite)):
    schedule = _require_schedule(suite, app_id)
    return {"id": app_id, "status": schedule.status_text(), "why_not_running": schedule.why_not_running()}


@router.post("/vacation/{app_id}/test-cycle")
async def vacation_test_cycle(app_id: str, suite: VacationSuite = Depends(get_suite)):
    schedule = _require_schedule(suite, app_id)
    await schedule.run_test_cycle()
    return {
        "ok": True,
        "randomized": schedule.state.last_cycle_randomized,
        "anchors": schedule.state.last_cycle_anchors,
        "queued": len(schedule.state.light_schedule),
    }


@router.post("/vacation/{app_id}/update")
async def vacation_update(app_id: str, req: UpdateScheduleRequest, suite: VacationSuite = Depends(get_suite)):
    schedule = _require_schedule(suite, app_id)
    await schedule.update(schedule.config, run_test=req.run_test)
    return {"ok": True, "status": schedule.status_text()}


@router.post("/vacation/{app_id}/clear")
async def vacation_clear(app_id: str, suite: VacationSuite = Depends(get_suite)):
    schedule = _require_schedule(suite, app_id)
    await schedule.clear_state(turn_off=True)
    return {"ok": True, "queued": len(schedule.state.light_schedule)}


# --- Analyzer ---
@router.post("/analyzer")
async def analyze(req: AnalyzerRequest, suite: VacationSuite = Depends(get_suite)):
    if suite.analyzer is None:
        raise HTTPException(status_code=404, detail="No analyzer configured")
    try:
        start, end = parse_range(req.start, req.end, local_tz())
        result = await suite.analyzer.analyze(start, end, req.devices)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "start": result.start.isoformat(),
        "end": result.end.isoformat(),
        "duration": result.duration_text,
        "over_24h": result.over_24h,
        "devices": [
            {
                "id": st.device_id,
                "name": st.name,
                "on_segments": st.on_segments,
                "on_seconds": st.on_seconds,
                "percent_on": st.percent_on,
                "truncated": h.truncated,
            }
            for h, st in zip(result.devices, result.stats)
        ],
        "stats_html": result.stats_html,
        "timeline_html": result.timeline_html,
    }


# --- Pi-hole ---
@router.get("/pihole")
async def pihole_status(pihole: Optional[Any] = Depends(get_pihole)):
    dev = _require_pihole(pihole)
    return {
        "switch": dev.switch_state,
        "network_id": dev.device_network_id,
        "attributes": dev.attributes(),
    }


@router.post("/pihole/on")
async def pihole_on(pihole: Optional[Any] = Depends(get_pihole)):
    dev = _require_pihole(pihole)
    await dev.on()
    return {"ok": True, "switch": dev.switch_state}


@router.post("/pihole/off")
async def pihole_off(pihole: Optional[Any] = Depends(get_pihole)):
    dev = _require_pihole(pihole)
    await dev.off()
    return {"ok": True, "switch": dev.switch_state}


@router.post("/pihole/refresh")
async def pihole_refresh(pihole: Optional[Any] = Depends(get_pihole)):
    dev = _require_pihole(pihole)
    await dev.refresh()
    return {"ok": True, "switch": dev.switch_state}


# --- Dew point ---
@router.get("/dewpoint")
async def dewpoint_list(calcs: dict[str, DewPointCalculator] = Depends(get_dewpoints)):
    return {"apps": [c.snapshot() for c in calcs.values()]}


# --- Auto lock ---
@router.get("/autolock")
async def autolock_list(mgr: AutoLockManager = Depends(get_autolocks)):
    return {"apps": [c.snapshot() for c in mgr.children()]}


@router.get("/autolock/{app_id}")
async def autolock_detail(app_id: str, mgr: AutoLockManager = Depends(get_autolocks)):
    return _require_autolock(mgr, app_id).snapshot()


@router.post("/autolock/{app_id}/pause")
async def autolock_pause(app_id: str, mgr: AutoLockManager = Depends(get_autolocks)):
    child = _require_autolock(mgr, app_id)
    await child.pause()
    return child.snapshot()


@router.post("/autolock/{app_id}/resume")
async def autolock_resume(app_id: str, mgr: AutoLockManager = Depends(get_autolocks)):
    child = _require_autolock(mgr, app_id)
    await child.resume()
    return child.snapshot()
