from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from pydantic import ValidationError

from .core.config import settings
from .core.log import configure_logging
from .core.timeutil import local_tz

from .api.routes import router as api_router
from .api import routes as routes_module
from .api.schemas import AppsFile, DeviceSpec, VacationSpec

from .domain.schedule import Location
from .drivers.climate import ClimateRegisterSpec, ClimateSensor, RS485ClimateSensor, SimulatedClimateSensor
from .drivers.rs485_modbus import ModbusRtuConfig, RS485ModbusRTU
from .services.runtime import HomeRuntime, build_runtime
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)


rs485_driver: RS485ModbusRTU | None = None


def build_climate_sensor() -> ClimateSensor:
    global rs485_driver

    if settings.sensor_mode.lower() == "rs485":
        rs485_driver = RS485ModbusRTU(
            ModbusRtuConfig(
                port=settings.rs485_port,
                baudrate=settings.rs485_baudrate,
                slave_id=settings.rs485_slave_id,
            )
        )
        spec = ClimateRegisterSpec(
            functioncode=settings.climate_functioncode,
            address=settings.climate_register_address,
            scale=settings.climate_scale,
            fahrenheit=settings.climate_fahrenheit,
        )
        return RS485ClimateSensor(driver=rs485_driver, spec=spec)

    # default to sim
    return SimulatedClimateSensor()


def _load_apps() -> AppsFile:
    path = Path(settings.apps_file) if settings.apps_file else (
        Path(__file__).resolve().parent / "config" / "default_apps.json"
    )
    try:
        return AppsFile.model_validate(json.loads(path.read_text()))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Failed to load %s, using hardcoded defaults: %s", path, e)
        return AppsFile(
            devices=[
                DeviceSpec(id="porch", kind="switch", name="Porch Light"),
                DeviceSpec(id="living_lamp", kind="dimmer", name="Living Room Lamp"),
                DeviceSpec(id="vacation_switch", kind="switch", name="Vacation Mode"),
                DeviceSpec(id="phone", kind="notifier", name="Phone"),
            ],
            vacation=[
                VacationSpec(
                    id="main",
                    label="Vacation Lighting",
                    switches=["porch", "living_lamp"],
                    modes=["Away"],
                    vacation_switch="vacation_switch",
                    notifiers=["phone"],
                )
            ],
        )


repo = SQLiteRepository(settings.sqlite_path)
runtime: Optional[HomeRuntime] = None


def _rt() -> HomeRuntime:
    assert runtime is not None
    return runtime


def get_hub():
    return _rt().hub


def get_repo() -> SQLiteRepository:
    return repo


def get_suite():
    return _rt().suite


def get_autolocks():
    return _rt().autolocks


def get_dewpoints():
    return _rt().dewpoints


def get_pihole():
    return _rt().pihole


def get_sampler():
    return _rt().sampler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (mode=%s)", settings.app_name, settings.mode)

    await repo.init()

    global runtime
    location = Location(tz=local_tz(), latitude=settings.latitude, longitude=settings.longitude)
    runtime = await build_runtime(_load_apps(), repo, settings, location, climate_sensor=build_climate_sensor())
    await runtime.start()

    try:
        yield
    finally:
        if runtime:
            await runtime.stop()

        if rs485_driver is not None:
            rs485_driver.close()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_hub] = get_hub
app.dependency_overrides[routes_module.get_repo] = get_repo
app.dependency_overrides[routes_module.get_suite] = get_suite
app.dependency_overrides[routes_module.get_autolocks] = get_autolocks
app.dependency_overrides[routes_module.get_dewpoints] = get_dewpoints
app.dependency_overrides[routes_module.get_pihole] = get_pihole
app.dependency_overrides[routes_module.get_sampler] = get_sampler

app.include_router(api_router, prefix="/api")
