from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..api.schemas import AppsFile, DeviceSpec
from ..core.config import Settings
from ..core.retry import RetryConfig
from ..core.scheduler import AsyncioScheduler
from ..domain.analyzer import HistoryAnalyzer
from ..domain.autolock import AutoLockManager
from ..domain.dewpoint import DewPointCalculator
from ..domain.schedule import Location
from ..domain.suite import VacationSuite
from ..domain.vacation import VacationLighting
from ..drivers.climate import ClimateSensor
from ..drivers.devices_sim import (
    ClimateSensorDevice,
    SimulatedContactSensor,
    SimulatedDimmer,
    SimulatedLock,
    SimulatedNotifier,
    SimulatedSwitch,
)
from ..drivers.pihole import PiholeSwitch
from ..drivers.pihole_legacy import PiholeLegacySwitch
from ..drivers.sonoff_switch import SonoffSwitch
from .climate_sampler import ClimateSampler
from .hub import Hub

logger = logging.getLogger(__name__)

PIHOLE_DEVICE_ID = "pihole"


def build_device(spec: DeviceSpec, cfg: Settings) -> Any:
    name = spec.name or spec.id
    if spec.kind == "switch":
        return SimulatedSwitch(spec.id, name, initial=spec.initial or "off")
    if spec.kind == "dimmer":
        return SimulatedDimmer(spec.id, name, level=int(spec.initial or 0))
    if spec.kind == "lock":
        return SimulatedLock(spec.id, name, initial=spec.initial or "locked")
    if spec.kind == "contact":
        return SimulatedContactSensor(spec.id, name, initial=spec.initial or "closed")
    if spec.kind == "notifier":
        return SimulatedNotifier(spec.id, name)
    if spec.kind == "climate":
        return ClimateSensorDevice(spec.id, name, unit="F" if cfg.climate_fahrenheit else "C")
    if spec.kind == "sonoff":
        if cfg.mode.lower() != "real":
            # Development stand-in for the relay
            return SimulatedSwitch(spec.id, name, initial=spec.initial or "off")
        return SonoffSwitch(
            spec.id,
            name,
            ip=spec.ip,
            port=spec.port or cfg.sonoff_port,
            sonoff_id=spec.sonoff_id,
            timeout=cfg.sonoff_timeout_seconds,
        )
    raise ValueError(f"Unknown device kind: {spec.kind}")


def build_pihole(cfg: Settings, scheduler: AsyncioScheduler, location: Location) -> Union[PiholeSwitch, PiholeLegacySwitch]:
    if cfg.pihole_api_version == 5:
        return PiholeLegacySwitch(
            PIHOLE_DEVICE_ID,
            "Pi-hole",
            ip=cfg.pihole_ip,
            api_token=cfg.pihole_api_token,
            port=cfg.pihole_port,
            disable_minutes=cfg.pihole_disable_minutes,
            timeout=cfg.pihole_timeout_seconds,
            scheduler=scheduler,
            tz=location.tz,
        )
    return PiholeSwitch(
        PIHOLE_DEVICE_ID,
        "Pi-hole",
        ip=cfg.pihole_ip,
        password=cfg.pihole_password,
        port=cfg.pihole_port,
        disable_minutes=cfg.pihole_disable_minutes,
        timeout=cfg.pihole_timeout_seconds,
        retry=RetryConfig(
            max_attempts=cfg.pihole_auth_max_attempts,
            base_delay=cfg.pihole_auth_retry_base_seconds,
            max_delay=cfg.pihole_auth_retry_max_seconds,
        ),
        scheduler=scheduler,
        debug=cfg.pihole_debug,
        tz=location.tz,
    )


@dataclass
class HomeRuntime:
    """Everything the API and the lifespan hook need, wired together."""

    hub: Hub
    repo: Any
    location: Location
    suite: VacationSuite
    autolocks: AutoLockManager
    dewpoints: dict[str, DewPointCalculator] = field(default_factory=dict)
    pihole: Optional[Union[PiholeSwitch, PiholeLegacySwitch]] = None
    sampler: Optional[ClimateSampler] = None
    schedulers: list[AsyncioScheduler] = field(default_factory=list)

    def scheduler(self, owner: str) -> AsyncioScheduler:
        s = AsyncioScheduler(owner, clock=self.hub.now)
        self.schedulers.append(s)
        return s

    async def start(self) -> None:
        for schedule in self.suite.schedules():
            await schedule.restore()
            await schedule.initialize()
        for calc in self.dewpoints.values():
            await calc.initialize()
        if self.pihole is not None:
            await self.pihole.initialize()
        if self.sampler is not None:
            await self.sampler.start()
        logger.info(
            "Runtime started: %d devices, %d schedules, %d auto locks, %d dew point apps",
            len(self.hub.devices()),
            len(self.suite.schedules()),
            len(self.autolocks.children()),
            len(self.dewpoints),
        )

    async def stop(self) -> None:
        if self.sampler is not None:
            await self.sampler.stop()
        for schedule in self.suite.schedules():
            await schedule.stop()
        for calc in self.dewpoints.values():
            calc.stop()
        await self.autolocks.shutdown()
        for s in self.schedulers:
            await s.shutdown()
        await self.hub.drain()


async def build_runtime(
    apps: AppsFile,
    repo: Any,
    cfg: Settings,
    location: Location,
    climate_sensor: Optional[ClimateSensor] = None,
    hub: Optional[Hub] = None,
) -> HomeRuntime:
    hub = hub or Hub(mode=cfg.initial_mode, recorder=repo)
    for spec in apps.devices:
        hub.register(build_device(spec, cfg))

    rt = HomeRuntime(
        hub=hub,
        repo=repo,
        location=location,
        suite=VacationSuite(apps.suite_label),
        autolocks=AutoLockManager(hub, lambda owner: AsyncioScheduler(owner, clock=hub.now), location),
    )

    for spec in apps.vacation:
        rt.suite.add_schedule(
            VacationLighting(spec.to_config(), hub, rt.scheduler(f"vacation:{spec.id}"), repo, location)
        )
    if apps.analyzer is not None:
        rt.suite.set_analyzer(HistoryAnalyzer(apps.analyzer.to_config(), hub, location.tz))

    for spec in apps.autolock:
        await rt.autolocks.create(spec.to_config())

    for spec in apps.dewpoint:
        rt.dewpoints[spec.id] = DewPointCalculator(spec.to_config(), hub)

    if cfg.pihole_enabled:
        rt.pihole = build_pihole(cfg, rt.scheduler(PIHOLE_DEVICE_ID), location)
        hub.register(rt.pihole)

    climate_devices = [d for d in hub.devices() if isinstance(d, ClimateSensorDevice)]
    if climate_sensor is not None and climate_devices:
        rt.sampler = ClimateSampler(climate_sensor, climate_devices[0], repo, cfg.climate_sample_seconds,
                                    clock=hub.now)
    return rt
