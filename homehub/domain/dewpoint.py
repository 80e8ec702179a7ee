from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from ..drivers.virtual_dewpoint import VirtualDewPoint
from .interfaces import DewPointDisplay
from .models import DeviceEvent

logger = logging.getLogger(__name__)


def dew_point(temperature: float, humidity: float) -> float:
    """Simple dew point approximation, degrees F."""
    return temperature - (9.0 / 25.0) * (100.0 - humidity)


@dataclass(frozen=True)
class DewPointConfig:
    app_id: str
    name: str
    temperature_sensor: str
    humidity_sensor: str


class DewPointCalculator:
    """Keeps a child VirtualDewPoint in step with a temperature and a humidity sensor."""

    def __init__(self, config: DewPointConfig, hub) -> None:
        self.config = config
        self._hub = hub
        self._subs: list = []
        self._lock = asyncio.Lock()
        self.last_temperature: float = 50.0
        self.last_humidity: float = 50.0

    @property
    def child_id(self) -> str:
        return f"DEWPoint_{self.config.app_id}"

    @property
    def child(self) -> Optional[DewPointDisplay]:
        dev = self._hub.get_child_device(self.config.app_id, self.child_id)
        return dev if isinstance(dev, DewPointDisplay) else None

    async def initialize(self) -> None:
        async with self._lock:
            dev = self.child
            if dev is None:
                dev = self._hub.add_child_device(
                    self.config.app_id, VirtualDewPoint(self.child_id, self.config.name)
                )
            await dev.set_dew_point(0)
            self._subs.append(self._hub.subscribe(self.config.temperature_sensor, "temperature", self.handle_temperature))
            self._subs.append(self._hub.subscribe(self.config.humidity_sensor, "humidity", self.handle_humidity))
            self.last_temperature = 50.0
            self.last_humidity = 50.0

    async def update(self, config: Optional[DewPointConfig] = None) -> None:
        self.stop()
        if config is not None:
            self.config = config
        await self.initialize()

    def stop(self) -> None:
        for sub in self._subs:
            self._hub.unsubscribe(sub)
        self._subs = []

    async def handle_temperature(self, evt: DeviceEvent) -> None:
        value = _as_float(evt.value)
        if value is None:
            logger.warning("Ignoring temperature %r from %s", evt.value, evt.device_id)
            return
        async with self._lock:
            self.last_temperature = value
            await self._calc()

    async def handle_humidity(self, evt: DeviceEvent) -> None:
        value = _as_float(evt.value)
        if value is None:
            logger.warning("Ignoring humidity %r from %s", evt.value, evt.device_id)
            return
        async with self._lock:
            self.last_humidity = value
            await self._calc()

    async def _calc(self) -> None:
        dev = self.child
        if dev is None:
            logger.error("Dew point child %s missing", self.child_id)
            return
        # Truncated toward zero, not rounded
        await dev.set_dew_point(int(dew_point(self.last_temperature, self.last_humidity)))

    def snapshot(self) -> dict[str, Any]:
        dev = self.child
        return {
            "app_id": self.config.app_id,
            "name": self.config.name,
            "temperature": self.last_temperature,
            "humidity": self.last_humidity,
            "dew_point": dev.current_value("DewPoint") if dev else None,
        }


def _as_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
