from __future__ import annotations
import logging
from typing import Optional

from .base import HubDevice

logger = logging.getLogger(__name__)


class SimulatedSwitch(HubDevice):
    def __init__(self, device_id: str, display_name: str = "", initial: str = "off") -> None:
        super().__init__(device_id, display_name)
        self._attributes["switch"] = initial
        self.commands: list[str] = []

    @property
    def switch_state(self) -> Optional[str]:
        return self.current_value("switch")

    async def on(self) -> None:
        self.commands.append("on")
        logger.info("SWITCH %s on", self.display_name)
        await self.send_event("switch", "on")

    async def off(self) -> None:
        self.commands.append("off")
        logger.info("SWITCH %s off", self.display_name)
        await self.send_event("switch", "off")


class SimulatedDimmer(SimulatedSwitch):
    def __init__(self, device_id: str, display_name: str = "", level: int = 0) -> None:
        super().__init__(device_id, display_name, initial="on" if level > 0 else "off")
        self._attributes["level"] = level

    async def on(self) -> None:
        if not self.current_value("level"):
            self._attributes["level"] = 100
        await super().on()

    async def set_level(self, level: int) -> None:
        level = max(0, min(100, int(level)))
        await self.send_event("level", level, unit="%")
        await self.send_event("switch", "on" if level > 0 else "off")


class SimulatedLock(HubDevice):
    def __init__(self, device_id: str, display_name: str = "", initial: str = "locked") -> None:
        super().__init__(device_id, display_name)
        self._attributes["lock"] = initial
        self.commands: list[str] = []

    @property
    def lock_state(self) -> Optional[str]:
        return self.current_value("lock")

    async def lock(self) -> None:
        self.commands.append("lock")
        logger.info("LOCK %s locked", self.display_name)
        await self.send_event("lock", "locked")

    async def unlock(self) -> None:
        self.commands.append("unlock")
        logger.info("LOCK %s unlocked", self.display_name)
        await self.send_event("lock", "unlocked")


class SimulatedContactSensor(HubDevice):
    def __init__(self, device_id: str, display_name: str = "", initial: str = "closed") -> None:
        super().__init__(device_id, display_name)
        self._attributes["contact"] = initial

    @property
    def contact_state(self) -> Optional[str]:
        return self.current_value("contact")

    async def set_contact(self, value: str) -> None:
        if value not in ("open", "closed"):
            raise ValueError(f"Invalid contact value: {value}")
        await self.send_event("contact", value)


class SimulatedNotifier(HubDevice):
    def __init__(self, device_id: str, display_name: str = "") -> None:
        super().__init__(device_id, display_name)
        self.messages: list[str] = []

    async def notify(self, message: str) -> None:
        self.messages.append(message)
        logger.info("NOTIFY %s: %s", self.display_name, message.replace("\n", " | "))
        await self.send_event("deviceNotification", message)


class ClimateSensorDevice(HubDevice):
    """Temperature + relative humidity sensor; readings arrive from the climate sampler."""

    def __init__(self, device_id: str, display_name: str = "", unit: str = "F") -> None:
        super().__init__(device_id, display_name)
        self.unit = unit

    async def report(self, temperature: Optional[float], humidity: Optional[float]) -> None:
        if temperature is not None:
            await self.send_event("temperature", round(temperature, 1), unit=f"°{self.unit}")
        if humidity is not None:
            await self.send_event("humidity", round(humidity, 1), unit="%")
