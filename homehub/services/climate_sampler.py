from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from datetime import datetime

from ..core.config import settings
from ..core.timeutil import now_utc
from ..domain.models import Reading
from ..drivers.climate import ClimateSensor
from ..drivers.devices_sim import ClimateSensorDevice


logger = logging.getLogger(__name__)


@dataclass
class LiveClimate:
    last_reading: Optional[Reading] = None
    ok_count: int = 0
    error_count: int = 0


class ClimateSampler:
    """
    Polls the climate sensor, persists readings, and republishes them
    as temperature/humidity events on the sensor's hub device.
    """

    def __init__(
        self,
        sensor: ClimateSensor,
        device: ClimateSensorDevice,
        repo,
        sample_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._sensor = sensor
        self._device = device
        self._repo = repo
        self._sample_seconds = sample_seconds or settings.climate_sample_seconds
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.live = LiveClimate()

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="climate_sampler_loop")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def sample_once(self) -> Reading:
        try:
            # Blocking driver call; keep it off the event loop
            loop = asyncio.get_running_loop()
            temperature, humidity = await loop.run_in_executor(None, self._sensor.read)
            reading = Reading(
                ts_utc=self._clock(),
                sensor_id=self._sensor.sensor_id,
                temperature=float(temperature),
                humidity=float(humidity),
                unit=self._sensor.unit,
            )
            self.live.ok_count += 1
            logger.debug("Climate read OK: %.1f%s %.1f%%", temperature, self._sensor.unit, humidity)
        except Exception as e:
            # Record a failed reading, publish nothing
            reading = Reading(
                ts_utc=self._clock(),
                sensor_id=self._sensor.sensor_id,
                temperature=None,
                humidity=None,
                unit=self._sensor.unit,
                ok=False,
                error=str(e),
            )
            self.live.error_count += 1
            logger.warning("Climate read FAILED: %s", e)

        self.live.last_reading = reading
        try:
            await self._repo.insert_reading(reading)
        except Exception:
            logger.exception("Failed to persist climate reading")

        if reading.ok:
            await self._device.report(reading.temperature, reading.humidity)
        return reading

    async def _run(self) -> None:
        logger.info("Climate sampler started (sample_seconds=%s sensor=%s)",
                    self._sample_seconds, self._sensor.sensor_id)

        while not self._stop.is_set():
            try:
                await self.sample_once()
            except Exception as e:
                logger.exception("Climate sampler loop error: %s", e)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._sample_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Climate sampler stopped")
