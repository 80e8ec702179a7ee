from __future__ import annotations

import logging
import math
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .rs485_modbus import RS485ModbusRTU

logger = logging.getLogger(__name__)


class ClimateSensor(ABC):
    """Blocking temperature/humidity source polled by the climate sampler."""

    @property
    @abstractmethod
    def sensor_id(self) -> str:
        ...

    @property
    def unit(self) -> str:
        return "F"

    @abstractmethod
    def read(self) -> tuple[float, float]:
        """Return (temperature, relative humidity %). Raise on failure."""
        ...


@dataclass
class ClimateRegisterSpec:
    functioncode: int = 4  # 3=holding, 4=input
    address: int = 1       # temperature; humidity in the next register
    scale: float = 0.1     # raw tenths of a degree / percent
    fahrenheit: bool = True


class RS485ClimateSensor(ClimateSensor):
    def __init__(
        self,
        driver: RS485ModbusRTU,
        spec: ClimateRegisterSpec = ClimateRegisterSpec(),
        sensor_id: str = "climate_rs485",
    ):
        self._driver = driver
        self._spec = spec
        self._sensor_id = sensor_id

    @property
    def sensor_id(self) -> str:
        return self._sensor_id

    @property
    def unit(self) -> str:
        return "F" if self._spec.fahrenheit else "C"

    def read(self) -> tuple[float, float]:
        regs = self._driver.read_registers(self._spec.functioncode, self._spec.address, 2)
        if len(regs) < 2:
            raise IOError(f"Expected 2 registers, got {regs}")

        raw_t, raw_h = regs[0], regs[1]
        # Temperature register is signed
        if raw_t >= 0x8000:
            raw_t -= 0x10000
        temp_c = raw_t * self._spec.scale
        humidity = raw_h * self._spec.scale

        temp = temp_c * 9.0 / 5.0 + 32.0 if self._spec.fahrenheit else temp_c
        logger.debug("RS485 climate: regs=%s temp=%.1f%s rh=%.1f%%", regs, temp, self.unit, humidity)
        return temp, humidity


@dataclass
class ClimatePattern:
    temp_baseline: float = 70.0
    temp_amplitude: float = 6.0
    humidity_baseline: float = 45.0
    humidity_amplitude: float = 10.0
    period_s: float = 24 * 3600.0
    noise: float = 0.3


class SimulatedClimateSensor(ClimateSensor):
    """Daily sine around a baseline, temperature and humidity in counter-phase."""

    def __init__(self, sensor_id: str = "climate_sim", pattern: ClimatePattern = ClimatePattern()):
        self._sensor_id = sensor_id
        self._pattern = pattern
        self._enabled = True

    @property
    def sensor_id(self) -> str:
        return self._sensor_id

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def read(self) -> tuple[float, float]:
        if not self._enabled:
            raise RuntimeError("Simulated climate sensor disabled")

        p = self._pattern
        phase = (time.time() % p.period_s) / p.period_s * 2.0 * math.pi
        temp = p.temp_baseline + p.temp_amplitude * math.sin(phase)
        humidity = p.humidity_baseline - p.humidity_amplitude * math.sin(phase)
        if p.noise > 0:
            temp += random.uniform(-p.noise, p.noise)
            humidity += random.uniform(-p.noise, p.noise)
        return temp, max(0.0, min(100.0, humidity))
