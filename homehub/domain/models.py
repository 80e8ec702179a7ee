from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class DeviceEvent:
    ts_utc: datetime
    device_id: str
    name: str  # attribute, e.g. "switch" | "lock" | "contact" | "level" | "mode"
    value: Any
    display_name: str = ""
    unit: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class Reading:
    ts_utc: datetime
    sensor_id: str
    temperature: Optional[float]
    humidity: Optional[float]
    unit: str = "F"
    ok: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class Segment:
    start: datetime
    end: datetime
    state: str  # "on" | "off"

    @property
    def seconds(self) -> float:
        return (self.end - self.start).total_seconds()
