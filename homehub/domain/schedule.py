from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from typing import Optional

from ..core.timeutil import time_of_day_is_between, time_today, weekday_name
from .sun import sun_times


@dataclass(frozen=True)
class Location:
    tz: tzinfo
    latitude: float
    longitude: float


@dataclass(frozen=True)
class TimePoint:
    kind: str = "time"  # "time" | "sunrise" | "sunset"
    at: Optional[time] = None
    offset_minutes: int = 0

    def resolve(self, now: datetime, loc: Location) -> Optional[datetime]:
        """Today's instant for this point, or None when it cannot be resolved."""
        if self.kind in ("sunrise", "sunset"):
            rise, set_ = sun_times(now.astimezone(loc.tz).date(), loc.latitude, loc.longitude, loc.tz)
            base = rise if self.kind == "sunrise" else set_
            if base is None:
                return None
            return (base + timedelta(minutes=self.offset_minutes)).astimezone(loc.tz)
        if self.at is not None:
            return time_today(self.at, now, loc.tz)
        return None

    def label(self) -> str:
        if self.kind in ("sunrise", "sunset"):
            text = self.kind.capitalize()
            if self.offset_minutes:
                text += f"+{self.offset_minutes} min" if self.offset_minutes > 0 else f"{self.offset_minutes} min"
            return text
        return self.at.strftime("%H:%M") if self.at else ""


@dataclass(frozen=True)
class TimeWindow:
    start: Optional[TimePoint] = None
    end: Optional[TimePoint] = None
    end_adjust_minutes: int = 0

    @property
    def configured(self) -> bool:
        return self.start is not None or self.end is not None

    def bounds(
        self, now: datetime, loc: Location, adjust: bool = True
    ) -> tuple[Optional[datetime], Optional[datetime]]:
        start = self.start.resolve(now, loc) if self.start else None
        stop = self.end.resolve(now, loc) if self.end else None
        if adjust and stop is not None and self.end_adjust_minutes:
            stop = stop - timedelta(minutes=self.end_adjust_minutes)
        return start, stop

    def contains(self, now: datetime, loc: Location) -> bool:
        # Open-ended windows impose nothing
        start, stop = self.bounds(now, loc)
        if start is None or stop is None:
            return True
        return time_of_day_is_between(start, stop, now, loc.tz)

    def label(self) -> str:
        start = self.start.label() if self.start else ""
        finish = self.end.label() if self.end else ""
        return f"{start} to {finish}" if start and finish else ""


@dataclass(frozen=True)
class Restrictions:
    modes: frozenset[str] = field(default_factory=frozenset)
    days: frozenset[str] = field(default_factory=frozenset)
    window: TimeWindow = field(default_factory=TimeWindow)

    def mode_ok(self, mode: str) -> bool:
        return not self.modes or mode in self.modes

    def days_ok(self, now: datetime, loc: Location) -> bool:
        return not self.days or weekday_name(now, loc.tz) in self.days

    def time_ok(self, now: datetime, loc: Location) -> bool:
        return self.window.contains(now, loc)

    def all_ok(self, mode: str, now: datetime, loc: Location) -> bool:
        return self.mode_ok(mode) and self.days_ok(now, loc) and self.time_ok(now, loc)
