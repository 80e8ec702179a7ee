from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal, List

from ..core.timeutil import WEEKDAYS, parse_hhmm
from ..domain.analyzer import AnalyzerConfig
from ..domain.autolock import AutoLockConfig
from ..domain.dewpoint import DewPointConfig
from ..domain.schedule import Restrictions, TimePoint, TimeWindow
from ..domain.vacation import WINDOW_END_ADJUST_MINUTES, VacationConfig


# --- request bodies ---
class ModeRequest(BaseModel):
    mode: str = Field(min_length=1)


class ContactRequest(BaseModel):
    value: Literal["open", "closed"]


class AnalyzerRequest(BaseModel):
    start: str  # "YYYY-MM-DD HH:MM", local time
    end: str
    devices: Optional[List[str]] = None


class UpdateScheduleRequest(BaseModel):
    run_test: bool = False


# --- apps file ---
def _check_hhmm(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        t = parse_hhmm(v)
    except ValueError:
        raise ValueError(f"Invalid time format: {v}, expected HH:MM")
    return t.strftime("%H:%M")


def _check_days(v: List[str]) -> List[str]:
    bad = [d for d in v if d not in WEEKDAYS]
    if bad:
        raise ValueError(f"Unknown weekday(s): {', '.join(bad)}")
    return v


class DeviceSpec(BaseModel):
    id: str
    kind: Literal["switch", "dimmer", "lock", "contact", "notifier", "sonoff", "climate"]
    name: str = ""
    initial: Optional[str] = None
    ip: str = ""
    port: Optional[int] = None
    sonoff_id: str = ""


class TimePointSpec(BaseModel):
    kind: Literal["time", "sunrise", "sunset"] = "time"
    at: Optional[str] = None  # "HH:MM" for kind == "time"
    offset_minutes: int = 0

    @field_validator("at")
    @classmethod
    def check_at(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    def to_domain(self) -> TimePoint:
        return TimePoint(
            kind=self.kind,
            at=parse_hhmm(self.at) if self.at else None,
            offset_minutes=self.offset_minutes,
        )


class VacationSpec(BaseModel):
    id: str
    label: str = "Vacation Lighting"
    switches: List[str] = []
    anchors: List[str] = []
    modes: List[str] = []
    vacation_switch: Optional[str] = None
    frequency_minutes: Optional[int] = None
    number_active: Optional[int] = None
    false_alarm_threshold: Optional[float] = None
    days: List[str] = []
    start: Optional[TimePointSpec] = None
    end: Optional[TimePointSpec] = None
    summary_time: Optional[str] = None
    notifiers: List[str] = []
    debug: bool = True

    @field_validator("days")
    @classmethod
    def check_days(cls, v: List[str]) -> List[str]:
        return _check_days(v)

    @field_validator("summary_time")
    @classmethod
    def check_summary_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    def to_config(self) -> VacationConfig:
        return VacationConfig(
            app_id=self.id,
            label=self.label,
            switches=tuple(self.switches),
            anchors=tuple(self.anchors),
            modes=frozenset(self.modes),
            vacation_switch=self.vacation_switch,
            frequency_minutes=self.frequency_minutes,
            number_active=self.number_active,
            false_alarm_threshold=self.false_alarm_threshold,
            days=frozenset(self.days),
            window=TimeWindow(
                start=self.start.to_domain() if self.start else None,
                end=self.end.to_domain() if self.end else None,
                end_adjust_minutes=WINDOW_END_ADJUST_MINUTES,
            ),
            summary_time=parse_hhmm(self.summary_time) if self.summary_time else None,
            notifiers=tuple(self.notifiers),
            debug=self.debug,
        )


class AutoLockSpec(BaseModel):
    id: str
    name: str
    lock: str
    duration: int = Field(default=5, ge=1)
    use_seconds: bool = False
    contact_sensor: Optional[str] = None
    disable_switches: List[str] = []
    activation_switch: Optional[str] = None
    modes: List[str] = []
    days: List[str] = []
    start: Optional[str] = None
    end: Optional[str] = None
    debug: bool = False

    @field_validator("days")
    @classmethod
    def check_days(cls, v: List[str]) -> List[str]:
        return _check_days(v)

    @field_validator("start", "end")
    @classmethod
    def check_times(cls, v: Optional[str]) -> Optional[str]:
        return _check_hhmm(v)

    def to_config(self) -> AutoLockConfig:
        window = TimeWindow(
            start=TimePoint(at=parse_hhmm(self.start)) if self.start else None,
            end=TimePoint(at=parse_hhmm(self.end)) if self.end else None,
        )
        return AutoLockConfig(
            app_id=self.id,
            name=self.name,
            lock=self.lock,
            duration=self.duration,
            use_seconds=self.use_seconds,
            contact_sensor=self.contact_sensor,
            disable_switches=tuple(self.disable_switches),
            activation_switch=self.activation_switch,
            restrictions=Restrictions(modes=frozenset(self.modes), days=frozenset(self.days), window=window),
            debug=self.debug,
        )


class DewPointSpec(BaseModel):
    id: str
    name: str
    temperature_sensor: str
    humidity_sensor: str

    def to_config(self) -> DewPointConfig:
        return DewPointConfig(
            app_id=self.id,
            name=self.name,
            temperature_sensor=self.temperature_sensor,
            humidity_sensor=self.humidity_sensor,
        )


class AnalyzerSpec(BaseModel):
    id: str = "analyzer"
    label: str = "Vacation Lighting Analyzer"
    devices: List[str] = []

    def to_config(self) -> AnalyzerConfig:
        return AnalyzerConfig(app_id=self.id, label=self.label, devices=tuple(self.devices))


class AppsFile(BaseModel):
    suite_label: str = "Vacation Lighting Simulator Suite"
    devices: List[DeviceSpec] = []
    vacation: List[VacationSpec] = []
    autolock: List[AutoLockSpec] = []
    dewpoint: List[DewPointSpec] = []
    analyzer: Optional[AnalyzerSpec] = None
