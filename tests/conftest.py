"""Shared fixtures: a controllable clock, a manual scheduler, and a hub wired to both."""

from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from homehub.domain.schedule import Location
from homehub.drivers.devices_sim import SimulatedNotifier, SimulatedSwitch
from homehub.services.hub import Hub
from homehub.storage.memory_store import MemoryStateStore

NY = ZoneInfo("America/New_York")

# Monday evening
START = datetime(2026, 6, 15, 20, 0, tzinfo=NY)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeScheduler:
    """Records jobs instead of arming timers; ``advance`` fires them in due order."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.jobs: dict = {}

    def run_in(self, seconds, handler, name=None, overwrite=True):
        key = name or handler.__name__
        if key in self.jobs and not overwrite:
            return
        self.jobs[key] = (self.clock.now + timedelta(seconds=max(0.0, seconds)), handler, None)

    def run_once(self, at, handler, name=None):
        self.run_in((at - self.clock.now).total_seconds(), handler, name=name)

    def run_every(self, seconds, handler, name=None):
        key = name or handler.__name__
        self.jobs[key] = (self.clock.now + timedelta(seconds=seconds), handler, seconds)

    def unschedule(self, name=None):
        if name is None:
            self.jobs.clear()
        else:
            self.jobs.pop(name, None)

    def is_scheduled(self, name):
        return name in self.jobs

    def next_run(self, name) -> Optional[datetime]:
        job = self.jobs.get(name)
        return job[0] if job else None

    def delay(self, name) -> Optional[float]:
        at = self.next_run(name)
        return None if at is None else (at - self.clock.now).total_seconds()

    async def advance(self, seconds: float, hub: Optional[Hub] = None) -> None:
        target = self.clock.now + timedelta(seconds=seconds)
        while True:
            due = sorted((at, key) for key, (at, _, _) in self.jobs.items() if at <= target)
            if not due:
                break
            at, key = due[0]
            _, handler, interval = self.jobs.pop(key)
            self.clock.now = max(self.clock.now, at)
            if interval:
                self.jobs[key] = (at + timedelta(seconds=interval), handler, interval)
            await handler()
            if hub is not None:
                await hub.drain()
        self.clock.now = target


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def scheduler(clock) -> FakeScheduler:
    return FakeScheduler(clock)


@pytest.fixture
def hub(clock) -> Hub:
    return Hub(mode="Home", clock=clock)


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def location() -> Location:
    return Location(tz=NY, latitude=40.7128, longitude=-74.0060)


def add_switches(hub: Hub, count: int, prefix: str = "light") -> list[SimulatedSwitch]:
    out = []
    for i in range(1, count + 1):
        out.append(hub.register(SimulatedSwitch(f"{prefix}{i}", f"Light {i}")))
    return out


def add_notifier(hub: Hub, device_id: str = "phone") -> SimulatedNotifier:
    return hub.register(SimulatedNotifier(device_id, "Phone"))
