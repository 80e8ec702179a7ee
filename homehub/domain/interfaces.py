from __future__ import annotations
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable
from .models import DeviceEvent


@runtime_checkable
class Device(Protocol):
    device_id: str
    display_name: str

    def current_value(self, attribute: str) -> Any:
        ...


@runtime_checkable
class Switch(Device, Protocol):
    @property
    def switch_state(self) -> Optional[str]:
        ...

    async def on(self) -> None:
        ...

    async def off(self) -> None:
        ...


@runtime_checkable
class Lock(Device, Protocol):
    @property
    def lock_state(self) -> Optional[str]:
        ...

    async def lock(self) -> None:
        ...

    async def unlock(self) -> None:
        ...


@runtime_checkable
class ContactSensor(Device, Protocol):
    @property
    def contact_state(self) -> Optional[str]:
        ...


@runtime_checkable
class Notifier(Device, Protocol):
    async def notify(self, message: str) -> None:
        ...


@runtime_checkable
class DewPointDisplay(Device, Protocol):
    async def set_dew_point(self, value: int) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    def run_in(self, seconds: float, handler: Callable[[], Awaitable[None]], name: Optional[str] = None,
               overwrite: bool = True) -> None:
        ...

    def run_once(self, at: datetime, handler: Callable[[], Awaitable[None]], name: Optional[str] = None) -> None:
        ...

    def run_every(self, seconds: float, handler: Callable[[], Awaitable[None]], name: Optional[str] = None) -> None:
        ...

    def unschedule(self, name: Optional[str] = None) -> None:
        ...

    def is_scheduled(self, name: str) -> bool:
        ...

    def next_run(self, name: str) -> Optional[datetime]:
        ...


@runtime_checkable
class StateStore(Protocol):
    async def load_state(self, key: str) -> Optional[dict]:
        ...

    async def save_state(self, key: str, value: dict) -> None:
        ...

    async def delete_state(self, key: str) -> None:
        ...


@runtime_checkable
class EventRecorder(Protocol):
    async def insert_event(self, event: DeviceEvent) -> None:
        ...

    async def events_between(self, device_id: str, start: datetime, end: datetime, limit: int) -> list[DeviceEvent]:
        ...
