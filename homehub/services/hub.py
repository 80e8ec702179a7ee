from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ..core.timeutil import now_utc
from ..domain.interfaces import EventRecorder
from ..domain.models import DeviceEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DeviceEvent], Awaitable[None]]

LOCATION_ID = "location"


@dataclass(frozen=True)
class Subscription:
    device_id: str
    attribute: str
    handler: EventHandler
    value: Optional[Any] = None

    def matches(self, event: DeviceEvent) -> bool:
        if event.device_id != self.device_id or event.name != self.attribute:
            return False
        return self.value is None or event.value == self.value


class Hub:
    """
    In-process stand-in for the hub runtime.
    Responsible for: device registry, child devices, location mode,
    event subscriptions and delivery, event history.
    """

    def __init__(
        self,
        mode: str = "Home",
        recorder: Optional[EventRecorder] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._mode = mode
        self._recorder = recorder
        self._clock = clock
        self._devices: dict[str, Any] = {}
        self._children: dict[str, set[str]] = {}
        self._subs: list[Subscription] = []
        self._pending: set[asyncio.Task] = set()

    # --- clock / mode ---
    def now(self) -> datetime:
        return self._clock()

    @property
    def mode(self) -> str:
        return self._mode

    async def set_mode(self, mode: str) -> None:
        if mode == self._mode:
            return
        logger.info("Location mode %s -> %s", self._mode, mode)
        self._mode = mode
        await self.publish(DeviceEvent(ts_utc=self.now(), device_id=LOCATION_ID, name="mode", value=mode,
                                       display_name="Location"))

    # --- devices ---
    def register(self, device: Any) -> Any:
        if device.device_id in self._devices:
            raise ValueError(f"Duplicate device id: {device.device_id}")
        self._devices[device.device_id] = device
        attach = getattr(device, "attach", None)
        if attach is not None:
            attach(self)
        return device

    def get(self, device_id: str) -> Optional[Any]:
        return self._devices.get(device_id)

    def devices(self) -> list[Any]:
        return list(self._devices.values())

    def add_child_device(self, parent_id: str, device: Any) -> Any:
        self.register(device)
        self._children.setdefault(parent_id, set()).add(device.device_id)
        logger.info("Added child device %s (%s) for %s", device.device_id, device.display_name, parent_id)
        return device

    def get_child_device(self, parent_id: str, device_id: str) -> Optional[Any]:
        if device_id not in self._children.get(parent_id, set()):
            return None
        return self._devices.get(device_id)

    # --- events ---
    def subscribe(self, device_id: str, attribute: str, handler: EventHandler, value: Optional[Any] = None) -> Subscription:
        sub = Subscription(device_id=device_id, attribute=attribute, handler=handler, value=value)
        self._subs.append(sub)
        return sub

    def subscribe_mode(self, handler: EventHandler) -> Subscription:
        return self.subscribe(LOCATION_ID, "mode", handler)

    def unsubscribe(self, sub: Subscription) -> None:
        try:
            self._subs.remove(sub)
        except ValueError:
            pass

    async def publish(self, event: DeviceEvent) -> None:
        if self._recorder is not None:
            try:
                await self._recorder.insert_event(event)
            except Exception:
                logger.warning("Failed to record event %s.%s", event.device_id, event.name, exc_info=True)

        for sub in list(self._subs):
            if sub.matches(event):
                task = asyncio.get_running_loop().create_task(self._deliver(sub, event))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every dispatched handler (and any it triggered) finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def events_between(self, device_id: str, start: datetime, end: datetime, limit: int = 1000) -> list[DeviceEvent]:
        if self._recorder is None:
            return []
        return await self._recorder.events_between(device_id, start, end, limit)

    async def _deliver(self, sub: Subscription, event: DeviceEvent) -> None:
        try:
            await sub.handler(event)
        except Exception:
            logger.exception("Handler for %s.%s failed", event.device_id, event.name)
