from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..core.log import app_logger
from .interfaces import ContactSensor, Lock, Scheduler
from .models import DeviceEvent
from .schedule import Location, Restrictions

logger = logging.getLogger(__name__)

DEBUG_AUTO_OFF_SECONDS = 1800

STATUS_LOCKED = "(Locked)"
STATUS_UNLOCKED = "(Unlocked)"
STATUS_PAUSED = "(Paused)"
STATUS_DISABLED = "(Disabled)"

_LABEL_COLORS = {
    STATUS_DISABLED: "red",
    STATUS_PAUSED: "red",
    STATUS_LOCKED: "green",
    STATUS_UNLOCKED: "orange",
}


@dataclass(frozen=True)
class AutoLockConfig:
    app_id: str
    name: str
    lock: str
    duration: int = 5
    use_seconds: bool = False
    contact_sensor: Optional[str] = None
    disable_switches: tuple[str, ...] = ()
    activation_switch: Optional[str] = None
    restrictions: Restrictions = field(default_factory=Restrictions)
    debug: bool = False

    @property
    def delay_seconds(self) -> int:
        return self.duration if self.use_seconds else self.duration * 60


class AutoLock:
    """
    Re-locks one door a fixed delay after it is unlocked, never while the door is open.
    Responsible for: the pending lock job, disable/activation switches,
    pause/resume, restrictions, status label.
    """

    def __init__(self, config: AutoLockConfig, hub, scheduler: Scheduler, location: Location) -> None:
        self.config = config
        self._hub = hub
        self._scheduler = scheduler
        self._loc = location
        self._subs: list = []
        self._lock = asyncio.Lock()
        self.paused = False
        self.disabled = False
        self.debug = config.debug
        self._log = app_logger(__name__, config.app_id, config.debug)

    # --- lifecycle ---
    async def initialize(self) -> None:
        async with self._lock:
            self._initialize()

    def _initialize(self) -> None:
        cfg = self.config
        self._log.debug("Settings: %s", cfg)
        self._subs.append(self._hub.subscribe(cfg.lock, "lock", self.handle_lock))
        if cfg.contact_sensor:
            self._subs.append(self._hub.subscribe(cfg.contact_sensor, "contact", self.handle_contact))
        for sw in cfg.disable_switches:
            self._subs.append(self._hub.subscribe(sw, "switch", self.handle_disable_switch))
        if cfg.activation_switch:
            self._subs.append(self._hub.subscribe(cfg.activation_switch, "switch", self.handle_activation))
        self._refresh_disabled()
        if self.debug:
            self._scheduler.run_in(DEBUG_AUTO_OFF_SECONDS, self.debug_off, name="debug_off")
            self._log.debug("Debug logging disabling in 30 minutes.")

    async def update(self, config: AutoLockConfig) -> None:
        async with self._lock:
            self._teardown()
            self.config = config
            self.debug = config.debug
            self._log = app_logger(__name__, config.app_id, config.debug)
            self._initialize()

    async def pause(self) -> None:
        async with self._lock:
            self.paused = True
            self._teardown()
            self._log.info("%s paused", self.config.name)

    async def resume(self) -> None:
        async with self._lock:
            self.paused = False
            self._teardown()
            self._initialize()
            self._log.info("%s resumed", self.config.name)

    def stop(self) -> None:
        self._teardown()

    def _teardown(self) -> None:
        self._scheduler.unschedule()
        for sub in self._subs:
            self._hub.unsubscribe(sub)
        self._subs = []

    # --- gating ---
    def _refresh_disabled(self) -> None:
        states = [self._switch_state(sw) for sw in self.config.disable_switches]
        self.disabled = any(s == "off" for s in states)

    def _switch_state(self, device_id: str) -> Optional[str]:
        dev = self._hub.get(device_id)
        return dev.switch_state if dev is not None else None

    def active(self) -> bool:
        if self.paused or self.disabled:
            return False
        return self.config.restrictions.all_ok(self._hub.mode, self._hub.now(), self._loc)

    # --- handlers ---
    async def handle_lock(self, evt: DeviceEvent) -> None:
        async with self._lock:
            if not self.active():
                self._log.debug("Ignoring lock %s (paused, disabled or restricted)", evt.value)
                return
            self._log.debug("Lock %s is %s", evt.name, evt.value)
            if evt.value == "locked":
                self._log.debug("Cancelling previous lock task...")
                self._scheduler.unschedule("lock_door")
            else:
                self._log.debug("Re-arming lock in %ds", self.config.delay_seconds)
                self._arm()

    async def handle_contact(self, evt: DeviceEvent) -> None:
        async with self._lock:
            if not self.active():
                return
            if evt.value == "open":
                self._log.debug("Door open reset previous lock task...")
                self._arm()
            else:
                self._log.debug("Door Closed")

    async def handle_disable_switch(self, evt: DeviceEvent) -> None:
        async with self._lock:
            self._refresh_disabled()
            self._log.info("%s is %s", self.config.name, "disabled" if self.disabled else "enabled")

    async def handle_activation(self, evt: DeviceEvent) -> None:
        async with self._lock:
            if not self.active():
                self._log.debug("Activation switch ignored: paused or disabled")
                return
            if evt.value == "on":
                self._log.debug("Locking the door now")
                await self._lock_door()
            elif evt.value == "off":
                self._log.debug("Unlocking the door now")
                self._scheduler.unschedule("lock_door")
                dev = self._hub.get(self.config.lock)
                if isinstance(dev, Lock) and dev.lock_state == "locked":
                    await dev.unlock()

    async def lock_door(self) -> None:
        async with self._lock:
            await self._lock_door()

    async def debug_off(self) -> None:
        self.debug = False
        self._log.setLevel(logging.NOTSET)
        self._log.info("%s: Debug logging auto disabled.", self.config.name)

    def _arm(self) -> None:
        self._scheduler.run_in(self.config.delay_seconds, self.lock_door, name="lock_door")

    async def _lock_door(self) -> None:
        contact = None
        if self.config.contact_sensor:
            sensor = self._hub.get(self.config.contact_sensor)
            contact = sensor.contact_state if isinstance(sensor, ContactSensor) else None
        if not self.config.contact_sensor or contact == "closed":
            dev = self._hub.get(self.config.lock)
            if not isinstance(dev, Lock):
                self._log.error("Lock %s not found", self.config.lock)
                return
            await dev.lock()
        elif contact == "open":
            self._log.debug("Door open will try again in %ds", self.config.delay_seconds)
            self._arm()

    # --- status ---
    @property
    def status(self) -> str:
        if self.disabled:
            return STATUS_DISABLED
        if self.paused:
            return STATUS_PAUSED
        dev = self._hub.get(self.config.lock)
        state = dev.lock_state if dev is not None else None
        if state == "locked":
            return STATUS_LOCKED
        if state == "unlocked":
            return STATUS_UNLOCKED
        return ""

    @property
    def label(self) -> str:
        status = self.status
        return f"{self.config.name} <span style=color:{_LABEL_COLORS.get(status, 'white')}>{status}</span>"

    def snapshot(self) -> dict:
        return {
            "app_id": self.config.app_id,
            "name": self.config.name,
            "status": self.status,
            "label": self.label,
            "paused": self.paused,
            "disabled": self.disabled,
            "lock_pending": self._scheduler.is_scheduled("lock_door"),
        }


class AutoLockManager:
    """Parent app: owns the AutoLock children, one scheduler each."""

    def __init__(self, hub, scheduler_factory: Callable[[str], Scheduler], location: Location) -> None:
        self._hub = hub
        self._scheduler_factory = scheduler_factory
        self._loc = location
        self._children: dict[str, AutoLock] = {}
        self._schedulers: dict[str, Scheduler] = {}

    async def create(self, config: AutoLockConfig) -> AutoLock:
        if config.app_id in self._children:
            raise ValueError(f"Duplicate auto lock id: {config.app_id}")
        scheduler = self._scheduler_factory(f"autolock:{config.app_id}")
        child = AutoLock(config, self._hub, scheduler, self._loc)
        await child.initialize()
        self._children[config.app_id] = child
        self._schedulers[config.app_id] = scheduler
        logger.info("Created auto lock %s (%s)", config.app_id, config.name)
        return child

    def get(self, app_id: str) -> Optional[AutoLock]:
        return self._children.get(app_id)

    def children(self) -> list[AutoLock]:
        return list(self._children.values())

    async def remove(self, app_id: str) -> None:
        child = self._children.pop(app_id, None)
        if child is None:
            raise KeyError(app_id)
        child.stop()
        scheduler = self._schedulers.pop(app_id)
        shutdown = getattr(scheduler, "shutdown", None)
        if shutdown is not None:
            await shutdown()
        logger.info("Removed auto lock %s", app_id)

    async def shutdown(self) -> None:
        for app_id in list(self._children):
            await self.remove(app_id)
