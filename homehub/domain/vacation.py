from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional

from ..core.log import app_logger
from ..core.timeutil import next_occurrence, time_today
from .interfaces import Notifier, Scheduler, StateStore, Switch
from .models import DeviceEvent
from .schedule import Location, Restrictions, TimeWindow
from .summary import active_lights_warning, build_summary_message, next_cycle_status

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY = 15
MIN_FREQUENCY = 5
MAX_FREQUENCY = 180
DEFAULT_FALSE_ALARM_MINUTES = 2
OFF_TICK_SECONDS = 60
FAILSAFE_EXTRA_SECONDS = 600
NEXT_CYCLE_JITTER_MAX = 13
WINDOW_END_ADJUST_MINUTES = 2


def clamp_frequency(value: Optional[int]) -> int:
    if value is None:
        return DEFAULT_FREQUENCY
    return max(MIN_FREQUENCY, min(MAX_FREQUENCY, int(value)))


def clamp_active_count(requested: Optional[int], available: int) -> int:
    if available <= 0:
        return 0
    n = 1 if requested is None else int(requested)
    return max(1, min(n, available))


def first_check_delay_seconds(threshold_minutes: Optional[float]) -> int:
    minutes = DEFAULT_FALSE_ALARM_MINUTES if threshold_minutes is None else threshold_minutes
    return max(1, min(86400, int(round(minutes * 60))))


def light_on_duration(frequency: Optional[int], rng: random.Random) -> int:
    """Minutes a randomized light stays on: about the cycle length, +/- 20%."""
    base = clamp_frequency(frequency)
    jitter = max(1, round(base * 0.2))
    minutes = rng.randint(base - jitter, base + jitter)
    return max(MIN_FREQUENCY, min(MAX_FREQUENCY, minutes))


@dataclass(frozen=True)
class VacationConfig:
    app_id: str
    label: str = "Vacation Lighting"
    switches: tuple[str, ...] = ()
    anchors: tuple[str, ...] = ()
    modes: frozenset[str] = field(default_factory=frozenset)
    vacation_switch: Optional[str] = None
    frequency_minutes: Optional[int] = None
    number_active: Optional[int] = None
    false_alarm_threshold: Optional[float] = None
    days: frozenset[str] = field(default_factory=frozenset)
    window: TimeWindow = field(default_factory=lambda: TimeWindow(end_adjust_minutes=WINDOW_END_ADJUST_MINUTES))
    summary_time: Optional[time] = None
    notifiers: tuple[str, ...] = ()
    debug: bool = True

    @property
    def restrictions(self) -> Restrictions:
        return Restrictions(modes=self.modes, days=self.days, window=self.window)

    @property
    def configured(self) -> bool:
        return bool(self.switches) and (bool(self.modes) or bool(self.vacation_switch))


@dataclass
class VacationState:
    running: bool = False
    sched_running: bool = False
    startend_running: bool = False
    cycles: int = 0
    lights_on: int = 0
    lights_off: int = 0
    on_names: list[str] = field(default_factory=list)
    off_names: list[str] = field(default_factory=list)
    # device id -> epoch seconds when it is due off
    light_schedule: dict[str, float] = field(default_factory=dict)
    off_tick_scheduled: bool = False
    last_update: Optional[float] = None
    next_cycle_at: Optional[float] = None
    last_cycle_at: Optional[float] = None
    last_cycle_randomized: list[str] = field(default_factory=list)
    last_cycle_anchors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VacationState":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def reset_counters(self) -> None:
        self.cycles = 0
        self.lights_on = 0
        self.lights_off = 0
        self.on_names = []
        self.off_names = []


class VacationLighting:
    """
    Presence simulation for one schedule.
    Responsible for: arming from mode/override switch, gated randomized
    cycles, the light-off queue and its tick, teardown, daily/test summaries.
    Public entry points serialize on one lock; helpers assume it is held.
    """

    def __init__(
        self,
        config: VacationConfig,
        hub,
        scheduler: Scheduler,
        store: StateStore,
        location: Location,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.state = VacationState()
        self._hub = hub
        self._scheduler = scheduler
        self._store = store
        self._loc = location
        self._rng = rng or random.Random()
        self._subs: list = []
        self._lock = asyncio.Lock()
        self._log = app_logger(__name__, config.app_id, config.debug)

    @property
    def state_key(self) -> str:
        return f"vacation:{self.config.app_id}"

    # --- device lookups ---
    def _lookup(self, ids, kind) -> list:
        out = []
        for device_id in ids:
            dev = self._hub.get(device_id)
            if dev is None or not isinstance(dev, kind):
                self._log.warning("Device %s unavailable or not a %s", device_id, kind.__name__)
                continue
            out.append(dev)
        return out

    def switches(self) -> list[Switch]:
        return self._lookup(self.config.switches, Switch)

    def anchors(self) -> list[Switch]:
        return self._lookup(self.config.anchors, Switch)

    def notifiers(self) -> list[Notifier]:
        return self._lookup(self.config.notifiers, Notifier)

    def vacation_switch_state(self) -> Optional[str]:
        if not self.config.vacation_switch:
            return None
        dev = self._hub.get(self.config.vacation_switch)
        return dev.switch_state if dev is not None else None

    # --- gating ---
    def now(self) -> datetime:
        return self._hub.now()

    def mode_ok(self) -> bool:
        return self.config.restrictions.mode_ok(self._hub.mode)

    def vacation_switch_ok(self) -> bool:
        return not self.config.vacation_switch or self.vacation_switch_state() == "on"

    def arm_ok(self) -> bool:
        return self.mode_ok() and self.vacation_switch_ok()

    def days_ok(self) -> bool:
        return self.config.restrictions.days_ok(self.now(), self._loc)

    def time_ok(self) -> bool:
        return self.config.restrictions.time_ok(self.now(), self._loc)

    def all_ok(self) -> bool:
        return self.arm_ok() and self.days_ok() and self.time_ok()

    # --- lifecycle ---
    async def restore(self) -> None:
        data = await self._store.load_state(self.state_key)
        if not data:
            return
        async with self._lock:
            self.state = VacationState.from_dict(data)
            # Timers do not survive a restart
            self.state.off_tick_scheduled = False
            if self.state.light_schedule:
                self._log.info("Restored %d queued light off(s)", len(self.state.light_schedule))
                self._ensure_off_tick()

    async def initialize(self) -> None:
        async with self._lock:
            await self._initialize()

    async def update(self, config: VacationConfig, run_test: bool = False) -> None:
        async with self._lock:
            self._unsubscribe()
            await self._clear_state(turn_off=True)
            self.config = config
            self._log = app_logger(__name__, config.app_id, config.debug)
            await self._initialize()
        if run_test:
            await self.run_test_cycle()

    async def stop(self) -> None:
        """Detach from the hub without touching any lights."""
        async with self._lock:
            self._unsubscribe()
            self._scheduler.unschedule()
            await self._save()

    async def _initialize(self) -> None:
        self._log.debug("Initializing with %s", self.config)
        if self.config.modes:
            self._subs.append(self._hub.subscribe_mode(self.handle_arm_event))
        if self.config.vacation_switch:
            self._subs.append(self._hub.subscribe(self.config.vacation_switch, "switch", self.handle_arm_event))

        if self.arm_ok():
            self._sched_start_end()
            self._set_sched()
            self._schedule_summary()
        else:
            self.state.sched_running = False
            self.state.startend_running = False
            self._log.debug("Not armed; waiting for mode or vacation switch")
        await self._save()

    def _unsubscribe(self) -> None:
        for sub in self._subs:
            self._hub.unsubscribe(sub)
        self._subs = []

    # --- event handlers / scheduled jobs ---
    async def handle_arm_event(self, evt: DeviceEvent) -> None:
        async with self._lock:
            self._log.debug("%s %s -> %s", evt.device_id, evt.name, evt.value)
            if not self.arm_ok():
                self._log.info("Disarmed (%s %s); clearing state", evt.name, evt.value)
                await self._clear_state(turn_off=True)
            else:
                self.state.sched_running = False
                self.state.startend_running = False
                self._sched_start_end()
                self._set_sched()
                self._schedule_summary()
            await self._save()

    async def init_check(self) -> None:
        async with self._lock:
            await self._schedule_check()

    async def failsafe(self) -> None:
        async with self._lock:
            self._log.debug("Failsafe check")
            await self._schedule_check()

    async def start_time_check(self) -> None:
        async with self._lock:
            self.state.startend_running = False
            if self.arm_ok():
                self._log.debug("Start time reached")
                self.state.sched_running = False
                self._set_sched()
                self._sched_start_end()
            await self._save()

    async def end_time_check(self) -> None:
        async with self._lock:
            self.state.startend_running = False
            if self.arm_ok():
                self._log.debug("End time reached")
                await self._schedule_check()
            else:
                await self._clear_state(turn_off=True)
                await self._save()

    async def off_tick(self) -> None:
        async with self._lock:
            await self._off_tick()
            await self._save()

    async def daily_summary(self) -> None:
        async with self._lock:
            s = self.state
            msg = build_summary_message("daily", s.cycles, s.lights_on, s.lights_off, s.on_names, s.off_names)
            notifiers = self.notifiers()
            if notifiers and self.arm_ok():
                await self._notify(notifiers, msg)
            else:
                self._log.debug("Daily summary not sent (armed=%s, notifiers=%d)", self.arm_ok(), len(notifiers))
            s.reset_counters()
            if self.arm_ok():
                self._schedule_summary()
            await self._save()

    async def run_test_cycle(self) -> None:
        async with self._lock:
            if not self.switches():
                self._log.warning("Test cycle skipped: no switches configured or available")
                return
            self._log.info("Running test cycle")
            self.state.running = True
            await self._do_cycle_core()
            names = self.state.last_cycle_randomized + self.state.last_cycle_anchors
            msg = build_summary_message("test", 1, len(names), 0, names)
            notifiers = self.notifiers()
            if notifiers:
                await self._notify(notifiers, msg)
            self.state.running = False
            self.state.sched_running = False
            await self._save()

    async def clear_state(self, turn_off: bool = True) -> None:
        async with self._lock:
            await self._clear_state(turn_off)
            await self._save()

    # --- core ---
    def _set_sched(self) -> None:
        self.state.sched_running = True
        delay = first_check_delay_seconds(self.config.false_alarm_threshold)
        self._log.debug("First check in %ds", delay)
        self._scheduler.run_in(delay, self.init_check, name="init_check")
        self.state.next_cycle_at = (self.now() + timedelta(seconds=delay)).timestamp()

    def _sched_start_end(self) -> None:
        now = self.now()
        # End check fires at the configured end; the window test uses the pulled-in end
        start, stop = self.config.window.bounds(now, self._loc, adjust=False)
        if start is not None:
            self._scheduler.run_once(next_occurrence(start, now), self.start_time_check, name="start_time_check")
            self.state.startend_running = True
        if stop is not None:
            self._scheduler.run_once(next_occurrence(stop, now), self.end_time_check, name="end_time_check")
            self.state.startend_running = True

    def _seconds_since_last_cycle(self, now: datetime) -> float:
        if self.state.last_update is None:
            return 100000.0
        return now.timestamp() - self.state.last_update

    async def _schedule_check(self) -> None:
        freq = clamp_frequency(self.config.frequency_minutes)
        now = self.now()
        since = self._seconds_since_last_cycle(now)
        armed = self.arm_ok()
        gated = armed and self.days_ok() and self.time_ok()

        if gated and since > (freq - 1) * 60:
            self.state.last_update = now.timestamp()
            self.state.running = True
            self.state.sched_running = True
            await self._do_cycle_core()
            next_sec = (freq + self._rng.randint(0, NEXT_CYCLE_JITTER_MAX)) * 60
            self._scheduler.run_in(next_sec, self.init_check, name="init_check")
            self._scheduler.run_in(next_sec + FAILSAFE_EXTRA_SECONDS, self.failsafe, name="failsafe")
            self.state.next_cycle_at = now.timestamp() + next_sec
            self._log.debug("Next cycle in %d min", next_sec // 60)
        elif gated:
            remaining = max(1.0, freq * 60 - since)
            self._scheduler.run_in(remaining, self.init_check, name="init_check")
            self.state.next_cycle_at = now.timestamp() + remaining
            self._log.debug("Too soon since last cycle; re-check in %.0fs", remaining)
        else:
            if self.state.running or self.state.sched_running or self.state.light_schedule:
                self._log.info("Outside schedule (%s); tearing down", "; ".join(self.why_not_running()))
                await self._clear_state(turn_off=True)
            if armed:
                self._schedule_resume()
                if not self._scheduler.is_scheduled("daily_summary"):
                    self._schedule_summary()

        if armed and not self.state.startend_running:
            self._sched_start_end()
        await self._save()

    def _schedule_resume(self) -> None:
        # Armed but gated by day or window: make sure something wakes us up again
        if self._scheduler.is_scheduled("start_time_check"):
            return
        if self.config.window.start is not None:
            self._sched_start_end()
            return
        local = self.now().astimezone(self._loc.tz)
        midnight = datetime.combine(local.date() + timedelta(days=1), time(0, 0), tzinfo=self._loc.tz)
        self._scheduler.run_once(midnight, self.init_check, name="init_check")
        self.state.next_cycle_at = midnight.timestamp()

    async def _do_cycle_core(self) -> None:
        eligible = self.switches()
        if not eligible:
            self._log.warning("No switches configured or available")
            return
        s = self.state
        s.cycles += 1
        count = clamp_active_count(self.config.number_active, len(eligible))
        chosen = self._rng.sample(eligible, count)

        randomized: list[str] = []
        for dev in chosen:
            if await self._turn_on(dev):
                randomized.append(dev.display_name)
                self._queue_off(dev)

        anchored: list[str] = []
        for dev in self.anchors():
            if await self._turn_on(dev):
                anchored.append(dev.display_name)

        s.last_cycle_randomized = randomized
        s.last_cycle_anchors = anchored
        s.last_cycle_at = self.now().timestamp()
        self._log.info("Cycle %d: on=%s anchors=%s", s.cycles, randomized, anchored)

    async def _turn_on(self, dev: Switch) -> bool:
        try:
            await dev.on()
        except Exception:
            self._log.warning("Failed to turn on %s", dev.display_name, exc_info=True)
            return False
        self.state.lights_on += 1
        if dev.display_name not in self.state.on_names:
            self.state.on_names.append(dev.display_name)
        return True

    async def _turn_off(self, dev: Switch, record: bool = True) -> bool:
        try:
            await dev.off()
        except Exception:
            self._log.warning("Failed to turn off %s", dev.display_name, exc_info=True)
            return False
        self.state.lights_off += 1
        if record and dev.display_name not in self.state.off_names:
            self.state.off_names.append(dev.display_name)
        return True

    def _queue_off(self, dev: Switch) -> None:
        minutes = light_on_duration(self.config.frequency_minutes, self._rng)
        self.state.light_schedule[dev.device_id] = self.now().timestamp() + minutes * 60
        self._log.debug("%s off in %d min", dev.display_name, minutes)
        self._ensure_off_tick()

    def _ensure_off_tick(self) -> None:
        if self.state.off_tick_scheduled and self._scheduler.is_scheduled("off_tick"):
            return
        self.state.off_tick_scheduled = True
        self._scheduler.run_in(OFF_TICK_SECONDS, self.off_tick, name="off_tick")

    async def _off_tick(self) -> None:
        queue = self.state.light_schedule
        if not queue:
            self.state.off_tick_scheduled = False
            return
        now_ts = self.now().timestamp()
        by_id = {dev.device_id: dev for dev in self.switches()}
        for device_id in [d for d, due in queue.items() if due <= now_ts]:
            dev = by_id.get(device_id)
            if dev is not None:
                await self._turn_off(dev)
            queue.pop(device_id, None)
        if queue:
            self.state.off_tick_scheduled = True
            self._scheduler.run_in(OFF_TICK_SECONDS, self.off_tick, name="off_tick")
        else:
            self.state.off_tick_scheduled = False

    async def _clear_state(self, turn_off: bool) -> None:
        s = self.state
        if turn_off and (s.running or s.light_schedule):
            by_id = {dev.device_id: dev for dev in self.switches()}
            for device_id in list(s.light_schedule):
                dev = by_id.get(device_id)
                if dev is not None:
                    await self._turn_off(dev, record=False)
            s.light_schedule = {}
            for dev in self.anchors():
                await self._turn_off(dev, record=False)
            self._log.info("Turned off queued and anchor lights")
        s.running = False
        s.sched_running = False
        s.startend_running = False
        s.off_tick_scheduled = False
        s.last_update = None
        s.next_cycle_at = None
        self._scheduler.unschedule()
        if s.light_schedule:
            self._ensure_off_tick()

    def _schedule_summary(self) -> None:
        self._scheduler.unschedule("daily_summary")
        if self.config.summary_time is None:
            self._log.debug("No summary time configured")
            return
        now = self.now()
        at = next_occurrence(time_today(self.config.summary_time, now, self._loc.tz), now)
        self._scheduler.run_once(at, self.daily_summary, name="daily_summary")

    async def _notify(self, notifiers: list[Notifier], message: str) -> None:
        for n in notifiers:
            try:
                await n.notify(message)
            except Exception:
                self._log.warning("Notification via %s failed", n.display_name, exc_info=True)

    async def _save(self) -> None:
        try:
            await self._store.save_state(self.state_key, self.state.to_dict())
        except Exception:
            self._log.warning("Failed to persist state", exc_info=True)

    # --- status ---
    def why_not_running(self) -> list[str]:
        reasons = []
        if not self.mode_ok():
            reasons.append(f"mode {self._hub.mode} is not an allowed mode")
        if not self.vacation_switch_ok():
            reasons.append("vacation switch is off")
        if not self.days_ok():
            reasons.append("today is not an allowed day")
        if not self.time_ok():
            reasons.append("outside the time window")
        if not self.config.switches:
            reasons.append("no lights configured")
        return reasons

    def status_text(self) -> str:
        cfg, s = self.config, self.state
        mode = self._hub.mode
        if not cfg.configured:
            return (
                "Status: 🔴 Not fully configured.\n"
                f"Current mode: {mode}\n"
                "Configure Modes and/or a Vacation switch plus your lights to enable vacation lighting."
            )
        if s.running or s.light_schedule:
            head = "Status: ✅ Active (simulating occupancy)"
        elif self.arm_ok():
            head = "Status: 🟢 Armed (waiting for the time window)"
        else:
            head = "Status: 🟡 Idle (waiting for trigger)"

        lines = [head, f"Current mode: {mode}"]
        if cfg.vacation_switch:
            lines.append(f"Vacation switch: {self.vacation_switch_state() or 'unknown'}")
        window = cfg.window.label()
        if window:
            lines.append(f"Time window: {window}")
        if cfg.days:
            lines.append("Days: " + ", ".join(sorted(cfg.days)))
        if s.last_cycle_at is not None:
            when = datetime.fromtimestamp(s.last_cycle_at, tz=timezone.utc).astimezone(self._loc.tz)
            lines.append(f"Last cycle: {when.strftime('%H:%M')}")
            if s.last_cycle_randomized:
                lines.append("• Randomized: " + ", ".join(s.last_cycle_randomized))
            if s.last_cycle_anchors:
                lines.append("• Anchors: " + ", ".join(s.last_cycle_anchors))
        lines.append(f"Since last summary: {s.cycles} cycle(s), {s.lights_on} on, {s.lights_off} off")
        if s.light_schedule:
            lines.append(f"Queued light offs: {len(s.light_schedule)}")
        if s.sched_running or s.running:
            next_at = None
            if s.next_cycle_at is not None:
                next_at = datetime.fromtimestamp(s.next_cycle_at, tz=timezone.utc)
            lines.append("Next cycle: " + next_cycle_status(next_at, self.now()))
        warning = active_lights_warning(cfg.number_active, len(cfg.switches))
        if warning:
            lines.append(warning)
        reasons = self.why_not_running()
        if reasons and not s.running:
            lines.append("Not running because: " + "; ".join(reasons))
        return "\n".join(lines)
