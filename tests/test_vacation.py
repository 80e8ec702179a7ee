"""Tests for the vacation lighting simulator."""

import random
from dataclasses import replace
from datetime import datetime, time, timedelta

import pytest

from conftest import NY, add_notifier, add_switches
from homehub.domain.schedule import TimePoint, TimeWindow
from homehub.domain.summary import build_summary_message, next_cycle_status
from homehub.domain.vacation import (
    VacationConfig,
    VacationLighting,
    clamp_active_count,
    clamp_frequency,
    first_check_delay_seconds,
    light_on_duration,
)
from homehub.drivers.devices_sim import SimulatedSwitch

BASE = VacationConfig(
    app_id="main",
    switches=("light1", "light2", "light3"),
    modes=frozenset({"Away"}),
    notifiers=("phone",),
)


def make_app(hub, scheduler, store, location, seed=7, **changes) -> VacationLighting:
    return VacationLighting(replace(BASE, **changes), hub, scheduler, store, location, rng=random.Random(seed))


class FlakySwitch(SimulatedSwitch):
    async def off(self) -> None:
        raise RuntimeError("relay offline")


class TestClamps:
    """Pure helpers used by the cycle scheduler."""

    def test_frequency_defaults_and_bounds(self):
        assert clamp_frequency(None) == 15
        assert clamp_frequency(1) == 5
        assert clamp_frequency(500) == 180
        assert clamp_frequency(30) == 30

    def test_active_count(self):
        assert clamp_active_count(None, 3) == 1
        assert clamp_active_count(5, 3) == 3
        assert clamp_active_count(0, 3) == 1
        assert clamp_active_count(2, 0) == 0

    def test_first_check_delay(self):
        assert first_check_delay_seconds(None) == 120
        assert first_check_delay_seconds(0) == 1
        assert first_check_delay_seconds(10000) == 86400

    def test_light_on_duration_within_bounds(self):
        """For every frequency the duration stays in base +/- 20% and in [5, 180]."""
        rng = random.Random(1234)
        for f in range(5, 181):
            jitter = max(1, round(0.2 * f))
            lo, hi = max(5, f - jitter), min(180, f + jitter)
            for _ in range(25):
                assert lo <= light_on_duration(f, rng) <= hi


class TestCycle:
    """Light selection and the light-off queue."""

    @pytest.mark.asyncio
    async def test_clamps_to_available_lights(self, hub, scheduler, store, location, clock):
        """frequency=15, 3 lights, numberActive=5 -> all 3 on, each due off in 12..18 min."""
        lights = add_switches(hub, 3)
        phone = add_notifier(hub)
        app = make_app(hub, scheduler, store, location, frequency_minutes=15, number_active=5)

        await app.run_test_cycle()
        await hub.drain()

        assert sorted(app.state.light_schedule) == ["light1", "light2", "light3"]
        assert all(sw.switch_state == "on" for sw in lights)
        now_ts = clock.now.timestamp()
        for due in app.state.light_schedule.values():
            assert 12 * 60 <= due - now_ts <= 18 * 60
        assert phone.messages[0].startswith("🧪 Vacation Lighting Test Complete:")
        assert "3 light(s) turned on" in phone.messages[0]
        assert not app.state.running

    @pytest.mark.asyncio
    async def test_off_tick_drains_queue(self, hub, scheduler, store, location):
        lights = add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location, number_active=3)

        await app.run_test_cycle()
        assert scheduler.delay("off_tick") == 60

        await scheduler.advance(19 * 60, hub)

        assert app.state.light_schedule == {}
        assert all(sw.switch_state == "off" for sw in lights)
        assert not scheduler.is_scheduled("off_tick")
        assert app.state.off_tick_scheduled is False
        assert app.state.lights_off == 3

    @pytest.mark.asyncio
    async def test_failed_off_still_dequeued(self, hub, scheduler, store, location):
        hub.register(FlakySwitch("light1", "Flaky"))
        add_switches(hub, 2, prefix="other")
        app = make_app(hub, scheduler, store, location, switches=("light1", "other1", "other2"), number_active=3)

        await app.run_test_cycle()
        await scheduler.advance(19 * 60, hub)

        assert app.state.light_schedule == {}
        assert app.state.lights_off == 2

    @pytest.mark.asyncio
    async def test_anchor_lights_never_queued(self, hub, scheduler, store, location):
        add_switches(hub, 2)
        anchor = hub.register(SimulatedSwitch("anchor", "Entry Lamp"))
        app = make_app(hub, scheduler, store, location, switches=("light1", "light2"), anchors=("anchor",))

        await app.run_test_cycle()

        assert anchor.switch_state == "on"
        assert "anchor" not in app.state.light_schedule
        assert app.state.last_cycle_anchors == ["Entry Lamp"]
        assert len(app.state.last_cycle_randomized) == 1

    @pytest.mark.asyncio
    async def test_no_switches_skips_test_cycle(self, hub, scheduler, store, location):
        phone = add_notifier(hub)
        app = make_app(hub, scheduler, store, location)

        await app.run_test_cycle()

        assert app.state.cycles == 0
        assert phone.messages == []


class TestArming:
    """Mode and vacation switch arming, disarming and the gated check."""

    @pytest.mark.asyncio
    async def test_mode_change_arms_and_runs_cycle(self, hub, scheduler, store, location):
        lights = add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location)
        await app.initialize()
        assert not scheduler.is_scheduled("init_check")

        await hub.set_mode("Away")
        await hub.drain()
        assert scheduler.delay("init_check") == 120

        await scheduler.advance(120, hub)

        assert app.state.cycles == 1
        assert app.state.running
        assert sum(sw.switch_state == "on" for sw in lights) == 1
        next_check = scheduler.delay("init_check")
        assert 15 * 60 <= next_check <= 28 * 60
        assert scheduler.delay("failsafe") == next_check + 600

    @pytest.mark.asyncio
    async def test_disarm_turns_everything_off(self, hub, scheduler, store, location):
        lights = add_switches(hub, 3)
        anchor = hub.register(SimulatedSwitch("anchor", "Entry Lamp"))
        app = make_app(hub, scheduler, store, location, anchors=("anchor",), number_active=2)
        await hub.set_mode("Away")
        await app.initialize()
        await scheduler.advance(120, hub)
        assert anchor.switch_state == "on"

        await hub.set_mode("Home")
        await hub.drain()

        assert all(sw.switch_state == "off" for sw in lights)
        assert anchor.switch_state == "off"
        assert app.state.light_schedule == {}
        assert scheduler.jobs == {}
        assert not app.state.running
        assert app.state.lights_off == 3
        assert app.state.off_names == []

    @pytest.mark.asyncio
    async def test_vacation_switch_arms(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        vac = hub.register(SimulatedSwitch("vac", "Vacation Mode"))
        app = make_app(hub, scheduler, store, location, modes=frozenset(), vacation_switch="vac")
        await app.initialize()
        assert not app.arm_ok()

        await vac.on()
        await hub.drain()
        await scheduler.advance(120, hub)
        assert app.state.cycles == 1

        await vac.off()
        await hub.drain()
        assert app.state.light_schedule == {}
        assert not scheduler.jobs

    @pytest.mark.asyncio
    async def test_too_soon_rechecks_later(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location)
        await hub.set_mode("Away")
        await app.initialize()
        await scheduler.advance(120, hub)

        await app.init_check()

        assert app.state.cycles == 1
        assert scheduler.delay("init_check") == 15 * 60

    @pytest.mark.asyncio
    async def test_time_window_gates_cycles(self, hub, scheduler, store, location, clock):
        lights = add_switches(hub, 3)
        window = TimeWindow(
            start=TimePoint(at=time(21, 0)),
            end=TimePoint(at=time(23, 0)),
            end_adjust_minutes=2,
        )
        app = make_app(hub, scheduler, store, location, window=window)
        await hub.set_mode("Away")
        await app.initialize()

        # 20:02, outside the window
        await scheduler.advance(120, hub)
        assert app.state.cycles == 0
        assert scheduler.delay("start_time_check") == 3600 - 120

        # start check at 21:00, first cycle at 21:02
        await scheduler.advance(3600, hub)
        assert app.state.cycles == 1

        # past 23:00 everything is torn down
        await scheduler.advance(2 * 3600, hub)
        assert not app.state.running
        assert app.state.light_schedule == {}
        assert all(sw.switch_state == "off" for sw in lights)
        assert scheduler.next_run("start_time_check") == datetime(2026, 6, 16, 21, 0, tzinfo=NY)

    @pytest.mark.asyncio
    async def test_wrong_day_resumes_next_midnight(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location, days=frozenset({"Saturday"}))
        await hub.set_mode("Away")
        await app.initialize()

        await scheduler.advance(120, hub)

        assert app.state.cycles == 0
        assert scheduler.next_run("init_check") == datetime(2026, 6, 16, 0, 0, tzinfo=NY)


class TestSummary:
    """Daily summary scheduling, counters and message text."""

    @pytest.mark.asyncio
    async def test_daily_summary_sends_and_resets(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        phone = add_notifier(hub)
        app = make_app(hub, scheduler, store, location, summary_time=time(8, 0))
        await hub.set_mode("Away")
        await app.initialize()
        assert scheduler.next_run("daily_summary") == datetime(2026, 6, 16, 8, 0, tzinfo=NY)
        await scheduler.advance(120, hub)

        await app.daily_summary()

        msg = phone.messages[-1]
        assert msg.startswith("📊 Vacation Lighting Daily Summary:")
        assert "1 cycle(s) simulated" in msg
        assert app.state.cycles == 0
        assert app.state.lights_on == 0
        assert app.state.on_names == []
        assert scheduler.is_scheduled("daily_summary")

    @pytest.mark.asyncio
    async def test_summary_not_sent_when_disarmed(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        phone = add_notifier(hub)
        app = make_app(hub, scheduler, store, location, summary_time=time(8, 0))
        app.state.cycles = 4

        await app.daily_summary()

        assert phone.messages == []
        assert app.state.cycles == 0
        assert not scheduler.is_scheduled("daily_summary")

    @pytest.mark.asyncio
    async def test_repeated_cycles_list_each_light_once(self, hub, scheduler, store, location):
        add_switches(hub, 1)
        app = make_app(hub, scheduler, store, location, switches=("light1",))

        for _ in range(3):
            await app.run_test_cycle()
            await scheduler.advance(19 * 60, hub)

        assert app.state.lights_on == 3
        assert app.state.lights_off == 3
        assert app.state.on_names == ["Light 1"]
        assert app.state.off_names == ["Light 1"]

    def test_no_activity_messages(self):
        daily = build_summary_message("daily", 0, 0, 0)
        assert "No cycles ran in the last 24 hours" in daily
        test = build_summary_message("test", 0, 0, 0)
        assert "(Check your configuration.)" in test

    def test_next_cycle_status(self, clock):
        now = clock.now
        assert next_cycle_status(None, now) == "not scheduled."
        assert next_cycle_status(now - timedelta(seconds=5), now) == "any moment."
        assert next_cycle_status(now + timedelta(seconds=70), now) == "~1 minute."
        assert next_cycle_status(now + timedelta(minutes=12), now) == "~12 minutes."


class TestPersistence:
    """State survives a restart through the key-value store."""

    @pytest.mark.asyncio
    async def test_restore_rearms_off_tick(self, hub, scheduler, store, location, clock):
        from conftest import FakeScheduler

        add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location, number_active=2)
        await app.run_test_cycle()
        queued = dict(app.state.light_schedule)

        fresh_scheduler = FakeScheduler(clock)
        restored = make_app(hub, fresh_scheduler, store, location)
        await restored.restore()

        assert restored.state.light_schedule == queued
        assert fresh_scheduler.is_scheduled("off_tick")

    @pytest.mark.asyncio
    async def test_update_turns_off_test_cycle_lights(self, hub, scheduler, store, location):
        lights = add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location, number_active=3)
        await app.run_test_cycle()

        await app.update(replace(BASE, frequency_minutes=30))

        assert all(sw.switch_state == "off" for sw in lights)
        assert app.state.light_schedule == {}
        assert app.config.frequency_minutes == 30


class TestStatus:
    def test_not_configured(self, hub, scheduler, store, location):
        app = make_app(hub, scheduler, store, location, switches=())
        assert app.status_text().startswith("Status: 🔴 Not fully configured.")

    @pytest.mark.asyncio
    async def test_active_status_and_clamp_warning(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location, number_active=5)
        await hub.set_mode("Away")
        await app.initialize()
        await scheduler.advance(120, hub)

        text = app.status_text()

        assert "✅ Active" in text
        assert "app will clamp to 3" in text
        assert "Next cycle: ~" in text

    def test_idle_reasons(self, hub, scheduler, store, location):
        add_switches(hub, 3)
        app = make_app(hub, scheduler, store, location)
        assert "🟡 Idle" in app.status_text()
        assert app.why_not_running() == ["mode Home is not an allowed mode"]
