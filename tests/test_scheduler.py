"""Tests for the asyncio-backed named job scheduler."""

import asyncio

import pytest

from homehub.core.scheduler import AsyncioScheduler


class TestAsyncioScheduler:

    @pytest.mark.asyncio
    async def test_run_in_fires_once(self) -> None:
        sched = AsyncioScheduler("test")
        calls = []

        async def job():
            calls.append("job")

        sched.run_in(0.01, job)
        assert sched.is_scheduled("job")
        await asyncio.sleep(0.05)

        assert calls == ["job"]
        assert not sched.is_scheduled("job")
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_overwrite_replaces_pending_job(self) -> None:
        sched = AsyncioScheduler("test")
        calls = []

        async def first():
            calls.append("first")

        async def second():
            calls.append("second")

        sched.run_in(0.01, first, name="check")
        sched.run_in(0.02, second, name="check")
        await asyncio.sleep(0.06)

        assert calls == ["second"]
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_no_overwrite_keeps_pending_job(self) -> None:
        sched = AsyncioScheduler("test")
        calls = []

        async def first():
            calls.append("first")

        async def second():
            calls.append("second")

        sched.run_in(0.01, first, name="check")
        sched.run_in(0.01, second, name="check", overwrite=False)
        await asyncio.sleep(0.05)

        assert calls == ["first"]
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_unschedule_by_name_and_all(self) -> None:
        sched = AsyncioScheduler("test")
        calls = []

        async def job():
            calls.append("job")

        sched.run_in(0.01, job, name="a")
        sched.run_in(0.01, job, name="b")
        sched.unschedule("a")
        assert not sched.is_scheduled("a")
        assert sched.is_scheduled("b")
        sched.unschedule()
        await asyncio.sleep(0.03)

        assert calls == []
        assert sched.next_run("b") is None

    @pytest.mark.asyncio
    async def test_run_every_repeats(self) -> None:
        sched = AsyncioScheduler("test")
        calls = []

        async def tick():
            calls.append(1)

        sched.run_every(0.01, tick, name="tick")
        await asyncio.sleep(0.06)
        await sched.shutdown()

        assert len(calls) >= 2
        assert not sched.is_scheduled("tick")

    @pytest.mark.asyncio
    async def test_failing_job_is_contained(self) -> None:
        """A raising handler is logged and does not stop later jobs."""
        sched = AsyncioScheduler("test")
        calls = []

        async def boom():
            raise RuntimeError("boom")

        async def after():
            calls.append("after")

        sched.run_in(0.0, boom)
        sched.run_in(0.02, after)
        await asyncio.sleep(0.05)

        assert calls == ["after"]
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_next_run_uses_clock(self) -> None:
        from conftest import START

        sched = AsyncioScheduler("test", clock=lambda: START)

        async def job():
            pass

        sched.run_in(90, job)
        assert (sched.next_run("job") - START).total_seconds() == 90
        await sched.shutdown()
