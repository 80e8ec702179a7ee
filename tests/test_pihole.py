"""Tests for the Pi-hole v6 switch against a mocked HTTP transport."""

import json

import httpx
import pytest

from conftest import NY
from homehub.core.retry import RetryConfig
from homehub.drivers.pihole import PiholeSwitch, clamp_disable_minutes, network_id


class FakePihole:
    """Minimal /api emulation; records every request it sees."""

    def __init__(self, session_valid=True, auth_status=200, blocking="enabled", reject_first_poll=False):
        self.session_valid = session_valid
        self.auth_status = auth_status
        self.blocking = blocking
        self.reject_first_poll = reject_first_poll
        self.requests: list[httpx.Request] = []

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/auth":
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, text="forbidden")
            session = {"valid": self.session_valid, "sid": "sid-1" if self.session_valid else None}
            return httpx.Response(200, json={"session": session})
        if request.url.path == "/api/dns/blocking":
            if request.headers.get("X-FTL-SID") != "sid-1":
                return httpx.Response(401, json={"error": "unauthorized"})
            if request.method == "GET" and self.reject_first_poll:
                self.reject_first_poll = False
                return httpx.Response(401, json={"error": "expired"})
            if request.method == "POST":
                body = json.loads(request.content)
                self.blocking = "enabled" if body["blocking"] else "disabled"
                return httpx.Response(200, json={"blocking": self.blocking})
            return httpx.Response(200, json={"blocking": self.blocking})
        return httpx.Response(404)


def make_switch(hub, scheduler, fake, **kwargs) -> PiholeSwitch:
    params = dict(ip="192.168.1.10", password="secret", scheduler=scheduler, tz=NY,
                  transport=httpx.MockTransport(fake.handler))
    params.update(kwargs)
    return hub.register(PiholeSwitch("pihole", "Pi-hole", **params))


class TestPiholeSwitch:

    @pytest.mark.asyncio
    async def test_initialize_authenticates_and_polls(self, hub, scheduler) -> None:
        fake = FakePihole()
        sw = make_switch(hub, scheduler, fake)

        await sw.initialize()

        assert fake.paths() == ["POST /api/auth", "GET /api/dns/blocking"]
        assert json.loads(fake.requests[0].content) == {"password": "secret"}
        assert sw.switch_state == "on"
        assert sw.current_value("sessionValid") == "true"
        assert sw.current_value("lastupdate") == "Jun 15 2026 20:00"
        assert scheduler.delay("poll") == 15 * 60

    @pytest.mark.asyncio
    async def test_off_sends_timer(self, hub, scheduler) -> None:
        fake = FakePihole()
        sw = make_switch(hub, scheduler, fake, disable_minutes=5)
        await sw.initialize()

        await sw.off()

        post = [r for r in fake.requests if r.method == "POST" and r.url.path == "/api/dns/blocking"][0]
        assert json.loads(post.content) == {"blocking": False, "timer": 300}
        assert sw.switch_state == "off"

    @pytest.mark.asyncio
    async def test_off_without_timer(self, hub, scheduler) -> None:
        fake = FakePihole()
        sw = make_switch(hub, scheduler, fake)
        await sw.initialize()

        await sw.off()
        await sw.on()

        posts = [json.loads(r.content) for r in fake.requests if r.method == "POST" and r.url.path == "/api/dns/blocking"]
        assert posts == [{"blocking": False}, {"blocking": True}]
        assert sw.switch_state == "on"

    @pytest.mark.asyncio
    async def test_401_reauthenticates_and_retries_once(self, hub, scheduler) -> None:
        fake = FakePihole(reject_first_poll=True)
        sw = make_switch(hub, scheduler, fake)

        await sw.initialize()

        assert fake.paths() == [
            "POST /api/auth",
            "GET /api/dns/blocking",
            "POST /api/auth",
            "GET /api/dns/blocking",
        ]
        assert sw.switch_state == "on"

    @pytest.mark.asyncio
    async def test_invalid_session_schedules_retry(self, hub, scheduler) -> None:
        fake = FakePihole(session_valid=False)
        sw = make_switch(hub, scheduler, fake)

        assert await sw.authenticate() is False

        assert sw.current_value("sessionValid") == "false"
        assert not sw.session_valid
        assert scheduler.delay("authenticate") == 3.0

    @pytest.mark.asyncio
    async def test_connection_error_schedules_retry(self, hub, scheduler) -> None:
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        sw = hub.register(PiholeSwitch("pihole", "Pi-hole", ip="192.168.1.10", password="secret",
                                       scheduler=scheduler, transport=httpx.MockTransport(refuse)))

        assert await sw.authenticate() is False
        assert scheduler.delay("authenticate") == 3.0

    @pytest.mark.asyncio
    async def test_rejected_credentials_not_retried(self, hub, scheduler) -> None:
        fake = FakePihole(auth_status=403)
        sw = make_switch(hub, scheduler, fake)

        assert await sw.authenticate() is False
        assert not scheduler.is_scheduled("authenticate")

    @pytest.mark.asyncio
    async def test_no_password_sends_nothing(self, hub, scheduler) -> None:
        fake = FakePihole()
        sw = make_switch(hub, scheduler, fake, password="")

        assert await sw.authenticate() is False
        await sw.poll()

        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, hub, scheduler) -> None:
        fake = FakePihole(session_valid=False)
        sw = make_switch(hub, scheduler, fake, retry=RetryConfig(max_attempts=3))

        await sw.authenticate()
        await scheduler.advance(3, hub)
        assert scheduler.delay("authenticate") == 6.0
        await scheduler.advance(6, hub)

        assert fake.paths().count("POST /api/auth") == 3
        assert not scheduler.is_scheduled("authenticate")

    def test_network_id(self) -> None:
        assert network_id("192.168.1.10", 80) == "C0A8010A0050"

    def test_clamp_disable_minutes(self) -> None:
        assert clamp_disable_minutes(None) == 0
        assert clamp_disable_minutes(-5) == 0
        assert clamp_disable_minutes(5) == 5
        assert clamp_disable_minutes(5000) == 1440
