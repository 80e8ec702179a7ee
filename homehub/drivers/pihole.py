from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any, Optional

import httpx

from ..core.log import app_logger, redact
from ..core.retry import RetryConfig, calculate_backoff
from ..core.timeutil import local_tz, now_utc
from ..domain.interfaces import Scheduler
from .base import HubDevice

logger = logging.getLogger(__name__)


def network_id(ip: str, port: int) -> str:
    """Hub-style device network id: hex IP followed by hex port."""
    host = "".join(f"{int(part):02x}" for part in ip.split("."))
    return f"{host}{port:04x}".upper()


def clamp_disable_minutes(minutes: Optional[int]) -> int:
    """0 means disable indefinitely; otherwise 1..1440."""
    if not minutes or minutes <= 0:
        return 0
    return min(int(minutes), 1440)


class PiholeSwitch(HubDevice):
    """
    Virtual switch for a Pi-hole v6 appliance.
    switch "on" = blocking enabled. Session auth: POST /api/auth returns a sid
    that is sent as X-FTL-SID on every other request.
    """

    poll_interval_s = 15 * 60

    def __init__(
        self,
        device_id: str,
        display_name: str,
        ip: str,
        password: str,
        port: int = 80,
        disable_minutes: int = 0,
        timeout: float = 5.0,
        retry: Optional[RetryConfig] = None,
        scheduler: Optional[Scheduler] = None,
        debug: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        super().__init__(device_id, display_name)
        self._ip = ip
        self._port = port
        self._password = password
        self.disable_minutes = clamp_disable_minutes(disable_minutes)
        self._timeout = timeout
        self._retry = retry or RetryConfig()
        self._scheduler = scheduler
        self._transport = transport
        self._tz = tz
        self._sid: Optional[str] = None
        self._auth_attempt = 0
        self._log = app_logger(__name__, device_id, debug)

    @property
    def switch_state(self) -> Optional[str]:
        return self.current_value("switch")

    @property
    def session_valid(self) -> bool:
        return self._sid is not None

    @property
    def device_network_id(self) -> Optional[str]:
        return network_id(self._ip, self._port) if self._ip else None

    # --- lifecycle ---
    async def initialize(self) -> None:
        self._log.debug(
            "Initialized with settings: %s",
            redact({"ip": self._ip, "password": self._password, "disable_minutes": self.disable_minutes}),
        )
        self._sid = None
        await self.send_event("sessionValid", "unknown")
        if self._scheduler is not None:
            self._scheduler.run_every(self.poll_interval_s, self.poll, name="poll")
        if await self.authenticate():
            await self.poll()

    async def refresh(self) -> None:
        await self.poll()

    # --- commands ---
    async def poll(self) -> None:
        if not await self._ensure_session("No valid session ID. Attempting to re-authenticate."):
            return
        resp = await self._send_authed("GET", "/dns/blocking")
        if resp is None:
            return
        if resp.status_code != 200:
            logger.error("Status request failed with status %s: %s", resp.status_code, resp.text)
            return
        data = self._json(resp)
        blocking = data.get("blocking")
        if blocking is None:
            logger.error("Failed to retrieve Pi-hole status.")
            return
        state = "on" if blocking == "enabled" else "off"
        await self.send_event("switch", state)
        await self.send_event("lastupdate", self._timestamp())
        logger.info("Pi-hole status updated: %s", state)

    async def on(self) -> None:
        await self._set_blocking({"blocking": True})

    async def off(self) -> None:
        payload: dict[str, Any] = {"blocking": False}
        if self.disable_minutes > 0:
            payload["timer"] = self.disable_minutes * 60
        await self._set_blocking(payload)

    async def authenticate(self) -> bool:
        if not self._password:
            logger.error("Pi-hole password is not set. Cannot authenticate.")
            return False
        if not self._ip:
            logger.error("Device IP is not set. Check driver settings.")
            return False

        self._sid = None
        await self.send_event("sessionValid", "authenticating")
        try:
            resp = await self._request("POST", "/auth", {"password": self._password.strip()})
        except httpx.HTTPError as e:
            logger.warning("Authentication request failed: %s", e)
            await self._auth_failed(retry=True)
            return False

        self._log.debug("Authentication response received (status=%s)", resp.status_code)
        if resp.status_code == 200:
            session = self._json(resp).get("session") or {}
            if session.get("valid") is True and session.get("sid"):
                self._sid = session["sid"]
                self._auth_attempt = 0
                if self._scheduler is not None:
                    self._scheduler.unschedule("authenticate")
                await self.send_event("sessionValid", "true")
                logger.info("Authenticated successfully. Session ID obtained.")
                return True
            logger.warning("Authentication failed: session not valid.")
            await self._auth_failed(retry=True)
            return False

        logger.error("Authentication failed with status %s: %s", resp.status_code, resp.text)
        await self._auth_failed(retry=False)
        return False

    # --- internals ---
    async def _set_blocking(self, payload: dict[str, Any]) -> None:
        if not await self._ensure_session("No valid session. Re-authenticating..."):
            return
        resp = await self._send_authed("POST", "/dns/blocking", payload)
        if resp is None:
            return
        if resp.status_code == 200:
            logger.info("Pi-hole successfully updated.")
            await self.poll()
        else:
            logger.error("Failed to update Pi-hole with status %s: %s", resp.status_code, resp.text)

    async def _ensure_session(self, reason: str) -> bool:
        if not self._ip:
            logger.error("Device IP is not set. Check driver settings.")
            return False
        if self._sid:
            return True
        logger.warning(reason)
        return await self.authenticate()

    async def _send_authed(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Optional[httpx.Response]:
        """Request with the session id; a 401 re-authenticates and retries once."""
        for attempt in (1, 2):
            try:
                resp = await self._request(method, endpoint, payload, sid=self._sid)
            except httpx.HTTPError as e:
                logger.error("Error sending request %s %s: %s", method, endpoint, e)
                self._sid = None
                await self.send_event("sessionValid", "false")
                return None
            if resp.status_code != 401 or attempt == 2:
                return resp
            logger.warning("Session rejected (401) on %s %s; re-authenticating", method, endpoint)
            if not await self.authenticate():
                return None
        return None

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[dict] = None,
        sid: Optional[str] = None,
    ) -> httpx.Response:
        headers = {"X-FTL-SID": sid} if sid else {}
        self._log.debug("Sending request - Method: %s, Path: /api%s", method, endpoint)
        async with httpx.AsyncClient(
            base_url=f"http://{self._ip}:{self._port}",
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            return await client.request(method, f"/api{endpoint}", json=payload, headers=headers)

    async def _auth_failed(self, retry: bool) -> None:
        self._sid = None
        await self.send_event("sessionValid", "false")
        if not retry or self._scheduler is None:
            return
        self._auth_attempt += 1
        if self._auth_attempt >= self._retry.max_attempts:
            logger.error("Giving up on authentication after %d attempts", self._auth_attempt)
            self._auth_attempt = 0
            return
        delay = calculate_backoff(self._auth_attempt, self._retry)
        logger.warning("Retrying authentication in %.0f seconds", delay)
        self._scheduler.run_in(delay, self.authenticate, name="authenticate")

    def _json(self, resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Pi-hole returned a non-JSON body")
            return {}
        return data if isinstance(data, dict) else {}

    def _timestamp(self) -> str:
        now = self._hub.now() if self._hub is not None else now_utc()
        return last_update_stamp(now, self._tz or local_tz())


def last_update_stamp(now, tz: tzinfo) -> str:
    return now.astimezone(tz).strftime("%b %d %Y %H:%M")
