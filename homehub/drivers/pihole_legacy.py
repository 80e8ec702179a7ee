from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Optional

import httpx

from ..core.timeutil import local_tz, now_utc
from ..domain.interfaces import Scheduler
from .base import HubDevice
from .pihole import clamp_disable_minutes, last_update_stamp, network_id

logger = logging.getLogger(__name__)


class PiholeLegacySwitch(HubDevice):
    """Virtual switch for Pi-hole v5 (admin/api.php, API token in the query string)."""

    api_path = "/admin/api.php"
    poll_interval_s = 3 * 60 * 60

    def __init__(
        self,
        device_id: str,
        display_name: str,
        ip: str,
        api_token: str = "",
        port: int = 80,
        disable_minutes: int = 0,
        timeout: float = 5.0,
        scheduler: Optional[Scheduler] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        super().__init__(device_id, display_name)
        self._ip = ip
        self._port = port
        self._api_token = api_token
        self.disable_minutes = clamp_disable_minutes(disable_minutes)
        self._timeout = timeout
        self._scheduler = scheduler
        self._transport = transport
        self._tz = tz

    @property
    def switch_state(self) -> Optional[str]:
        return self.current_value("switch")

    @property
    def device_network_id(self) -> Optional[str]:
        return network_id(self._ip, self._port) if self._ip else None

    async def initialize(self) -> None:
        await self.poll()
        if self._scheduler is not None:
            self._scheduler.run_every(self.poll_interval_s, self.poll, name="poll")

    async def refresh(self) -> None:
        await self.poll()

    async def poll(self) -> None:
        await self._get(self.api_path)

    async def on(self) -> None:
        await self._do_switch("enable")

    async def off(self) -> None:
        # Without a disable time blocking stays off until switched back on
        if self.disable_minutes:
            await self._do_switch(f"disable={self.disable_minutes * 60}")
        else:
            await self._do_switch("disable")

    async def _do_switch(self, toggle: str) -> None:
        await self._get(f"{self.api_path}?{toggle}&auth={self._api_token}")

    async def _get(self, path: str) -> None:
        if not self._ip:
            logger.warning("IP address missing in preferences")
            return
        try:
            async with httpx.AsyncClient(
                base_url=f"http://{self._ip}:{self._port}",
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(path)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Pi-hole request %s failed", path.split("&auth=")[0], exc_info=True)
            return
        await self._parse(data if isinstance(data, dict) else {})

    async def _parse(self, data: dict) -> None:
        logger.debug("Received %s", data)
        if data.get("FTLnotrunning"):
            return
        if data.get("status") == "enabled":
            await self.send_event("switch", "on")
        elif data.get("status") == "disabled":
            await self.send_event("switch", "off")

        queries = data.get("dns_queries_today")
        if queries is not None:
            try:
                ok = int(str(queries).replace(",", "")) >= 0
            except ValueError:
                ok = False
            if ok:
                combined = (
                    f"Queries today: {queries} Blocked: {data.get('ads_blocked_today')}"
                    f"\nClients: {data.get('unique_clients')}"
                )
                await self.send_event("combined", combined, unit="")

        now = self._hub.now() if self._hub is not None else now_utc()
        await self.send_event("lastupdate", last_update_stamp(now, self._tz or local_tz()), unit="")
