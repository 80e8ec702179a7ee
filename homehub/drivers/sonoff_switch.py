from __future__ import annotations

import logging
from typing import Optional

import httpx

from .base import HubDevice

logger = logging.getLogger(__name__)


class SonoffSwitch(HubDevice):
    """Light relay on a Sonoff BASICR3 in eWeLink DIY mode."""

    def __init__(
        self,
        device_id: str,
        display_name: str,
        ip: str,
        port: int = 8081,
        sonoff_id: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(device_id, display_name)
        self._base_url = f"http://{ip}:{port}"
        self._sonoff_id = sonoff_id
        self._timeout = timeout
        self._transport = transport
        self._attributes["switch"] = "off"

    @property
    def switch_state(self) -> Optional[str]:
        return self.current_value("switch")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    async def refresh(self) -> Optional[str]:
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/zeroconf/info",
                    json={"deviceid": self._sonoff_id, "data": {}},
                )
                resp.raise_for_status()
                value = resp.json()["data"]["switch"]
        except (httpx.HTTPError, KeyError, ValueError):
            logger.warning(
                "Sonoff %s refresh failed, keeping last known state: %s",
                self.display_name,
                self.switch_state,
                exc_info=True,
            )
            return self.switch_state
        if value != self.switch_state:
            await self.send_event("switch", value)
        return value

    async def on(self) -> None:
        await self._set("on")

    async def off(self) -> None:
        await self._set("off")

    async def _set(self, value: str) -> None:
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/zeroconf/switch",
                    json={"deviceid": self._sonoff_id, "data": {"switch": value}},
                )
                resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning("Sonoff %s switch=%s failed", self.display_name, value, exc_info=True)
            raise
        logger.info("Sonoff %s switch=%s", self.display_name, value)
        await self.send_event("switch", value)
