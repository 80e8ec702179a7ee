from __future__ import annotations
import logging

from .base import HubDevice

logger = logging.getLogger(__name__)


class VirtualDewPoint(HubDevice):
    """Child device created by the dew point app; displays the computed value."""

    def __init__(self, device_id: str, display_name: str = "", txt_enable: bool = True) -> None:
        super().__init__(device_id, display_name)
        self.txt_enable = txt_enable

    async def set_dew_point(self, value: int) -> None:
        description = f"{self.display_name} was set to {value}"
        if self.txt_enable:
            logger.info(description)
        await self.send_event("DewPoint", value, unit="°F", description=description)
