from __future__ import annotations

from typing import Any, Optional

from ..domain.models import DeviceEvent


class HubDevice:
    """Attribute store shared by every device adapter; events go through the hub."""

    def __init__(self, device_id: str, display_name: str = "") -> None:
        self.device_id = device_id
        self.display_name = display_name or device_id
        self._attributes: dict[str, Any] = {}
        self._hub = None

    def attach(self, hub) -> None:
        self._hub = hub

    def current_value(self, attribute: str) -> Any:
        return self._attributes.get(attribute)

    def attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    async def send_event(
        self,
        name: str,
        value: Any,
        unit: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        self._attributes[name] = value
        if self._hub is None:
            return
        await self._hub.publish(
            DeviceEvent(
                ts_utc=self._hub.now(),
                device_id=self.device_id,
                name=name,
                value=value,
                display_name=self.display_name,
                unit=unit,
                description=description,
            )
        )
