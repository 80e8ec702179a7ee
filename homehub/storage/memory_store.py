from __future__ import annotations
import json
from typing import Optional


class MemoryStateStore:
    """In-memory key-value store with the same JSON round-trip as SQLite."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def load_state(self, key: str) -> Optional[dict]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def save_state(self, key: str, value: dict) -> None:
        self._data[key] = json.dumps(value)

    async def delete_state(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
