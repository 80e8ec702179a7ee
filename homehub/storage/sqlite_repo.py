from __future__ import annotations
import json
import aiosqlite
from datetime import datetime, timezone
from typing import List, Optional
from ..domain.models import DeviceEvent, Reading


class SQLiteRepository:
    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    ts_utc TEXT NOT NULL,
                    device_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value TEXT,
                    display_name TEXT,
                    unit TEXT,
                    description TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS readings (
                    ts_utc TEXT NOT NULL,
                    sensor_id TEXT NOT NULL,
                    temperature REAL,
                    humidity REAL,
                    unit TEXT NOT NULL,
                    ok INTEGER NOT NULL,
                    error TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS app_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_events_dev_ts ON events(device_id, ts_utc)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_readings_ts ON readings(ts_utc)")
            await db.commit()

    # --- device event history ---
    async def insert_event(self, e: DeviceEvent) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO events(ts_utc,device_id,name,value,display_name,unit,description) VALUES (?,?,?,?,?,?,?)",
                (
                    _ts(e.ts_utc),
                    e.device_id,
                    e.name,
                    None if e.value is None else str(e.value),
                    e.display_name,
                    e.unit,
                    e.description,
                ),
            )
            await db.commit()

    async def events_between(self, device_id: str, start: datetime, end: datetime, limit: int) -> List[DeviceEvent]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,device_id,name,value,display_name,unit,description
                FROM events
                WHERE device_id = ? AND ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (device_id, _ts(start), _ts(end), limit),
            )
            rows = await cur.fetchall()
        out: list[DeviceEvent] = []
        for ts, did, name, value, dn, unit, desc in rows:
            out.append(
                DeviceEvent(
                    ts_utc=datetime.fromisoformat(ts),
                    device_id=did,
                    name=name,
                    value=value,
                    display_name=dn or "",
                    unit=unit,
                    description=desc,
                )
            )
        return list(reversed(out))

    async def recent_events(self, start: datetime, end: datetime, limit: int) -> List[DeviceEvent]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,device_id,name,value,display_name,unit,description
                FROM events
                WHERE ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (_ts(start), _ts(end), limit),
            )
            rows = await cur.fetchall()
        return [
            DeviceEvent(ts_utc=datetime.fromisoformat(ts), device_id=did, name=name, value=value,
                        display_name=dn or "", unit=unit, description=desc)
            for ts, did, name, value, dn, unit, desc in rows
        ]

    # --- climate readings ---
    async def insert_reading(self, r: Reading) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO readings(ts_utc,sensor_id,temperature,humidity,unit,ok,error) VALUES (?,?,?,?,?,?,?)",
                (_ts(r.ts_utc), r.sensor_id, r.temperature, r.humidity, r.unit, 1 if r.ok else 0, r.error),
            )
            await db.commit()

    async def query_readings(self, start: datetime, end: datetime, limit: int) -> List[Reading]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,sensor_id,temperature,humidity,unit,ok,error
                FROM readings
                WHERE ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (_ts(start), _ts(end), limit),
            )
            rows = await cur.fetchall()
        out: list[Reading] = []
        for ts, sid, temp, hum, unit, ok, err in rows:
            out.append(Reading(ts_utc=datetime.fromisoformat(ts), sensor_id=sid, temperature=temp,
                               humidity=hum, unit=unit, ok=bool(ok), error=err))
        return list(reversed(out))

    # --- app state (key-value) ---
    async def load_state(self, key: str) -> Optional[dict]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT value FROM app_state WHERE key = ?", (key,))
            row = await cur.fetchone()
        return json.loads(row[0]) if row else None

    async def save_state(self, key: str, value: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO app_state(key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, json.dumps(value), now),
            )
            await db.commit()

    async def delete_state(self, key: str) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute("DELETE FROM app_state WHERE key = ?", (key,))
            await db.commit()


def _ts(dt: datetime) -> str:
    # Fixed UTC offset so ISO strings sort chronologically
    return dt.astimezone(timezone.utc).isoformat()
