from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from .timeutil import now_utc

logger = logging.getLogger(__name__)

Handler = Callable[[], Awaitable[None]]


class AsyncioScheduler:
    """
    Per-owner timer scheduler on top of the running event loop.
    Responsible for: named one-shot and recurring jobs, overwrite semantics,
    bulk cancellation. Jobs never raise into the loop.
    """

    def __init__(self, owner: str, clock: Callable[[], datetime] = now_utc) -> None:
        self.owner = owner
        self._clock = clock
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._due: dict[str, datetime] = {}
        self._tasks: set[asyncio.Task] = set()

    def run_in(self, seconds: float, handler: Handler, name: Optional[str] = None, overwrite: bool = True) -> None:
        key = name or handler.__name__
        if key in self._handles:
            if not overwrite:
                return
            self._handles.pop(key).cancel()
        delay = max(0.0, float(seconds))
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(delay, self._fire, key, handler)
        self._due[key] = self._clock() + timedelta(seconds=delay)
        logger.debug("[%s] scheduled %s in %.0fs", self.owner, key, delay)

    def run_once(self, at: datetime, handler: Handler, name: Optional[str] = None) -> None:
        self.run_in((at - self._clock()).total_seconds(), handler, name=name)

    def run_every(self, seconds: float, handler: Handler, name: Optional[str] = None) -> None:
        key = name or handler.__name__

        async def _recurring() -> None:
            self.run_in(seconds, _recurring, name=key)
            await handler()

        self.run_in(seconds, _recurring, name=key)

    def unschedule(self, name: Optional[str] = None) -> None:
        keys = list(self._handles) if name is None else [name]
        for key in keys:
            handle = self._handles.pop(key, None)
            if handle is not None:
                handle.cancel()
            self._due.pop(key, None)

    def is_scheduled(self, name: str) -> bool:
        return name in self._handles

    def next_run(self, name: str) -> Optional[datetime]:
        return self._due.get(name)

    async def shutdown(self) -> None:
        self.unschedule()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _fire(self, key: str, handler: Handler) -> None:
        self._handles.pop(key, None)
        self._due.pop(key, None)
        task = asyncio.get_running_loop().create_task(self._invoke(key, handler), name=f"{self.owner}:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _invoke(self, key: str, handler: Handler) -> None:
        try:
            await handler()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[%s] scheduled job %s failed", self.owner, key)
