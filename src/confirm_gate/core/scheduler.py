"""Periodic background tasks owned by the runtime lifecycle."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from confirm_gate.core.structured_logger import get_logger

logger = get_logger("Scheduler")


class PeriodicTask:
    """Runs ``callback`` every ``interval`` seconds until stopped.

    Sync callbacks run directly on the event loop, so they never interleave
    with request handling. A failing run is logged and the loop continues.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Any] | Callable[[], Awaitable[Any]],
    ) -> None:
        self.name = name
        self.interval = interval
        self.callback = callback
        self.runs = 0
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Periodic task %s already running", self.name)
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("Periodic task started", task=self.name, interval_seconds=self.interval)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Periodic task stopped", task=self.name)

    async def run_once(self) -> Any:
        result = self.callback()
        if asyncio.iscoroutine(result):
            result = await result
        self.runs += 1
        return result

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in periodic task %s: %s", self.name, e, exc_info=True)
