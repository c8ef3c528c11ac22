"""Cancellable fixed-cadence timer for polling."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Fire *callback* every *interval* seconds until stopped.

    Each tick is started as its own task, so a slow tick never delays the next
    one; overlapping work is the callback's business (the engines skip via
    single-flight). The first tick fires one interval after :meth:`start`.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        *,
        name: str = "periodic",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.name = name
        self._callback = callback
        self._runner: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        if self.running:
            return
        self._runner = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        """Stop the timer and cancel any tick still running."""
        if self._runner is not None:
            self._runner.cancel()
            self._runner = None
        for tick in list(self._ticks):
            tick.cancel()
        self._ticks.clear()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            tick = asyncio.ensure_future(self._callback())
            self._ticks.add(tick)
            tick.add_done_callback(self._on_tick_done)

    def _on_tick_done(self, tick: asyncio.Task) -> None:
        self._ticks.discard(tick)
        if tick.cancelled():
            return
        exc = tick.exception()
        if exc is not None:
            logger.error("%s tick failed: %s", self.name, exc, exc_info=exc)
