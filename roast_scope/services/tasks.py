"""Cancellable timers on the asyncio event loop.

PeriodicTask runs a callback at a fixed cadence; the next tick is only
scheduled after the previous one returned, so ticks never overlap.
OneShotTask runs a callback once after a delay.  Both are restartable
and cancel() is idempotent: cancelling twice, or cancelling a task that
never started or already finished, is a no-op.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from time import perf_counter

logger = logging.getLogger(__name__)

Callback = Callable[[], "Awaitable[None] | None"]


async def _invoke(callback: Callback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


class PeriodicTask:
    """Fixed-rate loop around *callback*.

    Args:
        name: Used in log messages and as the asyncio task name.
        interval: Seconds between ticks.
        callback: Sync or async callable run on every tick.
        immediate: Run the first tick right away instead of after one interval.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callback,
        immediate: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        self.name = name
        self._interval = interval
        self._callback = callback
        self._immediate = immediate
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; a no-op when already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        next_tick = perf_counter() + (0.0 if self._immediate else self._interval)
        try:
            while True:
                sleep_time = max(0.0, next_tick - perf_counter())
                await asyncio.sleep(sleep_time)
                next_tick += self._interval
                try:
                    await _invoke(self._callback)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("%s tick failed: %s", self.name, exc, exc_info=True)
        except asyncio.CancelledError:
            logger.debug("%s cancelled", self.name)
            raise


class OneShotTask:
    """Run *callback* once, *delay* seconds after start()."""

    def __init__(self, name: str, delay: float, callback: Callback) -> None:
        self.name = name
        self._delay = delay
        self._callback = callback
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """(Re)arm the timer; an already pending run is cancelled first."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        await _invoke(self._callback)
