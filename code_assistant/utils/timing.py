"""Timer primitives scheduled on the running asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Collapse bursts of triggers into one call after a quiet period.

    Every ``trigger`` pushes the deadline back by ``delay`` seconds and
    replaces the arguments; the action runs once, with the latest arguments,
    when the deadline passes without another trigger.
    """

    def __init__(self, delay: float, action: Callable[..., Any]) -> None:
        """Initialize the debouncer.

        Args:
            delay: Quiet period in seconds
            action: Callable run on the event loop when the period elapses
        """
        self.delay = delay
        self.action = action
        self._handle: asyncio.TimerHandle | None = None
        self._args: tuple[Any, ...] = ()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, *args: Any) -> None:
        """Schedule the action, resetting any pending deadline."""
        self.cancel()
        self._args = args
        self._handle = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def flush(self) -> None:
        """Run a pending action immediately."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        """Drop a pending action without running it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        args, self._args = self._args, ()
        self.action(*args)


class PeriodicTask:
    """Await a callback at a fixed interval until stopped.

    The loop also ends when the callback returns ``False``.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[Any]],
        immediate: bool = False,
        name: str | None = None,
    ) -> None:
        """Initialize the periodic task.

        Args:
            interval: Seconds between the end of one call and the next
            callback: Coroutine function invoked on each tick
            immediate: Run the first tick without waiting an interval
            name: Task name used in logs
        """
        self.interval = interval
        self.callback = callback
        self.immediate = immediate
        self.name = name or getattr(callback, "__qualname__", "periodic")
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; a no-op when already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        """Cancel the loop; safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the current loop to finish (by stop or by callback)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(self) -> None:
        if not self.immediate:
            await asyncio.sleep(self.interval)
        while True:
            if await self.callback() is False:
                logger.debug("Periodic task '%s' finished.", self.name)
                return
            # Stopped from inside the callback
            if self._task is not asyncio.current_task():
                return
            await asyncio.sleep(self.interval)
