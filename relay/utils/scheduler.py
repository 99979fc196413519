"""
Repeating-job scheduling

Every recurring loop in the relay (chat polling, status polling, token
checks, buffer flush, stats) goes through ``Scheduler.schedule_repeating``
and gets back a handle that can be cancelled. Components never create
their own sleep loops, so tests can swap in a manual scheduler and fire
ticks deterministically.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from relay.utils.logging import get_logger

logger = get_logger(__name__, category="system")

TickCallback = Callable[[], Union[Awaitable[None], None]]


async def call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    """Call ``func`` and await the result if it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        return await result
    return result


class ScheduledHandle(Protocol):
    interval: float

    @property
    def cancelled(self) -> bool:
        ...

    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def schedule_repeating(self, interval: float, callback: TickCallback, name: str = "") -> ScheduledHandle:
        ...


class RepeatingTask:
    """Handle for a job run by AsyncioScheduler."""

    def __init__(self, interval: float, name: str = ""):
        self.interval = interval
        self.name = name
        self._cancelled = False
        self._in_tick = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """
        Stop the job. No tick starts after this call.

        A tick already running is left to finish; only the sleep between
        ticks is interrupted.
        """
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._in_tick and not self._task.done():
            self._task.cancel()


class AsyncioScheduler:
    """Runs each repeating job as its own asyncio task: sleep, tick, repeat."""

    def schedule_repeating(self, interval: float, callback: TickCallback, name: str = "") -> RepeatingTask:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        handle = RepeatingTask(interval, name)
        handle._task = asyncio.create_task(self._run(handle, callback))
        return handle

    async def _run(self, handle: RepeatingTask, callback: TickCallback) -> None:
        try:
            while not handle.cancelled:
                await asyncio.sleep(handle.interval)
                if handle.cancelled:
                    break
                handle._in_tick = True
                try:
                    await call_maybe_async(callback)
                except Exception as e:
                    logger.error(f"Error in scheduled job {handle.name or callback!r}: {e}", exc_info=True)
                finally:
                    handle._in_tick = False
        except asyncio.CancelledError:
            logger.debug(f"Scheduled job {handle.name or callback!r} cancelled")
