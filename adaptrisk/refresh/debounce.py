"""
Debounce Scheduler.

Coalesces bursts of signal updates: every submit cancels the pending timer
and reschedules it, so the callback fires once, `delay` seconds after the
last submit, with the union of everything submitted in between.

The scheduler owns its TimerHandle and pending queue; nothing is global.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from adaptrisk.refresh.schemas import SignalUpdate, merge_updates

logger = structlog.get_logger(__name__)

FlushCallback = Callable[[list[SignalUpdate]], Awaitable[object]]


class DebounceScheduler:
    def __init__(self, delay_seconds: float, callback: FlushCallback, name: str = "refresh"):
        self.delay_seconds = delay_seconds
        self.callback = callback
        self.name = name
        self._pending: list[SignalUpdate] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> list[SignalUpdate]:
        return list(self._pending)

    @property
    def is_scheduled(self) -> bool:
        return self._timer is not None

    def submit(self, updates: list[SignalUpdate]) -> None:
        """Queue updates and (re)start the timer. Must run inside the event loop."""
        self._pending.extend(updates)
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_seconds, self._fire)
        logger.debug("debounce_rescheduled", scheduler=self.name, pending=len(self._pending))

    def cancel(self) -> list[SignalUpdate]:
        """Stop the timer and drop the pending updates (returned to the caller)."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        dropped, self._pending = self._pending, []
        return dropped

    async def flush(self) -> Optional[object]:
        """Run the callback now with whatever is pending; None when nothing is."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        updates = self._take()
        if not updates:
            return None
        return await self.callback(updates)

    async def drain(self) -> None:
        """Wait for callbacks already started by the timer."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _take(self) -> list[SignalUpdate]:
        updates, self._pending = self._pending, []
        return merge_updates(updates)

    def _fire(self) -> None:
        self._timer = None
        updates = self._take()
        if not updates:
            return
        task = asyncio.get_running_loop().create_task(self._run(updates))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, updates: list[SignalUpdate]) -> None:
        try:
            await self.callback(updates)
        except Exception as e:
            # Keep the scheduler alive for the next burst
            logger.error("debounce_callback_failed", scheduler=self.name, error=str(e), exc_info=True)
