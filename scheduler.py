"""One-shot timers for deferred reservation work.

Each timer is a detached asyncio task that sleeps for its whole delay and
then awaits its callback once. Timers are tracked per key so they can be
retracted; a failing callback is logged and never disturbs other timers or
the event loop.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Hashable, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[Any]]


class ScheduledTimer:
    """Handle for a pending timer."""

    def __init__(self, key: Hashable, task: "asyncio.Task[None]"):
        self.key = key
        self.task = task

    @property
    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> bool:
        return self.task.cancel()


class TimerScheduler:
    def __init__(self, seconds_per_minute: float = 60.0):
        # Real seconds per delay minute; tests shrink it
        self._seconds_per_minute = seconds_per_minute
        self._timers: dict[Hashable, set[ScheduledTimer]] = {}

    def after(
        self,
        delay_minutes: float,
        callback: Callback,
        key: Hashable = None,
    ) -> Optional[ScheduledTimer]:
        """Run ``callback`` once after ``delay_minutes``; None if the delay is <= 0."""
        if delay_minutes <= 0:
            return None

        delay_seconds = delay_minutes * self._seconds_per_minute
        task = asyncio.create_task(
            self._run(delay_seconds, callback),
            name=f"timer:{key}:{getattr(callback, '__name__', 'callback')}",
        )
        timer = ScheduledTimer(key, task)
        self._timers.setdefault(key, set()).add(timer)
        task.add_done_callback(partial(self._finished, timer))

        logger.debug("Scheduled timer for key %r in %s minutes", key, delay_minutes)
        return timer

    async def _run(self, delay_seconds: float, callback: Callback) -> None:
        await asyncio.sleep(delay_seconds)
        await callback()

    def _finished(self, timer: ScheduledTimer, task: "asyncio.Task[None]") -> None:
        timers = self._timers.get(timer.key)
        if timers is not None:
            timers.discard(timer)
            if not timers:
                del self._timers[timer.key]

        if task.cancelled():
            logger.debug("Timer for key %r cancelled", timer.key)
            return

        exc = task.exception()
        if exc is not None:
            logger.error(
                "Timer for key %r failed: %s",
                timer.key,
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def pending(self, key: Hashable = None) -> list[ScheduledTimer]:
        """Pending timers for ``key``, or for every key when it is None."""
        if key is None:
            return [t for timers in self._timers.values() for t in timers if not t.done]
        return [t for t in self._timers.get(key, ()) if not t.done]

    def cancel(self, key: Hashable) -> int:
        """Cancel every pending timer for ``key``. Returns how many were cancelled."""
        cancelled = 0
        for timer in list(self._timers.get(key, ())):
            if timer.cancel():
                cancelled += 1
        return cancelled

    async def shutdown(self) -> None:
        """Cancel all pending timers and wait for them to unwind."""
        timers = self.pending()
        for timer in timers:
            timer.cancel()
        # Failures were already logged by _finished
        await asyncio.gather(*(t.task for t in timers), return_exceptions=True)
        logger.debug("Timer scheduler stopped, %d timers cancelled", len(timers))
