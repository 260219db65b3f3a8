"""Request coalescing for the running asyncio event loop.

:class:`Debouncer` delays a coroutine call and restarts the delay whenever it
is triggered again, so a burst of cart edits produces a single preview
request.  A call that has finished sleeping is in flight and is never
cancelled; callers discard its result if it arrives for stale data.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """Debounce calls to an async function.

    Args:
        func: Zero-argument coroutine function to call.
        delay: Seconds to wait after the last trigger before calling *func*.

    Example::

        debouncer = Debouncer(reconciler.refresh, delay=0.3)
        debouncer.trigger()
        debouncer.trigger()  # restarts the delay; one call is made
        await debouncer.flush()
    """

    def __init__(self, func: Callable[[], Awaitable[Any]], delay: float) -> None:
        if delay < 0:
            msg = f"Debounce delay must not be negative, got {delay}"
            raise ValueError(msg)
        self.func = func
        self.delay = delay
        self._sleeping: asyncio.Task[Any] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        """``True`` while a call is scheduled but has not started yet."""
        return self._sleeping is not None and not self._sleeping.done()

    @property
    def in_flight(self) -> bool:
        """``True`` while any scheduled call has not finished."""
        return any(not task.done() for task in self._tasks)

    def trigger(self) -> bool:
        """Schedule a call after ``delay``, replacing a pending one.

        Returns:
            ``True`` if a call was scheduled, ``False`` when there is no
            running event loop (the trigger is ignored).
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; ignoring debounced call to %r", self.func)
            return False
        self.cancel()
        task = loop.create_task(self._run())
        self._sleeping = task
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return True

    def cancel(self) -> None:
        """Cancel the pending call, if it has not started yet."""
        if self.pending:
            self._sleeping.cancel()
        self._sleeping = None

    async def flush(self) -> None:
        """Wait until every scheduled call has finished."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = {task for task in self._tasks if not task.done()}

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        if self._sleeping is asyncio.current_task():
            self._sleeping = None
        await self.func()

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if self._sleeping is task:
            self._sleeping = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced call to %r failed", self.func, exc_info=exc)
