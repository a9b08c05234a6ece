"""Named, cancellable delayed callbacks on the running event loop."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any] | Any]


class TimerRegistry:
    """Keeps a handle for every pending delayed action so it can be cancelled.

    Scheduling under a name that is already pending replaces the old timer,
    so at most one timer per name is ever alive.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._counter = 0

    def schedule(self, delay: float, callback: TimerCallback, *, name: str | None = None) -> str:
        """Run ``callback`` after ``delay`` seconds. Returns the timer name."""
        if name is None:
            self._counter += 1
            name = f"timer-{self._counter}"
        self.cancel(name)
        self._tasks[name] = asyncio.create_task(self._run(name, delay, callback), name=name)
        return name

    async def _run(self, name: str, delay: float, callback: TimerCallback) -> None:
        try:
            await asyncio.sleep(delay)
            # Deregister before running so the callback may reschedule itself
            self._tasks.pop(name, None)
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Timer callback failed: %s", name)
        finally:
            if self._tasks.get(name) is asyncio.current_task():
                self._tasks.pop(name, None)

    def cancel(self, name: str) -> bool:
        """Cancel a pending timer. Returns True if one was pending."""
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer. Returns how many were cancelled."""
        return sum(self.cancel(name) for name in list(self._tasks))

    def is_pending(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    @property
    def pending(self) -> list[str]:
        return [name for name, task in self._tasks.items() if not task.done()]
