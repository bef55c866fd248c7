"""Cancellable periodic tasks and callback-hook invocation.

Every monitor that polls runs as a PeriodicTask on the shared asyncio loop.
A callback that raises is logged and the next tick still runs; only
cancellation ends the loop.

Hooks (corrective actions, safety overrides, sync updates) may be plain
callables or coroutine functions. fire_hook() calls them, schedules any
returned awaitable on the running loop, and never lets a hook failure
propagate into the monitor that raised it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[None, Awaitable[None]]]

# Strong references to hook tasks until they finish
_pending_hook_tasks: set[asyncio.Task] = set()


def _log_hook_task_result(name: str, task: asyncio.Task) -> None:
    _pending_hook_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Hook {name} failed: {exc}")


def fire_hook(hook: Optional[Callable[..., Any]], *args: Any, name: str = "hook") -> bool:
    """Invoke an optional hook without letting it break the caller.

    Args:
        hook: Callable or coroutine function, or None
        *args: Arguments passed to the hook
        name: Label used in log messages

    Returns:
        True if the hook was invoked (or scheduled), False if there was
        no hook or it raised synchronously.
    """
    if hook is None:
        return False

    try:
        result = hook(*args)
    except Exception as e:
        logger.warning(f"Hook {name} failed: {e}")
        return False

    if inspect.isawaitable(result):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Hook {name} returned an awaitable outside an event loop; dropped")
            if inspect.iscoroutine(result):
                result.close()
            return False
        task = loop.create_task(_await(result))
        _pending_hook_tasks.add(task)
        task.add_done_callback(lambda t: _log_hook_task_result(name, t))

    return True


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


class PeriodicTask:
    """Runs a callback every ``interval_seconds`` until cancelled.

    The first run happens one interval after start(), matching a
    setInterval-style timer. Overlapping runs cannot occur: the next sleep
    starts only after the callback returns.
    """

    def __init__(self, name: str, interval_seconds: float, callback: TickCallback):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self.runs = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            logger.warning(f"Periodic task {self.name} already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug(f"Periodic task {self.name} started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug(f"Periodic task {self.name} stopped")

    async def run_once(self) -> bool:
        """Run the callback a single time with the loop's error handling.

        Returns:
            True if the callback completed without raising.
        """
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.error(f"Periodic task {self.name} error: {e}")
            return False
        finally:
            self.runs += 1
        return True

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
