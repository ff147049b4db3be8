"""Coalesce bursts of trigger calls into one delayed invocation."""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Optional, Set

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)


class DebounceHandle:
    """Cancel handle for one scheduled invocation."""

    def __init__(self) -> None:
        self._timer: Optional[asyncio.TimerHandle] = None
        self.fired = False
        self.cancelled = False

    def cancel(self) -> bool:
        """Cancel the invocation if it has not fired yet."""
        if self.fired or self.cancelled:
            return False
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        return True


class Debouncer:
    """
    Every schedule() call restarts the timer; only the last trigger within
    `delay_seconds` of quiet actually runs. Coroutines returned by the trigger
    are run as tasks and their errors logged.
    """

    def __init__(self, delay_seconds: float, *, name: str = "debouncer") -> None:
        self.delay = max(0.0, delay_seconds)
        self.name = name
        self._pending: Optional[DebounceHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self.scheduled_count = 0
        self.fire_count = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, trigger_fn: Callable[[], Any]) -> DebounceHandle:
        loop = asyncio.get_running_loop()
        self.cancel()
        handle = DebounceHandle()
        handle._timer = loop.call_later(self.delay, self._fire, handle, trigger_fn)
        self._pending = handle
        self.scheduled_count += 1
        return handle

    def cancel(self) -> None:
        """Drop the pending invocation, if any."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire(self, handle: DebounceHandle, trigger_fn: Callable[[], Any]) -> None:
        if self._pending is handle:
            self._pending = None
        if handle.cancelled:
            return
        handle.fired = True
        self.fire_count += 1
        logger.debug("%s firing after %s schedule calls", self.name, self.scheduled_count)
        try:
            result = trigger_fn()
        except Exception:  # noqa: BLE001
            logger.exception("%s trigger raised", self.name)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s trigger task failed: %s", self.name, exc, exc_info=exc)
