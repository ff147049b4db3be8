from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Mapping, Optional

from fleetwatch.app_types import IDLE_PROGRESS, DrainSummary, FetchOutcome, Progress
from fleetwatch.domain import TaskType
from fleetwatch.enrichment.adapters import FetchAdapter
from fleetwatch.enrichment.task_queue import EnrichmentTask, OutcomeCallback, TaskQueue
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)

ProgressListener = Callable[[Progress], None]


def percent_complete(done: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, round(done / total * 100))


class QueueProcessor:
    """
    Single-flight drain loop over a TaskQueue.

    Only one drain runs at a time; start() while draining is a no-op. Tasks
    are dispatched strictly FIFO with a fixed pause between them, and
    progress is published after every task. Once the queue is empty the
    processor waits `settle_delay`, picks up anything that arrived meanwhile,
    then resets progress and releases the single-flight flag.

    Every task type the queue accepts must have an adapter, so no queued
    task can be left without its callbacks firing.
    """

    def __init__(
        self,
        queue: TaskQueue,
        adapters: Mapping[TaskType, FetchAdapter],
        *,
        inter_task_delay: float = 0.05,
        settle_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        unserved = queue.supported - set(adapters)
        if unserved:
            names = ", ".join(sorted(task_type.value for task_type in unserved))
            raise ValueError(f"Queue accepts task types with no adapter: {names}")
        self._queue = queue
        self._adapters = dict(adapters)
        self.inter_task_delay = max(0.0, inter_task_delay)
        self.settle_delay = max(0.0, settle_delay)
        self._sleep = sleep
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._progress: Progress = IDLE_PROGRESS
        self._listeners: List[ProgressListener] = []
        self.drain_sessions_started = 0
        self.last_summary: Optional[DrainSummary] = None

    @property
    def running(self) -> bool:
        """True from start() until the drain has settled and released the single-flight flag."""
        return self._running

    @property
    def progress(self) -> Progress:
        return self._progress

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a progress listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> bool:
        """Launch a drain if none is running and work is queued. Returns True if one started."""
        if self._running:
            logger.debug("Processor start skipped because a drain is already running")
            return False
        if not len(self._queue):
            logger.debug("Processor start skipped because the queue is empty")
            return False
        self._running = True
        self.drain_sessions_started += 1
        session = self.drain_sessions_started
        self._task = asyncio.get_running_loop().create_task(
            self._drain(session), name=f"fleet-enrichment-drain-{session}"
        )
        logger.info("Processor drain started session=%s queued=%s", session, len(self._queue))
        return True

    async def wait_idle(self) -> None:
        """Wait for the current drain, if any, to finish."""
        task = self._task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(task)

    async def stop(self) -> None:
        """Cancel a running drain (component teardown)."""
        task = self._task
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Processor drain cancelled")

    async def _drain(self, session: int) -> None:
        summary = DrainSummary(session=session, started_at=datetime.now(timezone.utc))
        total = len(self._queue)
        done = 0
        try:
            while True:
                while True:
                    task = self._queue.pop()
                    if task is None:
                        break
                    # Tasks enqueued mid-drain extend the denominator.
                    total = max(total, done + 1 + len(self._queue))
                    label = f"Loading {task.task_type.label}: {task.lookup_value}..."
                    self._publish(Progress(label, percent_complete(done, total)))

                    await self._run_task(task, summary)
                    done += 1
                    summary.dispatched = done
                    summary.percent_complete = percent_complete(done, total)
                    self._publish(Progress(label, summary.percent_complete))

                    if len(self._queue):
                        await self._sleep(self.inter_task_delay)

                await self._sleep(self.settle_delay)
                if not len(self._queue):
                    break
        finally:
            summary.finished_at = datetime.now(timezone.utc)
            self.last_summary = summary
            self._running = False
            self._task = None
            self._publish(IDLE_PROGRESS)
            logger.info(
                "Processor drain finished session=%s dispatched=%s callback_failures=%s",
                session,
                summary.dispatched,
                summary.callback_failures,
            )

    async def _run_task(self, task: EnrichmentTask, summary: DrainSummary) -> None:
        adapter = self._adapters[task.task_type]
        try:
            outcome = await adapter.fetch_outcome(task.lookup_value)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Adapter %s raised for key=%s; using default", task.task_type.value, task.key)
            outcome = FetchOutcome(adapter.default, error=exc)

        for callback in list(task.callbacks):
            try:
                result = callback(outcome if isinstance(callback, OutcomeCallback) else outcome.value)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:  # noqa: BLE001
                summary.callback_failures += 1
                logger.exception("Completion callback failed for %s key=%s", task.task_type.value, task.key)

    def _publish(self, progress: Progress) -> None:
        self._progress = progress
        for listener in list(self._listeners):
            try:
                listener(progress)
            except Exception:  # noqa: BLE001
                logger.exception("Progress listener failed")
