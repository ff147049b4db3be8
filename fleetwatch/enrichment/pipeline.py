"""Facade over the enrichment queue, adapters, debouncer and merger."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, Mapping, Optional, Set, Union

from fleetwatch import config
from fleetwatch.app_types import FetchFailure, Progress
from fleetwatch.data_sources import FleetDataSource, build_data_source
from fleetwatch.domain import EnrichmentValue, FilterContext, TaskType
from fleetwatch.enrichment.adapters import FailureObserver, FetchAdapter, build_adapters
from fleetwatch.enrichment.debounce import Debouncer
from fleetwatch.enrichment.merger import ResultMerger
from fleetwatch.enrichment.processor import ProgressListener, QueueProcessor
from fleetwatch.enrichment.task_queue import CompletionCallback, EnrichmentTask, TaskQueue, coerce_task_type
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)


class EnrichmentFlushedError(RuntimeError):
    """A waited-on lookup was dropped by clear_all() before it ran."""


class EnrichmentPipeline:
    """
    One dashboard session's background enrichment: constructed explicitly,
    owned by the controller, discarded on teardown.
    """

    def __init__(
        self,
        adapters: Mapping[TaskType, FetchAdapter],
        *,
        inter_task_delay: float = 0.05,
        debounce_delay: float = 0.15,
        settle_delay: float = 0.5,
        merger: Optional[ResultMerger] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.adapters: Dict[TaskType, FetchAdapter] = dict(adapters)
        self.queue = TaskQueue(supported=self.adapters.keys())
        self.processor = QueueProcessor(
            self.queue,
            self.adapters,
            inter_task_delay=inter_task_delay,
            settle_delay=settle_delay,
            sleep=sleep,
        )
        self.debouncer = Debouncer(debounce_delay, name="enrichment-start")
        self.merger = merger or ResultMerger()
        self._waiters: Set[asyncio.Future] = set()
        self.failures = 0

    @classmethod
    def from_settings(
        cls,
        settings: Optional[config.Settings] = None,
        *,
        data_source: Optional[FleetDataSource] = None,
        on_failure: Optional[FailureObserver] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "EnrichmentPipeline":
        """Build a pipeline wired to the configured data source and timings."""
        settings = settings or config.settings
        data_source = data_source or build_data_source(settings)
        ttl = settings.enrichment_cache_ttl_seconds

        pipeline: Optional[EnrichmentPipeline] = None

        def _observe(failure: FetchFailure) -> None:
            if pipeline is not None:
                pipeline._record_failure(failure)
            if on_failure is not None:
                on_failure(failure)

        adapters = build_adapters(data_source, ttl_seconds=ttl, on_failure=_observe, clock=clock)
        pipeline = cls(
            adapters,
            inter_task_delay=settings.inter_task_delay_seconds,
            debounce_delay=settings.debounce_seconds,
            settle_delay=settings.progress_settle_seconds,
            merger=ResultMerger(ttl_seconds=ttl, clock=clock),
        )
        logger.info(
            "Enrichment pipeline ready",
            extra={"cache_ttl_seconds": ttl, "debounce_ms": settings.debounce_ms},
        )
        return pipeline

    def _record_failure(self, failure: FetchFailure) -> None:
        self.failures += 1

    @property
    def progress(self) -> Progress:
        return self.processor.progress

    def subscribe_progress(self, listener: ProgressListener) -> Callable[[], None]:
        return self.processor.subscribe(listener)

    def enqueue(
        self,
        task_type: Union[TaskType, str],
        lookup_key: Any,
        on_complete: Optional[CompletionCallback] = None,
        filter_context: Optional[FilterContext] = None,
    ) -> Optional[EnrichmentTask]:
        """Queue a lookup and (re)arm the debounced processor start."""
        task = self.queue.enqueue(task_type, lookup_key, on_complete, filter_context)
        if task is not None:
            self.schedule()
        return task

    def schedule(self) -> None:
        """(Re)arm the debounced processor start; a burst of calls starts one drain."""
        self.debouncer.schedule(self.processor.start)

    def peek_cached(self, task_type: Union[TaskType, str], lookup_key: Any) -> Optional[EnrichmentValue]:
        """Adapter cache lookup that never queues work; None on a miss or an unknown type."""
        resolved = coerce_task_type(task_type)
        adapter = self.adapters.get(resolved) if resolved is not None else None
        return adapter.cached(lookup_key) if adapter is not None else None

    async def get_cached_or_fetch(self, task_type: Union[TaskType, str], lookup_key: Any) -> EnrichmentValue:
        """
        Return the cached value right away, or queue the lookup and wait for it.

        Raises ValueError for task types without an adapter, and
        EnrichmentFlushedError if clear_all() flushes the task first.
        """
        resolved = coerce_task_type(task_type)
        adapter = self.adapters.get(resolved) if resolved is not None else None
        if adapter is None:
            raise ValueError(f"Unknown enrichment task type '{task_type}'")

        cached = adapter.cached(lookup_key)
        if cached is not None:
            return cached

        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _resolve(value: Any) -> None:
            if not future.done():
                future.set_result(value)

        if self.enqueue(resolved, lookup_key, _resolve) is None:
            return adapter.default

        self._waiters.add(future)
        future.add_done_callback(self._waiters.discard)
        return await future

    async def wait_idle(self) -> None:
        """Wait until no start is pending and no drain is running."""
        while True:
            if self.debouncer.pending:
                await asyncio.sleep(self.debouncer.delay or 0)
                continue
            if self.processor.running:
                await self.processor.wait_idle()
                continue
            if len(self.queue):
                # Queued while a drain was finishing; kick it off again.
                self.processor.start()
                continue
            return

    def clear_all(self) -> None:
        """Wipe every cache and flush the queue (manual refresh)."""
        self.debouncer.cancel()
        dropped = self.queue.clear()
        for adapter in self.adapters.values():
            adapter.cache.clear()
        self.merger.clear()
        waiters = list(self._waiters)
        for future in waiters:
            if not future.done():
                future.set_exception(EnrichmentFlushedError("Enrichment lookup flushed by refresh"))
        logger.info("Enrichment state cleared dropped_tasks=%s flushed_waiters=%s", len(dropped), len(waiters))

    async def aclose(self) -> None:
        """Teardown: stop the drain and discard all session state."""
        self.debouncer.cancel()
        await self.processor.stop()
        self.clear_all()
