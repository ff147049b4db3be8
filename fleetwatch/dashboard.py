"""Fleet dashboard controller: primary vessel list in, enriched visible rows out."""
from __future__ import annotations

from functools import partial
from typing import Callable, Dict, Iterable, List, Tuple, Union

from fleetwatch.app_types import FetchOutcome, MergeOutcome, Progress, TaskResult
from fleetwatch.domain import (
    FilterContext,
    TaskType,
    VesselRecord,
    VoyageStatus,
    filter_vessels,
)
from fleetwatch.enrichment import EnrichmentPipeline, OutcomeCallback
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)

MergeCallback = Callable[[FetchOutcome], MergeOutcome]


class FleetDashboardController:
    """
    Holds the primary vessel list and the active voyage filter.

    The visible rows render immediately from the primary data (plus whatever
    enrichment is already cached); every visible vessel or port still missing
    a value gets one enrichment task, tagged with the filter it was requested
    under.
    """

    def __init__(self, pipeline: EnrichmentPipeline) -> None:
        self.pipeline = pipeline
        self._vessels: List[VesselRecord] = []
        self._callbacks: Dict[Tuple[TaskType, str, FilterContext], MergeCallback] = {}

    @property
    def vessels(self) -> List[VesselRecord]:
        """The primary (un-enriched) vessel list."""
        return list(self._vessels)

    @property
    def rows(self) -> List[VesselRecord]:
        """The rows currently displayed, enriched as far as results have arrived."""
        return self.pipeline.merger.rows

    @property
    def filter_context(self) -> FilterContext:
        return self.pipeline.merger.active_filter

    @property
    def progress(self) -> Progress:
        return self.pipeline.progress

    def load_vessels(self, vessels: Iterable[VesselRecord]) -> List[VesselRecord]:
        """Accept a fresh primary vessel list and queue enrichment for what is visible."""
        self._vessels = list(vessels)
        logger.info("Loaded primary vessel list", extra={"vessels": len(self._vessels)})
        self._refresh_view()
        return self.rows

    def set_voyage_filter(self, voyage_status: Union[VoyageStatus, str, FilterContext]) -> List[VesselRecord]:
        """Switch the voyage filter; rows re-render from the primary list and cached results."""
        if isinstance(voyage_status, FilterContext):
            context = voyage_status
        else:
            context = FilterContext(voyage_status=VoyageStatus(voyage_status))
        self.pipeline.merger.set_filter(context)
        self._refresh_view()
        return self.rows

    def refresh(self) -> int:
        """Manual refresh: drop all cached enrichment and request it again."""
        self.pipeline.clear_all()
        self._callbacks.clear()
        self._refresh_view()
        return len(self.pipeline.queue)

    def enqueue_missing(self) -> int:
        """Queue one task per visible key lacking a value; returns how many new tasks were queued."""
        context = self.filter_context
        queued_before = len(self.pipeline.queue)
        for task_type in self.pipeline.adapters:
            for key, raw_value in self.pipeline.merger.missing(task_type):
                callback = self._callback_for(task_type, key, context)
                self.pipeline.enqueue(task_type, raw_value, callback, filter_context=context)
        requested = len(self.pipeline.queue) - queued_before
        if requested:
            logger.debug("Requested enrichment", extra={"tasks": requested, "queued": len(self.pipeline.queue)})
        return requested

    def _callback_for(self, task_type: TaskType, key: str, context: FilterContext) -> MergeCallback:
        # One callback object per view and key, so repeat requests fold into the queued task.
        ident = (task_type, key, context)
        callback = self._callbacks.get(ident)
        if callback is None:
            callback = self._callbacks[ident] = OutcomeCallback(partial(self._apply_result, task_type, key, context))
        return callback

    def _refresh_view(self) -> None:
        visible = filter_vessels(self._vessels, self.filter_context)
        self.pipeline.merger.replace_rows(visible)
        self.enqueue_missing()

    def _apply_result(
        self,
        task_type: TaskType,
        key: str,
        requested_for: FilterContext,
        outcome: FetchOutcome,
    ) -> MergeOutcome:
        merger = self.pipeline.merger
        result = TaskResult(task_type, key, outcome.value, requested_for, ok=outcome.ok)
        return merger.merge(result, merger.active_filter)

    async def aclose(self) -> None:
        await self.pipeline.aclose()
        self._callbacks.clear()
        self._vessels = []
        self.pipeline.merger.replace_rows([])
