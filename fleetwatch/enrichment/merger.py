"""Apply enrichment results to the displayed vessel rows."""
from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from fleetwatch.app_types import MergeOutcome, TaskResult
from fleetwatch.cache_store import InMemoryKeyedCache
from fleetwatch.domain import (
    ENRICHMENT_FIELDS,
    EnrichmentValue,
    FilterContext,
    TaskType,
    VesselRecord,
    lookup_key,
    raw_lookup_key,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)


class ResultMerger:
    """
    Owns the rows currently on screen and a per-type cache of merged results.

    Every successful result is mirrored into the cache; a fallback default
    from a failed lookup is shown but never cached, so the key is requested
    again the next time a view is built. A result is written into the rows only
    if the filter context it was requested under is still the active one;
    otherwise it waits in the cache until hydrate() picks it up for a later
    view. Rows are frozen models: a merge builds a new list and copies only
    the rows it changes.
    """

    def __init__(
        self,
        *,
        active_filter: Optional[FilterContext] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._active_filter = active_filter or FilterContext()
        self._rows: List[VesselRecord] = []
        self._buckets: Dict[TaskType, InMemoryKeyedCache] = {
            task_type: InMemoryKeyedCache(name=f"merged/{task_type.value}", ttl_seconds=ttl_seconds, clock=clock)
            for task_type in TaskType
        }
        self.version = 0

    @property
    def rows(self) -> List[VesselRecord]:
        return self._rows

    @property
    def active_filter(self) -> FilterContext:
        return self._active_filter

    def set_filter(self, context: FilterContext) -> None:
        """Make `context` the view that incoming results are checked against."""
        if context != self._active_filter:
            logger.info(
                "Active filter changed %s -> %s",
                self._active_filter.voyage_status.value,
                context.voyage_status.value,
            )
        self._active_filter = context

    def cached(self, task_type: TaskType, key: str) -> Optional[EnrichmentValue]:
        """Merged value for a normalized key, or None if absent or expired."""
        return self._buckets[task_type].get(key)

    def replace_rows(self, rows: Iterable[VesselRecord]) -> List[VesselRecord]:
        """Swap in a new displayed collection, pre-filled from cached results."""
        self._rows = self.hydrate(rows)
        self.version += 1
        return self._rows

    def hydrate(self, rows: Iterable[VesselRecord]) -> List[VesselRecord]:
        """Return copies of `rows` carrying every cached result that applies to them."""
        hydrated: List[VesselRecord] = []
        for row in rows:
            updates = {}
            for task_type, field_name in ENRICHMENT_FIELDS.items():
                key = lookup_key(task_type, row)
                if not key:
                    continue
                value = self._buckets[task_type].get(key)
                if value is not None and getattr(row, field_name) != value:
                    updates[field_name] = value
            hydrated.append(row.model_copy(update=updates) if updates else row)
        return hydrated

    def missing(self, task_type: TaskType) -> List[Tuple[str, object]]:
        """(key, raw lookup value) pairs of displayed rows that still lack `task_type` data."""
        field_name = ENRICHMENT_FIELDS[task_type]
        seen = set()
        out: List[Tuple[str, object]] = []
        for row in self._rows:
            if getattr(row, field_name) is not None:
                continue
            key = lookup_key(task_type, row)
            if not key or key in seen or self._buckets[task_type].get(key) is not None:
                continue
            seen.add(key)
            out.append((key, raw_lookup_key(task_type, row)))
        return out

    def merge(self, task_result: TaskResult, current_filter_context: Optional[FilterContext] = None) -> MergeOutcome:
        """
        Fold one result into the cache and, when it still applies, into the rows.

        `current_filter_context` defaults to the active filter. Results that
        carry no filter context apply to whatever is displayed.
        """
        current = current_filter_context or self._active_filter
        if task_result.ok:
            self._buckets[task_result.task_type].set(task_result.key, task_result.value)
        else:
            logger.debug("Not caching %s default for key=%s", task_result.task_type.value, task_result.key)

        requested_for = task_result.filter_context
        if requested_for is not None and requested_for != current:
            logger.debug(
                "Skipping %s merge for key=%s: requested under %s, showing %s",
                task_result.task_type.value,
                task_result.key,
                requested_for.voyage_status.value,
                current.voyage_status.value,
            )
            return MergeOutcome.SKIPPED

        field_name = ENRICHMENT_FIELDS[task_result.task_type]
        matched = False
        merged: List[VesselRecord] = []
        for row in self._rows:
            if lookup_key(task_result.task_type, row) == task_result.key:
                merged.append(row.model_copy(update={field_name: task_result.value}))
                matched = True
            else:
                merged.append(row)
        if not matched:
            return MergeOutcome.NO_MATCH

        self._rows = merged
        self.version += 1
        return MergeOutcome.APPLIED

    def clear(self) -> None:
        """Drop every cached result; the displayed rows are left alone."""
        for bucket in self._buckets.values():
            bucket.clear()
