"""Cache-first async lookups for the three enrichment task types.

Each adapter owns one KeyedCache. A lookup returns the cached value when
there is one; otherwise it calls the remote collaborator, coerces the reply
into a fixed shape, caches it and returns it. Remote failures never
propagate: the adapter logs a warning, tells the failure observer and
returns the type's documented default, which is not cached.

Defaults:
    defectCount    -> DefectCounts(total=0, high=0, medium=0, low=0)
    checklistStats -> ChecklistStats(status="pending", progress=0)
    portDocCount   -> 0
"""
from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar

from fleetwatch.app_types import FetchFailure, FetchOutcome
from fleetwatch.cache_store import InMemoryKeyedCache, KeyedCache
from fleetwatch.data_sources.base import FleetDataSource
from fleetwatch.domain import (
    ChecklistStats,
    ChecklistStatus,
    DefectCounts,
    TaskType,
    normalize_key,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)

T = TypeVar("T")

FailureObserver = Callable[[FetchFailure], None]


class FetchAdapter(Generic[T]):
    """Base adapter: key normalization, cache-first lookup and soft failure."""

    task_type: TaskType

    def __init__(
        self,
        remote: Callable[[str], Any],
        *,
        cache: Optional[KeyedCache[T]] = None,
        on_failure: Optional[FailureObserver] = None,
    ) -> None:
        self._remote = remote
        if cache is None:
            cache = InMemoryKeyedCache(name=f"adapter/{self.task_type.value}")
        self.cache: KeyedCache[T] = cache
        self._on_failure = on_failure
        self.remote_calls = 0
        self.failures = 0

    @property
    def default(self) -> T:
        """Value returned when the lookup fails or the key is empty."""
        raise NotImplementedError

    def coerce(self, raw: Any) -> T:
        """Turn a collaborator reply into this adapter's result shape."""
        raise NotImplementedError

    def cache_key(self, lookup_value: Any) -> str:
        return normalize_key(self.task_type, lookup_value)

    def cached(self, lookup_value: Any) -> Optional[T]:
        """Synchronous cache lookup; never calls the remote service."""
        key = self.cache_key(lookup_value)
        return self.cache.get(key) if key else None

    async def fetch(self, lookup_value: Any) -> T:
        """Return the value for `lookup_value`; never raises for remote failures."""
        return (await self.fetch_outcome(lookup_value)).value

    async def fetch_outcome(self, lookup_value: Any) -> FetchOutcome[T]:
        """Like fetch(), but says whether the value came from cache or is a fallback default."""
        key = self.cache_key(lookup_value)
        if not key:
            logger.debug("Empty %s lookup key; returning default", self.task_type.value)
            return FetchOutcome(self.default)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("%s cache hit key=%s", self.task_type.value, key)
            return FetchOutcome(cached, from_cache=True)

        started = time.monotonic()
        self.remote_calls += 1
        try:
            raw = await self._call_remote(lookup_value)
            value = self.coerce(raw)
        except Exception as exc:  # noqa: BLE001 - soft failure by contract
            self.failures += 1
            default = self.default
            logger.warning(
                "%s lookup failed for %r; using default: %s",
                self.task_type.value,
                lookup_value,
                exc,
            )
            self._report_failure(FetchFailure(self.task_type, key, exc, default))
            return FetchOutcome(default, error=exc)

        self.cache.set(key, value)
        logger.debug(
            "%s fetched key=%s in %.3fs",
            self.task_type.value,
            key,
            time.monotonic() - started,
        )
        return FetchOutcome(value)

    async def _call_remote(self, lookup_value: Any) -> Any:
        if inspect.iscoroutinefunction(self._remote):
            return await self._remote(lookup_value)
        result = await asyncio.to_thread(self._remote, lookup_value)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _report_failure(self, failure: FetchFailure) -> None:
        if self._on_failure is None:
            return
        try:
            self._on_failure(failure)
        except Exception:  # noqa: BLE001
            logger.exception("Failure observer raised for %s key=%s", failure.task_type.value, failure.key)


class DefectCountAdapter(FetchAdapter[DefectCounts]):
    """Open defect counts, keyed by normalized vessel name."""

    task_type = TaskType.DEFECT_COUNT

    @property
    def default(self) -> DefectCounts:
        return DefectCounts()

    def coerce(self, raw: Any) -> DefectCounts:
        if isinstance(raw, DefectCounts):
            return raw
        if isinstance(raw, Mapping):
            return DefectCounts.model_validate(raw)
        raise TypeError(f"Unexpected defect count payload: {type(raw).__name__}")


class ChecklistStatsAdapter(FetchAdapter[ChecklistStats]):
    """Checklist status and progress, keyed by vessel id."""

    task_type = TaskType.CHECKLIST_STATS

    @property
    def default(self) -> ChecklistStats:
        return ChecklistStats()

    def coerce(self, raw: Any) -> ChecklistStats:
        if isinstance(raw, ChecklistStats):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unexpected checklist payload: {type(raw).__name__}")
        status = ChecklistStatus.parse(raw.get("status"))
        progress = int(round(float(raw.get("progress") or 0)))
        return ChecklistStats(
            status=status.value if status else str(raw.get("status") or ChecklistStatus.PENDING.value).lower(),
            progress=max(0, min(100, progress)),
        )


class PortDocCountAdapter(FetchAdapter[int]):
    """Port document counts, keyed by normalized port name."""

    task_type = TaskType.PORT_DOC_COUNT

    @property
    def default(self) -> int:
        return 0

    def coerce(self, raw: Any) -> int:
        if isinstance(raw, bool) or raw is None:
            raise TypeError(f"Unexpected port document count: {raw!r}")
        return max(0, int(raw))


def build_adapters(
    data_source: FleetDataSource,
    *,
    ttl_seconds: Optional[float] = None,
    on_failure: Optional[FailureObserver] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Dict[TaskType, FetchAdapter]:
    """One adapter per task type, each with its own cache."""

    def _cache(task_type: TaskType) -> InMemoryKeyedCache:
        return InMemoryKeyedCache(name=f"adapter/{task_type.value}", ttl_seconds=ttl_seconds, clock=clock)

    return {
        TaskType.DEFECT_COUNT: DefectCountAdapter(
            data_source.get_defect_count_for_vessel,
            cache=_cache(TaskType.DEFECT_COUNT),
            on_failure=on_failure,
        ),
        TaskType.CHECKLIST_STATS: ChecklistStatsAdapter(
            data_source.get_checklist_stats_for_vessel,
            cache=_cache(TaskType.CHECKLIST_STATS),
            on_failure=on_failure,
        ),
        TaskType.PORT_DOC_COUNT: PortDocCountAdapter(
            data_source.get_port_document_count,
            cache=_cache(TaskType.PORT_DOC_COUNT),
            on_failure=on_failure,
        ),
    }
