"""Shared dataclasses and lightweight types used across modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from fleetwatch.domain import EnrichmentValue, FilterContext, TaskType

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with the time it was fetched."""
    key: str
    value: T
    fetched_at: datetime
    expires_at: Optional[float] = None  # monotonic deadline, None = never


@dataclass(frozen=True)
class FetchFailure:
    """Reported to the failure observer when an adapter falls back to its default."""
    task_type: TaskType
    key: str
    error: BaseException
    default: Any


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """Typed result of one adapter lookup."""
    value: T
    error: Optional[BaseException] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Progress:
    """Drain progress as shown in the dashboard header."""
    current_step_label: str = ""
    percent_complete: int = 0

    @property
    def idle(self) -> bool:
        return not self.current_step_label and self.percent_complete == 0


IDLE_PROGRESS = Progress()


@dataclass(frozen=True)
class TaskResult:
    """A resolved enrichment task on its way to the merger."""
    task_type: TaskType
    key: str
    value: EnrichmentValue
    filter_context: Optional[FilterContext] = None
    ok: bool = True  # False when value is an adapter default after a failed lookup


class MergeOutcome(str, Enum):
    """What the merger did with a result."""
    APPLIED = "applied"
    SKIPPED = "skipped"  # cached only, filter changed since enqueue
    NO_MATCH = "no_match"  # cached only, no displayed row carries the key


@dataclass
class DrainSummary:
    """Counters for one drain session of the queue processor."""
    session: int
    dispatched: int = 0
    callback_failures: int = 0
    percent_complete: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
