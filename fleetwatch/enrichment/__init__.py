"""Progressive background enrichment of the fleet dashboard rows."""

from .adapters import (
    ChecklistStatsAdapter,
    DefectCountAdapter,
    FetchAdapter,
    PortDocCountAdapter,
    build_adapters,
)
from .debounce import DebounceHandle, Debouncer
from .merger import ResultMerger
from .pipeline import EnrichmentFlushedError, EnrichmentPipeline
from .processor import QueueProcessor
from .task_queue import EnrichmentTask, OutcomeCallback, TaskQueue, coerce_task_type

__all__ = [
    "build_adapters",
    "ChecklistStatsAdapter",
    "DebounceHandle",
    "Debouncer",
    "DefectCountAdapter",
    "EnrichmentFlushedError",
    "EnrichmentPipeline",
    "EnrichmentTask",
    "FetchAdapter",
    "OutcomeCallback",
    "PortDocCountAdapter",
    "QueueProcessor",
    "ResultMerger",
    "TaskQueue",
    "coerce_task_type",
]
