"""Ordered, deduplicated queue of pending enrichment tasks."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from fleetwatch.domain import FilterContext, TaskType, normalize_key
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)

CompletionCallback = Callable[[Any], Any]
TaskIdentity = Tuple[TaskType, str]


class OutcomeCallback:
    """
    Marks a completion callback that wants the whole FetchOutcome.

    Plain callbacks receive only the value; a wrapped one also learns whether
    that value is a fallback default from a failed lookup.
    """

    __slots__ = ("func",)

    def __init__(self, func: Callable[[Any], Any]) -> None:
        self.func = func

    def __call__(self, outcome: Any) -> Any:
        return self.func(outcome)


def coerce_task_type(value: Union[TaskType, str]) -> Optional[TaskType]:
    """Accept enum members or their wire names ("defectCount"); None if unknown."""
    if isinstance(value, TaskType):
        return value
    try:
        return TaskType(value)
    except ValueError:
        return None


@dataclass(eq=False)
class EnrichmentTask:
    """One deferred lookup: a task type, its normalized key and who to tell."""
    task_type: TaskType
    key: str
    lookup_value: Any
    callbacks: List[CompletionCallback] = field(default_factory=list)
    filter_context: Optional[FilterContext] = None
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def identity(self) -> TaskIdentity:
        return self.task_type, self.key

    def add_callback(self, callback: Optional[CompletionCallback]) -> bool:
        """Attach a callback unless it is already attached."""
        if callback is None or any(existing is callback for existing in self.callbacks):
            return False
        self.callbacks.append(callback)
        return True


class TaskQueue:
    """
    FIFO of EnrichmentTasks with at most one queued task per (task_type, key).

    A duplicate enqueue returns the task already waiting and attaches the new
    callback to it, so every distinct callback still fires exactly once.
    """

    def __init__(self, supported: Iterable[TaskType] = tuple(TaskType)) -> None:
        self._supported = frozenset(supported)
        self._tasks: Deque[EnrichmentTask] = deque()
        self._index: Dict[TaskIdentity, EnrichmentTask] = {}
        self.generation = 0
        self.duplicates_dropped = 0

    @property
    def supported(self) -> frozenset:
        """Task types this queue accepts."""
        return self._supported

    def enqueue(
        self,
        task_type: Union[TaskType, str],
        lookup_value: Any,
        on_complete: Optional[CompletionCallback] = None,
        filter_context: Optional[FilterContext] = None,
    ) -> Optional[EnrichmentTask]:
        """
        Queue a lookup, or fold `on_complete` into the task already queued for the same key.

        The key is normalized for dedup while `lookup_value` is kept as given
        for the remote call. Returns None for unsupported task types or empty keys.
        """
        resolved = coerce_task_type(task_type)
        if resolved is None or resolved not in self._supported:
            logger.warning("Rejecting enqueue for unsupported task type %r", task_type)
            return None

        key = normalize_key(resolved, lookup_value)
        if not key:
            logger.warning("Rejecting %s enqueue with empty key %r", resolved.value, lookup_value)
            return None

        existing = self._index.get((resolved, key))
        if existing is not None:
            existing.add_callback(on_complete)
            self.duplicates_dropped += 1
            logger.debug("Duplicate %s task for key=%s folded into queued task", resolved.value, key)
            return existing

        task = EnrichmentTask(task_type=resolved, key=key, lookup_value=lookup_value, filter_context=filter_context)
        task.add_callback(on_complete)
        self._tasks.append(task)
        self._index[task.identity] = task
        logger.debug("Queued %s task key=%s depth=%s", resolved.value, key, len(self._tasks))
        return task

    def pop(self) -> Optional[EnrichmentTask]:
        """Remove and return the head task, or None when empty."""
        if not self._tasks:
            return None
        task = self._tasks.popleft()
        self._index.pop(task.identity, None)
        return task

    def clear(self) -> List[EnrichmentTask]:
        """Flush every queued task and start a new generation; returns what was dropped."""
        dropped = list(self._tasks)
        self._tasks.clear()
        self._index.clear()
        self.generation += 1
        if dropped:
            logger.info("Task queue flushed dropped=%s generation=%s", len(dropped), self.generation)
        return dropped

    def contains(self, task_type: TaskType, key: str) -> bool:
        """True if a task for the normalized `key` is waiting (not yet popped)."""
        return (task_type, key) in self._index

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[EnrichmentTask]:
        return iter(list(self._tasks))
