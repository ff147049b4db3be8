"""In-memory keyed cache with optional TTL, scoped to one dashboard session."""

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from fleetwatch.app_types import CacheEntry
from fleetwatch.cache_store.base import KeyedCache

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache_store/in_memory_keyed_cache")

T = TypeVar("T")


class InMemoryKeyedCache(KeyedCache[T]):
    """Thread-safe keyed cache; entries live for the session unless a TTL is set."""

    def __init__(
        self,
        name: str,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize with a name for logs, an optional TTL (seconds) and a monotonic clock."""
        logger.debug("Initializing InMemoryKeyedCache name=%s ttl=%s", name, ttl_seconds)
        self.name = name
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: CacheEntry[T]) -> bool:
        return entry.expires_at is not None and entry.expires_at <= self._clock()

    def _live_entry(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the entry for key, evicting it first if it has expired. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            self._entries.pop(key, None)
            logger.debug("%s cache expired key=%s", self.name, key)
            return None
        return entry

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    def entry(self, key: str) -> Optional[CacheEntry[T]]:
        with self._lock:
            return self._live_entry(key)

    def set(self, key: str, value: T) -> None:
        expires_at = self._clock() + self.ttl if self.ttl is not None else None
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                fetched_at=datetime.now(timezone.utc),
                expires_at=expires_at,
            )
            size = len(self._entries)
        logger.debug("%s cache set key=%s size=%s", self.name, key, size)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
        logger.debug("%s cache cleared dropped=%s", self.name, dropped)

    def is_stale(self, key: str, max_age_seconds: float) -> bool:
        """External freshness check, independent of the configured TTL."""
        entry = self.entry(key)
        if entry is None:
            return True
        age = (datetime.now(timezone.utc) - entry.fetched_at).total_seconds()
        return age > max_age_seconds

    def keys(self) -> Iterator[str]:
        with self._lock:
            live: List[str] = [key for key in list(self._entries) if self._live_entry(key) is not None]
        return iter(live)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with self._lock:
            return self._live_entry(key) is not None

    def __len__(self) -> int:
        return len(list(self.keys()))
