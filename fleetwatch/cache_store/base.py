"""Shared protocol for keyed enrichment caches."""

from typing import Iterator, Optional, Protocol, TypeVar

from fleetwatch.app_types import CacheEntry

T = TypeVar("T")


class KeyedCache(Protocol[T]):
    """Protocol for keyed memoization stores owned by a single writer."""

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None if absent or expired."""

    def entry(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the full cache entry, or None if absent or expired."""

    def set(self, key: str, value: T) -> None:
        """Store `value` under `key`, overwriting any previous entry."""

    def delete(self, key: str) -> None:
        """Drop a key without raising if it is absent."""

    def clear(self) -> None:
        """Drop every entry."""

    def is_stale(self, key: str, max_age_seconds: float) -> bool:
        """Return True if the key is missing or older than `max_age_seconds`."""

    def keys(self) -> Iterator[str]:
        """Iterate over live keys."""

    def __contains__(self, key: object) -> bool: ...

    def __len__(self) -> int: ...
