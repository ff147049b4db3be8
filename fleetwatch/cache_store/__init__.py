"""Keyed cache backends for enrichment results."""

from .base import KeyedCache
from .memory import InMemoryKeyedCache

__all__ = [
    "KeyedCache",
    "InMemoryKeyedCache",
]
