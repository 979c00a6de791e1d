"""Bounded in-memory result cache with FIFO eviction.

Entries are evicted strictly in insertion order: when a new key would
exceed ``max_entries`` the oldest-inserted entry goes, regardless of reads.
Results are deep-copied on the way in and out, so callers never share
rows or metadata with the cache.
"""

import copy
import threading
from dataclasses import dataclass, field
from time import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kgqa.pipeline.models import QueryOptions, QueryResult


@dataclass(slots=True)
class CacheEntry:
    result: "QueryResult"
    inserted_at: float = field(default_factory=time)


class QueryCache:
    """Thread-safe FIFO cache of successful QueryResults."""

    __slots__ = ("max_entries", "_entries", "_lock")

    def __init__(self, max_entries: int = 100):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> "QueryResult | None":
        with self._lock:
            entry = self._entries.get(key)
            return copy.deepcopy(entry.result) if entry else None

    def put(self, key: str, result: "QueryResult") -> None:
        stored = copy.deepcopy(result)
        with self._lock:
            if key in self._entries:
                self._entries[key].result = stored
                return
            while len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = CacheEntry(stored)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        """Keys in insertion order (oldest first)."""
        with self._lock:
            return list(self._entries)

    def stats(self) -> dict:
        with self._lock:
            return {
                "keys": len(self._entries),
                "max_entries": self.max_entries,
                "backend": "memory",
                "eviction": "fifo",
            }

    @staticmethod
    def make_key(query: str, options: "QueryOptions") -> str:
        return f"{query.lower()}:{options.cache_token()}"
