from __future__ import annotations
import time
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from settings import get_settings

T = TypeVar("T")


class SummaryCache:
    """TTL cache for dashboard aggregates, invalidated explicitly after ingestion."""

    def __init__(
        self,
        default_ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        # Bumped by every invalidation; computed values started before a bump are dropped.
        self._generation = 0
        self._lock = Lock()

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expiry = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (value, expiry)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._clock() > expiry:
                del self._entries[key]
                return None
            return value

    def get_or_compute(self, key: str, compute: Callable[[], T], ttl: Optional[float] = None) -> T:
        """Return the cached value or compute it.

        A value whose computation overlapped an invalidation is returned to the
        caller but not stored.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        with self._lock:
            generation = self._generation
        value = compute()
        expiry = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            if self._generation == generation:
                self._entries[key] = (value, expiry)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._generation += 1
            self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key containing ``pattern``; return how many were dropped."""
        with self._lock:
            self._generation += 1
            matching = [key for key in self._entries if pattern in key]
            for key in matching:
                del self._entries[key]
        return len(matching)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expiry) in self._entries.items() if now > expiry]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@lru_cache
def build_default_cache(ttl: Optional[float] = None) -> SummaryCache:
    settings = get_settings()
    return SummaryCache(default_ttl=settings.summary_cache_ttl_seconds if ttl is None else ttl)
