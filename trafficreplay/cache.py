"""
In-memory cache for repeated replay queries.

Filter option lists (airspaces and airports seen in a range) are
requested by every client on every timeline change, and each one is a
GROUP BY over the whole range. A short TTL keeps them fresh between
poll cycles while collapsing bursts of identical requests.

The ingestion pipeline clears the cache after each cycle so newly
written rows show up on the next request.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Optional

from trafficreplay.config import config

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    cached_at: float = field(default_factory=time.time)


class QueryCache:
    """
    Thread-safe TTL cache keyed by query parameters.

    Entries expire after ttl_seconds; when over capacity the oldest 10%
    are evicted.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.cache.ttl_seconds
        self.max_entries = max_entries or config.cache.max_entries
        self._clock = clock

        self._cache: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Return cached value, or None if absent or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                if self._clock() - entry.cached_at < self.ttl_seconds:
                    self._hits += 1
                    return entry.value
                del self._cache[key]
            self._misses += 1
        return None

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = CacheEntry(value=value, cached_at=self._clock())
            if len(self._cache) > self.max_entries:
                self._evict_oldest()

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Return cached value or compute, store and return it."""
        value = self.get(key)
        if value is None:
            value = compute()
            self.set(key, value)
        return value

    def _evict_oldest(self) -> None:
        """Remove oldest entries when over capacity."""
        entries = sorted(self._cache.items(), key=lambda x: x[1].cached_at)
        to_remove = max(1, len(entries) // 10)
        for key, _ in entries[:to_remove]:
            del self._cache[key]

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._cache.clear()
        logger.debug('Query cache cleared')

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                'entries': len(self._cache),
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0,
            }
