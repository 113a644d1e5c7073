"""
Result Cache

In-memory TTL cache for pure, recomputable results such as
article selections. Key = SHA-256 of the caller's key parts.

Entries are advisory: the cached computations are pure, so a
miss or a racing write only costs a recomputation, never a wrong
answer. Expired entries are swept by sweep_periodically().

Usage:
    from fairreview.cache import ResultCache
    cache = ResultCache(ttl_seconds=1800)
    hit = cache.get(text, hints, "6")
    if hit is None:
        hit = compute()
        cache.put(hit, text, hints, "6")
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
import time
from typing import Any, Optional

from fairreview.config import settings

logger = logging.getLogger(__name__)


class ResultCache:
    """Thread-safe in-memory cache with TTL eviction."""

    def __init__(
        self,
        ttl_seconds: float = settings.CACHE_TTL,
        max_entries: int = settings.CACHE_MAX_ENTRIES,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._cache: dict[str, tuple[float, Any]] = {}
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(*parts: str) -> str:
        """SHA-256 hash of the joined key parts."""
        raw = "||".join(parts)
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def get(self, *parts: str) -> Optional[Any]:
        """Return cached value if it exists and has not expired."""
        key = self.make_key(*parts)
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            ts, value = entry
            if time.monotonic() - ts > self._ttl:
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return value

    def put(self, value: Any, *parts: str) -> None:
        """Store value. Evicts the oldest entry when at capacity."""
        key = self.make_key(*parts)
        with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_entries:
                oldest_key = min(self._cache, key=lambda k: self._cache[k][0])
                del self._cache[oldest_key]

            self._cache[key] = (time.monotonic(), value)

    def invalidate(self, *parts: str) -> None:
        """Remove a specific entry."""
        key = self.make_key(*parts)
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = time.monotonic()
        with self._lock:
            stale = [k for k, (ts, _) in self._cache.items() if now - ts > self._ttl]
            for k in stale:
                del self._cache[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def stats(self) -> dict:
        """Cache hit/miss statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
        }


class NullCache(ResultCache):
    """Cache that never stores anything. Every lookup recomputes."""

    def __init__(self):
        super().__init__(ttl_seconds=0, max_entries=1)

    def get(self, *parts: str) -> Optional[Any]:
        self._misses += 1
        return None

    def put(self, value: Any, *parts: str) -> None:
        return None


async def sweep_periodically(
    cache: ResultCache,
    interval: float = settings.CACHE_SWEEP_INTERVAL,
) -> None:
    """Evict expired entries every `interval` seconds until cancelled.

    The host starts this as a background task:
        task = asyncio.create_task(sweep_periodically(result_cache))
    """
    while True:
        await asyncio.sleep(interval)
        removed = cache.evict_expired()
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)


# Process-scoped default, injected into components that are not given one
result_cache = ResultCache()
