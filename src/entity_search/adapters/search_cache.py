"""Cache port for search results plus an in-process implementation.

The search subsystem treats caching as an optional optimization: callers
must stay correct when every cache call fails or the cache is absent.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import logging
import time
from typing import Any, Protocol, runtime_checkable


logger = logging.getLogger(__name__)

SEARCH_CACHE_TAG = "search"


@runtime_checkable
class SearchCache(Protocol):
    """Generic key-value cache with TTL and tag invalidation."""

    async def get(self, key: str) -> Any | None:  # pragma: no cover - Protocol only
        """Return the cached value or None on a miss."""

    async def set(self, key: str, value: Any, *, ttl: float, tags: Sequence[str] = ()) -> None:  # pragma: no cover
        """Store ``value`` for ``ttl`` seconds under ``tags``."""

    async def invalidate_by_tags(self, tags: Sequence[str]) -> None:  # pragma: no cover - Protocol only
        """Drop every entry carrying any of ``tags``."""


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float
    tags: frozenset[str]


class InMemorySearchCache:
    """Dictionary-backed cache with lazy expiry and hit/miss counters."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    async def set(self, key: str, value: Any, *, ttl: float, tags: Sequence[str] = ()) -> None:
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl, tags=frozenset(tags))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def invalidate_by_tags(self, tags: Sequence[str]) -> None:
        wanted = set(tags)
        stale = [key for key, entry in self._entries.items() if entry.tags & wanted]
        for key in stale:
            del self._entries[key]
        logger.debug("Invalidated %d cache entries for tags %s", len(stale), sorted(wanted))

    async def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> dict[str, float | int]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / total * 100) if total else 0.0,
            "total_keys": len(self._entries),
        }

    def __len__(self) -> int:
        return len(self._entries)
