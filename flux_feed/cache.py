"""
In-process caches shared across requests.

- FeedCache: parsed feeds keyed by (url, mode, max_items), with a fresh
  window served without network and a longer stale window used only as a
  fallback when a refetch fails
- ImageUsageTracker: stock-image URLs already handed out, used to bias
  later picks toward unused images

Both are plain objects constructed once per process and passed by
reference. Nothing is persisted. Entries past the stale window are purged
by evict_expired(), which the feed parser runs before every cache write.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Callable, Iterable

from .types import ParsedFeed


Clock = Callable[[], float]
CacheKey = tuple[str, str, int]


def cache_key(url: str, mode: str, max_items: int) -> CacheKey:
    return (url, mode, max_items)


@dataclass(frozen=True)
class CacheEntry:
    """A cached parse result.

    Attributes:
        saved_at: Clock value (seconds) of the successful fetch
        data: The normalized feed
    """

    saved_at: float
    data: ParsedFeed


class FeedCache:
    """TTL cache for parsed feeds with stale-on-error fallback.

    Args:
        ttl_fresh: Seconds an entry is served without refetching
        ttl_stale: Seconds an entry remains usable as a failure fallback
        clock: Returns the current time in seconds; injectable for tests
    """

    def __init__(
        self,
        ttl_fresh: float = 30 * 60,
        ttl_stale: float = 6 * 60 * 60,
        clock: Clock | None = None,
    ):
        self.ttl_fresh = ttl_fresh
        self.ttl_stale = ttl_stale
        self._clock = clock or time.time
        self._entries: dict[CacheKey, CacheEntry] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def put(self, key: CacheKey, data: ParsedFeed, saved_at: float | None = None) -> CacheEntry:
        entry = CacheEntry(saved_at=self.now() if saved_at is None else saved_at, data=data)
        self._entries[key] = entry
        return entry

    def age(self, entry: CacheEntry) -> float:
        return self.now() - entry.saved_at

    def get_fresh(self, key: CacheKey) -> ParsedFeed | None:
        """Return the cached feed if it is younger than the fresh TTL."""
        entry = self._entries.get(key)
        if entry is not None and self.age(entry) < self.ttl_fresh:
            return entry.data
        return None

    def get_stale(self, key: CacheKey) -> ParsedFeed | None:
        """Return the cached feed if it is still inside the stale window."""
        entry = self._entries.get(key)
        if entry is not None and self.age(entry) < self.ttl_stale:
            return entry.data
        return None

    def evict_expired(self) -> int:
        """Drop entries past the stale window. Returns the number removed."""
        expired = [key for key, entry in self._entries.items() if self.age(entry) >= self.ttl_stale]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class ImageUsageTracker:
    """Remembers stock-image URLs that were already used."""

    def __init__(self):
        self._used: set[str] = set()

    def mark_used(self, url: str) -> None:
        self._used.add(url)

    def is_used(self, url: str) -> bool:
        return url in self._used

    def pick(self, urls: Iterable[str]) -> str | None:
        """Pick the first unused URL, else the first URL; marks the pick as used."""
        candidates = [url for url in urls if url]
        if not candidates:
            return None
        choice = next((url for url in candidates if url not in self._used), candidates[0])
        self._used.add(choice)
        return choice

    def __len__(self) -> int:
        return len(self._used)
