"""
Classification cache with single-flight computation.

Classification results are keyed by a fingerprint of (document title, sender
name). Concurrent ingestions of the same document share one in-flight
classification instead of calling the classifier service twice.

Eviction policy: entries expire after ``ttl_seconds`` and the least recently
used entries are dropped once ``max_entries`` is exceeded.

Two genuinely different documents with the same title and sender share a
fingerprint and therefore a label. That is an accepted property of the key,
not something to paper over by widening it.
"""

import asyncio
import hashlib
import re
import time
from typing import Awaitable, Callable

from cachetools import TTLCache

from mailroom.config import settings
from mailroom.core.logging import get_logger
from mailroom.core.models import CacheEntry

log = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _normalize_part(value: str | None) -> str:
    return _WHITESPACE.sub(" ", (value or "").casefold()).strip()


def fingerprint(document_title: str | None, sender_name: str | None) -> str:
    """
    Compute the cache key for a document.

    Case and surrounding/repeated whitespace are ignored, so "ACME  Corp" and
    "acme corp" produce the same fingerprint.
    """
    key = f"{_normalize_part(document_title)}\x1f{_normalize_part(sender_name)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class _LabelStore(TTLCache):
    """TTLCache that reports capacity evictions."""

    def __init__(
        self,
        maxsize: int,
        ttl: float,
        timer: Callable[[], float],
        on_evict: Callable[[str], None],
    ):
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self._on_evict = on_evict

    def popitem(self):
        key, value = super().popitem()
        self._on_evict(key)
        return key, value


class ClassificationCache:
    """In-memory TTL + LRU cache shared by all sessions."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.cache_max_entries
        self._clock = clock
        self._entries: TTLCache = _LabelStore(
            maxsize=self.max_entries,
            ttl=self.ttl_seconds,
            timer=clock,
            on_evict=self._evicted,
        )
        self._inflight: dict[str, asyncio.Task] = {}

        self.hits = 0
        self.misses = 0
        self.joins = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _evicted(self, key: str) -> None:
        self.evictions += 1
        log.debug("classification_cache_evicted", fingerprint=key[:12])

    def get(self, key: str) -> str | None:
        """Return the cached label, or None if missing or expired."""
        entry = self._entries.get(key)
        return entry.label if entry is not None else None

    def put(self, key: str, label: str) -> None:
        """Store a label, replacing any previous entry for the key."""
        self._entries[key] = CacheEntry(label=label, computed_at=self._clock())

    def invalidate(self, key: str) -> None:
        """Remove a key from the cache."""
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """Drop all expired entries. Returns the number removed."""
        removed = len(self._entries.expire())
        if removed:
            log.info("classification_cache_purged", removed=removed)
        return removed

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[str]],
    ) -> str:
        """
        Return the cached label for key, computing it at most once.

        Concurrent callers for the same key wait on the first caller's
        computation. A failed computation is not cached; its exception is
        raised to every waiter. The computation keeps running if the caller
        that started it is cancelled, so its result still lands in the cache.
        """
        label = self.get(key)
        if label is not None:
            self.hits += 1
            return label

        task = self._inflight.get(key)
        if task is not None:
            self.joins += 1
            log.debug("classification_inflight_joined", fingerprint=key[:12])
            return await asyncio.shield(task)

        self.misses += 1
        task = asyncio.ensure_future(self._compute(key, compute))
        task.add_done_callback(_retrieve_exception)
        self._inflight[key] = task
        return await asyncio.shield(task)

    async def _compute(self, key: str, compute: Callable[[], Awaitable[str]]) -> str:
        try:
            label = await compute()
            self.put(key, label)
            return label
        finally:
            self._inflight.pop(key, None)

    def stats(self) -> dict[str, int]:
        """Cache counters for /stats."""
        return {
            "entries": len(self._entries),
            "inflight": len(self._inflight),
            "hits": self.hits,
            "misses": self.misses,
            "joins": self.joins,
            "evictions": self.evictions,
        }


def _retrieve_exception(task: asyncio.Task) -> None:
    # Marks the exception as retrieved when every waiter was cancelled.
    if not task.cancelled():
        task.exception()
