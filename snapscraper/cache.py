"""
Response Cache
==============
In-memory TTL memoisation for extraction results and raw documents.

- Entries live for ``ttl`` seconds from creation (default 300 s).  An access
  that finds an expired entry drops it, and a miss sweeps every expired
  entry at most once per ``default_ttl``.
- ``get_or_fetch`` is atomic per key: concurrent callers for the same key
  share one producer call (per-key ``asyncio.Lock``, double-checked).  A
  key's lock exists only while some caller is using it.
- A producer that raises leaves nothing behind; the exception propagates.

The clock is injectable so tests can move time without sleeping.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class CacheEntry:
    """One memoised value."""
    key: Hashable
    value: Any
    created_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.created_at <= self.ttl


@dataclass
class CacheStats:
    """Counters reported by ``ResponseCache.stats()``."""
    hits: int = 0
    misses: int = 0
    size: int = 0

    def to_dict(self) -> dict:
        return {'hits': self.hits, 'misses': self.misses, 'size': self.size}


class ResponseCache:
    """
    Keyed TTL cache with single-flight population.

    Usage::

        cache = ResponseCache(default_ttl=300)
        tiles = await cache.get_or_fetch(("dave", "spotlight", "en-US"), produce)
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        self.default_ttl = default_ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._lock_users: Dict[Hashable, int] = {}
        self._last_purge = clock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _lookup(self, key: Hashable) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            logger.debug(f"[CACHE] {self.name}: expired {key}")
            return None
        return entry

    def get(self, key: Hashable) -> Optional[Any]:
        """Fresh value for *key*, or None (does not count as hit/miss)."""
        entry = self._lookup(key)
        return entry.value if entry else None

    async def get_or_fetch(
        self,
        key: Hashable,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value for *key*, producing it on miss or expiry.

        Args:
            key: Hashable cache key, e.g. (subject, category, locale)
            producer: Zero-argument coroutine function computing the value
            ttl: Lifetime in seconds (defaults to ``default_ttl``)

        Returns:
            The cached or freshly produced value

        Raises:
            Whatever *producer* raises; failures are never cached.
        """
        entry = self._lookup(key)
        if entry is not None:
            self._hits += 1
            logger.debug(f"[CACHE] {self.name}: hit {key}")
            return entry.value

        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                # Another caller may have populated it while we waited
                entry = self._lookup(key)
                if entry is not None:
                    self._hits += 1
                    logger.debug(f"[CACHE] {self.name}: hit {key} (after wait)")
                    return entry.value

                self._misses += 1
                logger.debug(f"[CACHE] {self.name}: miss {key}")
                self._purge_if_due()
                value = await producer()
                self._entries[key] = CacheEntry(
                    key=key,
                    value=value,
                    created_at=self._clock(),
                    ttl=self.default_ttl if ttl is None else ttl,
                )
                return value
        finally:
            self._release(key)

    def _release(self, key: Hashable) -> None:
        users = self._lock_users.get(key, 0) - 1
        if users > 0:
            self._lock_users[key] = users
        else:
            self._lock_users.pop(key, None)
            self._locks.pop(key, None)

    def _purge_if_due(self) -> None:
        if self._clock() - self._last_purge >= self.default_ttl:
            self.purge_expired()

    def invalidate(self, key: Hashable) -> bool:
        """Drop *key*; True when an entry was removed."""
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug(f"[CACHE] {self.name}: invalidated {key}")
        return removed

    def clear(self) -> None:
        # Locks belong to in-flight callers and go away when they finish
        self._entries.clear()

    @property
    def active_locks(self) -> int:
        """Keys with a caller currently inside ``get_or_fetch``."""
        return len(self._locks)

    def purge_expired(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        now = self._clock()
        self._last_purge = now
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"[CACHE] {self.name}: purged {len(expired)} expired entr{'y' if len(expired) == 1 else 'ies'}")
        return len(expired)

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))
