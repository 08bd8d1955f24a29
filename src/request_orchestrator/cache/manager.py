# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Response cache with per-entry TTL on top of an LRU store.

The manager keeps hit/miss statistics, treats stale entries as misses
(deleting them on read), and can optionally run a background sweep that
removes expired entries before they are read.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import time
from collections.abc import Callable
from typing import Any

from ..observability.constants import (
    CACHE_EVICTIONS_TOTAL,
    CACHE_EXPIRATIONS_TOTAL,
    CACHE_HITS_TOTAL,
    CACHE_MISSES_TOTAL,
)
from ..observability.protocols import MetricsCollectorProtocol
from ..types.request import RequestDescriptor, default_request_key
from .models import CacheEntry, CacheStats
from .store import LRUStore

logger = logging.getLogger(__name__)


def generate_cache_key(descriptor: RequestDescriptor) -> str:
    """Cache key for ``descriptor``: its custom generator if set, else the default key."""
    generator = descriptor.cache_policy.key_generator
    if generator is not None:
        return generator(descriptor)
    return default_request_key(descriptor)


class CacheManager:
    """
    TTL + LRU response cache.

    Args:
        ttl: Default entry lifetime in seconds
        max_size: Maximum number of entries
        enabled: When False every lookup misses and nothing is stored
        cleanup_interval: Seconds between background sweeps (see ``start``)
        metrics_collector: Optional collector for hit/miss/eviction counters
        clock: Time source in seconds; ``time.monotonic`` by default

    Example:
        >>> cache = CacheManager(ttl=60, max_size=2)
        >>> cache.set("GET:/a", {"id": 1})
        >>> cache.get("GET:/a")
        {'id': 1}
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_size: int = 100,
        enabled: bool = True,
        cleanup_interval: float = 60.0,
        metrics_collector: MetricsCollectorProtocol | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if cleanup_interval <= 0:
            raise ValueError("cleanup_interval must be positive")
        self._ttl = ttl
        self._enabled = enabled
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._metrics_collector = metrics_collector
        self._store: LRUStore[CacheEntry] = LRUStore(max_size, on_evict=self._on_evict)
        self.stats = CacheStats()

        self._cleanup_task: asyncio.Task[None] | None = None
        self._running = False

    # === Lifecycle ===

    async def start(self) -> None:
        """Start the background expiry sweep."""
        if self._running:
            return
        self._running = True
        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(), name=f"cache_cleanup_{id(self)}"
        )
        logger.info(
            f"Cache cleanup started (interval={self._cleanup_interval}s, "
            f"ttl={self._ttl}s, max_size={self.max_size})"
        )

    async def stop(self) -> None:
        """Stop the background sweep. Entries are kept."""
        if not self._running:
            return
        self._running = False
        if self._cleanup_task is not None and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
        self._cleanup_task = None
        logger.info("Cache cleanup stopped")

    async def close(self) -> None:
        await self.stop()
        self.clear()

    async def __aenter__(self) -> CacheManager:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    @property
    def running(self) -> bool:
        return self._running

    # === Configuration ===

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._store.max_size

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def update_config(self, ttl: float | None = None, max_size: int | None = None) -> None:
        """
        Change the default TTL and/or capacity.

        Shrinking ``max_size`` evicts least recently used entries until the
        cache fits. A new ``ttl`` is applied retroactively: entries that are
        already stale are dropped, the rest keep their creation time and
        adopt the new TTL.
        """
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_size is not None:
            self._store.resize(max_size)

        if ttl is not None and ttl != self._ttl:
            self._ttl = ttl
            now = self._clock()
            for key, entry in self._store.items():
                if entry.is_expired(now):
                    self._store.delete(key)
                    self._record_expiration()
                else:
                    entry.ttl = ttl
        logger.info(f"Cache config updated (ttl={self._ttl}s, max_size={self.max_size})")

    # === Operations ===

    def get(self, key: str) -> Any | None:
        """
        Return the cached payload for ``key``, or None on a miss.

        A stale entry is deleted and counted as a miss.
        """
        if not self._enabled:
            return None

        entry = self._store.get(key)
        if entry is None:
            self._record_miss()
            return None

        now = self._clock()
        if entry.is_expired(now):
            self._store.delete(key)
            self._record_expiration()
            self._record_miss()
            return None

        entry.touch(now)
        self._record_hit()
        return entry.payload

    def set(self, key: str, payload: Any, ttl: float | None = None) -> None:
        if not self._enabled:
            return
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=self._clock(),
            ttl=ttl if ttl is not None else self._ttl,
        )
        self._store.set(key, entry)

    def has(self, key: str) -> bool:
        """True if ``key`` holds a fresh entry. Does not affect stats or recency."""
        entry = self._store.peek(key)
        return entry is not None and not entry.is_expired(self._clock())

    def delete(self, key: str) -> bool:
        return self._store.delete(key)

    def clear(self, pattern: str | re.Pattern[str] | None = None) -> int:
        """
        Remove entries, returning how many were removed.

        With ``pattern`` only keys matching the regular expression (searched
        anywhere in the key) are removed. Hit/miss counters are kept.
        """
        if pattern is None:
            removed = len(self._store)
            self._store.clear()
        else:
            regex = re.compile(pattern) if isinstance(pattern, str) else pattern
            removed = 0
            for key in self._store.keys():
                if regex.search(key) and self._store.delete(key):
                    removed += 1
        logger.info(f"Cache cleared ({removed} entries)")
        return removed

    def cleanup_expired(self) -> int:
        """Remove every stale entry; returns the number removed."""
        now = self._clock()
        removed = 0
        for key, entry in self._store.items():
            if entry.is_expired(now) and self._store.delete(key):
                self._record_expiration()
                removed += 1
        if removed:
            logger.debug(f"Cleaned up {removed} expired cache entries")
        return removed

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": len(self._store),
            "max_size": self.max_size,
            "hit_count": self.stats.hit_count,
            "miss_count": self.stats.miss_count,
            "hit_rate": self.stats.hit_rate,
            "keys": self._store.keys(),
        }

    def __len__(self) -> int:
        return len(self._store)

    # === Internals ===

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._cleanup_interval)
            try:
                self.cleanup_expired()
            except Exception as e:
                logger.error(f"Error during cache cleanup: {e}", exc_info=True)

    def _on_evict(self, key: str, _entry: CacheEntry) -> None:
        self.stats.evictions += 1
        if self._metrics_collector:
            self._metrics_collector.inc_counter(CACHE_EVICTIONS_TOTAL)

    def _record_hit(self) -> None:
        self.stats.hit_count += 1
        if self._metrics_collector:
            self._metrics_collector.inc_counter(CACHE_HITS_TOTAL)

    def _record_miss(self) -> None:
        self.stats.miss_count += 1
        if self._metrics_collector:
            self._metrics_collector.inc_counter(CACHE_MISSES_TOTAL)

    def _record_expiration(self) -> None:
        self.stats.expirations += 1
        if self._metrics_collector:
            self._metrics_collector.inc_counter(CACHE_EXPIRATIONS_TOTAL)


__all__ = ["CacheManager", "generate_cache_key"]
