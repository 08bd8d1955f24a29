# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Bounded key/value store with least-recently-used eviction.

Recency is tracked with a monotonically increasing access counter: every
read or write stamps the key with the next counter value, and eviction
removes the key with the smallest stamp.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class LRUStore(Generic[V]):
    """
    In-memory LRU store.

    Example:
        >>> store: LRUStore[int] = LRUStore(max_size=2)
        >>> store.set("a", 1)
        >>> store.set("b", 2)
        >>> store.get("a")
        1
        >>> store.set("c", 3)  # evicts "b"
        >>> store.has("b")
        False

    Thread Safety:
        Each operation runs under a single RLock, so the map and the
        recency stamps are always updated together.
    """

    def __init__(
        self,
        max_size: int = 100,
        on_evict: Callable[[str, V], None] | None = None,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._data: dict[str, V] = {}
        self._access: dict[str, int] = {}
        self._counter = 0
        self._on_evict = on_evict
        self._lock = threading.RLock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def _stamp(self, key: str) -> None:
        self._counter += 1
        self._access[key] = self._counter

    def get(self, key: str) -> V | None:
        """Return the value for ``key`` and mark it most recently used."""
        with self._lock:
            if key not in self._data:
                return None
            self._stamp(key)
            return self._data[key]

    def peek(self, key: str) -> V | None:
        """Return the value without touching recency."""
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: V) -> None:
        """
        Insert or update ``key``.

        Updating an existing key never evicts. Inserting a new key into a
        full store first evicts the least recently used key.
        """
        with self._lock:
            if key not in self._data and len(self._data) >= self._max_size:
                self.evict_lru()
            self._data[key] = value
            self._stamp(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            self._access.pop(key, None)
            return self._data.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._access.clear()
            self._counter = 0

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    __contains__ = has

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def items(self) -> list[tuple[str, V]]:
        with self._lock:
            return list(self._data.items())

    def evict_lru(self) -> str | None:
        """Remove and return the least recently used key, if any."""
        with self._lock:
            if not self._access:
                return None
            lru_key = min(self._access, key=self._access.__getitem__)
            value = self._data[lru_key]
            self.delete(lru_key)
        logger.debug(f"Evicted least recently used key {lru_key!r}")
        if self._on_evict is not None:
            self._on_evict(lru_key, value)
        return lru_key

    def resize(self, max_size: int) -> list[str]:
        """Change capacity, evicting LRU keys until the store fits."""
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        evicted: list[str] = []
        with self._lock:
            self._max_size = max_size
            while len(self._data) > self._max_size:
                key = self.evict_lru()
                if key is None:
                    break
                evicted.append(key)
        return evicted


_MISSING = object()


__all__ = ["LRUStore"]
