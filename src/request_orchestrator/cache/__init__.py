# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Response caching: LRU store, TTL cache manager and key generation."""

from .manager import CacheManager, generate_cache_key
from .models import CacheEntry, CacheStats
from .store import LRUStore

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "LRUStore",
    "generate_cache_key",
]
