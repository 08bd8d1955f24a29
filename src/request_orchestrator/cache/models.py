# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Cache models.

Contains the cache entry model and the statistics record kept by the
cache manager.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


@dataclass
class CacheStats:
    """Hit/miss counters. They survive ``clear()``."""

    hit_count: int = 0
    miss_count: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return self.hit_count / total if total > 0 else 0.0


class CacheEntry(BaseModel):
    """
    A cached response payload.

    Timestamps are in the manager's clock domain (``time.monotonic`` by
    default), not wall-clock time.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str
    payload: Any
    created_at: float
    ttl: float = Field(gt=0)
    access_count: int = 1
    last_accessed_at: float | None = None

    @model_validator(mode="after")
    def _default_last_accessed(self) -> "CacheEntry":
        if self.last_accessed_at is None:
            self.last_accessed_at = self.created_at
        return self

    def is_expired(self, now: float) -> bool:
        """An entry is stale once strictly more than ``ttl`` has elapsed."""
        return now - self.created_at > self.ttl

    def remaining(self, now: float) -> float:
        return self.ttl - (now - self.created_at)

    def touch(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed_at = now


__all__ = ["CacheEntry", "CacheStats"]
