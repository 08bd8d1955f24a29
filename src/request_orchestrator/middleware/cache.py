# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Cache-check middleware: serves fresh GET responses without a transport call."""

from __future__ import annotations

import logging
from typing import Any

from ..cache.manager import CacheManager, generate_cache_key
from ..types.request import TransportResponse
from .engine import Middleware, MiddlewareContext, Next

logger = logging.getLogger(__name__)

CACHE_PRIORITY = 10


def create_cache_middleware(cache: CacheManager) -> Middleware:
    """
    Build the ``cache`` middleware (priority 10).

    Only GET requests whose cache policy is enabled take part. On a hit the
    downstream chain is skipped and ``context.from_cache`` is set. On a miss
    the result is stored only if the transport response was 2xx.
    """

    async def handler(context: MiddlewareContext, call_next: Next) -> Any:
        descriptor = context.descriptor
        policy = descriptor.cache_policy
        if not policy.enabled or descriptor.method != "GET":
            return await call_next()

        key = generate_cache_key(descriptor)
        cached = cache.get(key)
        if cached is not None:
            context.from_cache = True
            if isinstance(cached, TransportResponse):
                context.response = cached
            logger.debug(f"Cache hit: {key}")
            return cached
        logger.debug(f"Cache miss: {key}")

        result = await call_next()

        if context.response is not None and context.response.ok and result is not None:
            cache.set(key, result, policy.ttl)
        return result

    return Middleware("cache", handler, CACHE_PRIORITY)


__all__ = ["CACHE_PRIORITY", "create_cache_middleware"]
