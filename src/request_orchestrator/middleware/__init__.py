# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Middleware pipeline.

Built-in middlewares, outermost first:
- timing (1): measures pipeline duration
- cache (10): serves fresh GET responses from the cache
- retry (90): re-runs the inner chain on retryable failures
- error_handler (100): classifies and wraps failures
"""

from .cache import CACHE_PRIORITY, create_cache_middleware
from .engine import (
    DEFAULT_MIDDLEWARE_PRIORITY,
    Middleware,
    MiddlewareContext,
    MiddlewareEngine,
)
from .errors import ERROR_HANDLER_PRIORITY, create_error_handler_middleware
from .retry import RETRY_PRIORITY, create_retry_middleware, is_retryable_error
from .timing import TIMING_PRIORITY, create_timing_middleware

__all__ = [
    "CACHE_PRIORITY",
    "DEFAULT_MIDDLEWARE_PRIORITY",
    "ERROR_HANDLER_PRIORITY",
    "RETRY_PRIORITY",
    "TIMING_PRIORITY",
    "Middleware",
    "MiddlewareContext",
    "MiddlewareEngine",
    "create_cache_middleware",
    "create_error_handler_middleware",
    "create_retry_middleware",
    "create_timing_middleware",
    "is_retryable_error",
]
