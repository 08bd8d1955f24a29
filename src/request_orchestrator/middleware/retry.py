# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Retry middleware with linear or exponential backoff.

Retries re-invoke the downstream chain (error handler and transport) in a
bounded loop: one initial attempt plus up to ``RetryPolicy.times`` retries.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

from ..exceptions import (
    RequestCancelledError,
    TransportError,
    ValidationError,
    WrappedError,
)
from ..observability.constants import RETRIES_TOTAL
from ..observability.protocols import MetricsCollectorProtocol
from ..types.request import RetryPolicy
from .engine import Middleware, MiddlewareContext, Next

logger = logging.getLogger(__name__)

RETRY_PRIORITY = 90

RETRYABLE_STATUS_CODES = frozenset({408, 429})
NETWORK_ERROR_CODES = frozenset(
    {"NETWORK_ERROR", "ENETWORK", "ENOTFOUND", "ECONNRESET", "ECONNREFUSED"}
)
TIMEOUT_ERROR_CODES = frozenset({"ECONNABORTED", "ETIMEDOUT"})


def is_retryable_error(error: BaseException) -> bool:
    """
    Default retry predicate.

    Retries network failures, timeouts, HTTP 408/429 and any 5xx status.
    Validation failures and cancellations are never retried.
    """
    if isinstance(error, WrappedError):
        error = error.original
    if isinstance(error, (RequestCancelledError, ValidationError, asyncio.CancelledError)):
        return False
    if isinstance(error, TransportError):
        if error.is_network or error.is_timeout:
            return True
        if error.code in NETWORK_ERROR_CODES or error.code in TIMEOUT_ERROR_CODES:
            return True
        if error.status is not None:
            return error.status in RETRYABLE_STATUS_CODES or 500 <= error.status <= 599
        return False
    return isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError))


def _merge(policy: RetryPolicy | None, defaults: RetryPolicy | None) -> RetryPolicy:
    """
    Resolve the effective policy for one request.

    A request without a policy uses ``defaults`` as is. A request with a
    policy always keeps its own ``times`` (so ``times=0`` opts out); its
    other fields left at their defaults are filled from ``defaults``.
    """
    if policy is None:
        return defaults if defaults is not None else RetryPolicy()
    if defaults is None:
        return policy
    base = RetryPolicy()
    overrides = {
        name: getattr(policy, name)
        for name in ("delay", "backoff", "condition", "on_retry", "max_delay")
        if getattr(policy, name) != getattr(base, name)
    }
    return replace(defaults, times=policy.times, **overrides)


def create_retry_middleware(
    default_policy: RetryPolicy | None = None,
    metrics_collector: MetricsCollectorProtocol | None = None,
) -> Middleware:
    """
    Build the ``retry`` middleware (priority 90).

    Args:
        default_policy: Policy for requests without one, and the source of
            any non-``times`` field a request policy leaves at its default
        metrics_collector: Optional collector for the retry counter
    """

    async def handler(context: MiddlewareContext, call_next: Next) -> Any:
        policy = _merge(context.descriptor.retry, default_policy)
        if not policy.enabled:
            return await call_next()

        condition = policy.condition or is_retryable_error
        retry_number = 0
        while True:
            try:
                return await call_next()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if retry_number >= policy.times or not condition(e):
                    raise
                if context.token is not None and context.token.cancelled:
                    raise

                retry_number += 1
                wait = policy.compute_delay(retry_number)
                logger.debug(
                    f"Retrying {context.descriptor.method} {context.descriptor.url} "
                    f"(attempt {retry_number}/{policy.times}) in {wait:.2f}s: {e}"
                )
                if metrics_collector:
                    metrics_collector.inc_counter(
                        RETRIES_TOTAL, labels={"method": context.descriptor.method}
                    )
                if wait > 0:
                    await asyncio.sleep(wait)

                context.retry_count = retry_number
                if policy.on_retry is not None:
                    try:
                        policy.on_retry(e, retry_number)
                    except Exception as callback_error:
                        logger.warning(
                            f"on_retry callback raised: {callback_error}", exc_info=True
                        )

    return Middleware("retry", handler, RETRY_PRIORITY)


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "RETRY_PRIORITY",
    "create_retry_middleware",
    "is_retryable_error",
]
