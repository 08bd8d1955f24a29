# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Request types for the orchestration pipeline.

This module defines the immutable request descriptor submitted by callers,
the per-request cache and retry policies, and the response shape returned
by a transport.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..scheduler.config import OrchestratorConfig


class BackoffKind(str, Enum):
    """Growth curve for waits between retry attempts."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class CachePolicy:
    """Per-request response caching policy."""

    enabled: bool = False
    """Whether a successful GET response may be served from / stored in the cache."""

    ttl: float | None = None
    """Entry lifetime in seconds. None uses the cache manager's default TTL."""

    key_generator: Callable[[RequestDescriptor], str] | None = None
    """Custom cache key derivation. None uses ``default_request_key``."""

    max_size: int | None = None
    """
    Capacity hint. The cache is shared by all requests, so its capacity
    comes from ``cache_max_size`` and this value never resizes it.
    """

    def __post_init__(self) -> None:
        if self.ttl is not None and self.ttl <= 0:
            raise ValueError("ttl must be positive")
        if self.max_size is not None and self.max_size < 1:
            raise ValueError("max_size must be at least 1")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Per-request retry policy.

    Waits between attempts grow linearly (``delay * n``) or exponentially
    (``delay * 2 ** (n - 1)``) with the 1-based retry number ``n``, and are
    capped at ``max_delay``.
    """

    times: int = 0
    """Maximum number of retries after the first attempt. 0 disables retry."""

    delay: float = 1.0
    """Base delay in seconds."""

    backoff: BackoffKind = BackoffKind.EXPONENTIAL
    """Backoff curve."""

    condition: Callable[[BaseException], bool] | None = None
    """Predicate deciding whether an error is retryable. None uses the default."""

    on_retry: Callable[[BaseException, int], Any] | None = None
    """Observer called with (error, retry_number) before each retry attempt."""

    max_delay: float = 30.0
    """Upper bound for any single wait, in seconds."""

    def __post_init__(self) -> None:
        if self.times < 0:
            raise ValueError("times must be >= 0")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if not isinstance(self.backoff, BackoffKind):
            object.__setattr__(self, "backoff", BackoffKind(self.backoff))

    @property
    def enabled(self) -> bool:
        return self.times > 0

    def compute_delay(self, retry_number: int) -> float:
        """Return the wait in seconds before retry number ``retry_number`` (1-based)."""
        if self.backoff is BackoffKind.LINEAR:
            wait = self.delay * retry_number
        else:
            wait = self.delay * (2 ** (retry_number - 1))
        return min(wait, self.max_delay)


@dataclass
class TransportResponse:
    """
    Response produced by a transport.

    Attributes:
        status: HTTP status code
        headers: Response headers
        data: Decoded response payload
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def default_request_key(descriptor: RequestDescriptor) -> str:
    """
    Build the canonical key for a request.

    Format is ``METHOD:url:<params>:<body>`` where params and body are
    serialized as JSON with sorted keys, so logically equal requests map
    to the same key regardless of dict insertion order.
    """
    return (
        f"{descriptor.method}:{descriptor.url}:"
        f"{_canonical_json(descriptor.params)}:{_canonical_json(descriptor.data)}"
    )


@dataclass(frozen=True)
class RequestDescriptor:
    """
    An immutable description of a single request.

    Fields left as ``None`` are unset and are filled from the orchestrator's
    defaults when the request is accepted (see ``with_defaults``).

    Attributes:
        url: Target URL
        method: HTTP method, normalized to upper case
        params: Query parameters
        data: Request body
        headers: Request headers
        timeout: Per-attempt timeout in seconds
        priority: Scheduling priority; higher values start sooner
        cache: Cache policy; ``True``/``False`` are shorthand for enabled/disabled
        retry: Retry policy
        request_id: Caller-chosen identifier, used for cancellation and locking
        dedup_key: Explicit single-flight key
        debounce: Collapse rapid repeats into one trailing call
        request_lock: Share one in-flight execution among identical requests
        middleware_skip: Names of middlewares to bypass for this request
        validate_error: Predicate marking a successful response as a failure;
            returns True or an exception instance to reject
    """

    url: str
    method: str = "GET"
    params: Mapping[str, Any] | None = None
    data: Any = None
    headers: Mapping[str, str] | None = None
    timeout: float | None = None
    priority: int | None = None
    cache: CachePolicy | bool | None = None
    retry: RetryPolicy | None = None
    request_id: str | None = None
    dedup_key: str | None = None
    debounce: bool | None = None
    request_lock: bool | None = None
    middleware_skip: frozenset[str] = frozenset()
    validate_error: Callable[[Any], bool | BaseException] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        if isinstance(self.cache, bool):
            object.__setattr__(self, "cache", CachePolicy(enabled=self.cache))
        if not isinstance(self.middleware_skip, frozenset):
            object.__setattr__(self, "middleware_skip", frozenset(self.middleware_skip))
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @property
    def cache_policy(self) -> CachePolicy:
        """The effective cache policy (disabled when unset)."""
        if isinstance(self.cache, CachePolicy):
            return self.cache
        return CachePolicy()

    @property
    def retry_policy(self) -> RetryPolicy:
        """The effective retry policy (disabled when unset)."""
        return self.retry if self.retry is not None else RetryPolicy()

    def with_defaults(self, config: OrchestratorConfig) -> RequestDescriptor:
        """Return a copy with every unset field filled from ``config``."""
        return replace(
            self,
            timeout=self.timeout if self.timeout is not None else config.default_timeout,
            priority=(
                self.priority if self.priority is not None else config.default_priority
            ),
            cache=self.cache if self.cache is not None else config.default_cache,
            retry=self.retry if self.retry is not None else config.default_retry,
            debounce=(
                self.debounce if self.debounce is not None else config.default_debounce
            ),
            request_lock=(
                self.request_lock
                if self.request_lock is not None
                else config.default_request_lock
            ),
            validate_error=self.validate_error or config.global_validate_error,
        )

    def resolved_request_id(self) -> str:
        """Return the caller's request id, or a freshly generated one."""
        return self.request_id or uuid.uuid4().hex

    def dedup_identity(self) -> str:
        """Key identifying requests that should share one execution."""
        return self.dedup_key or self.request_id or default_request_key(self)


__all__ = [
    "BackoffKind",
    "CachePolicy",
    "RequestDescriptor",
    "RetryPolicy",
    "TransportResponse",
    "default_request_key",
]
