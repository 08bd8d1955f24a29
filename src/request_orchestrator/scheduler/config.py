# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Orchestrator Configuration

This module provides the configuration class for the orchestrator,
including admission limits, request defaults, cache, locking and
metrics settings.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..types.request import CachePolicy, RetryPolicy


@dataclass
class OrchestratorConfig:
    """
    Configuration for an Orchestrator.

    Request defaults (``default_*``) fill any field a RequestDescriptor
    leaves unset. All durations are in seconds.
    """

    # === Admission ===

    max_concurrent: int = 6
    """Maximum number of requests executing at once."""

    max_queue_size: int = 100
    """Maximum number of requests waiting for a slot before submissions are rejected."""

    # === Request Defaults ===

    default_priority: int = 5
    """Priority for requests that do not set one. Higher runs sooner."""

    default_timeout: float | None = 10.0
    """Per-attempt transport timeout. None disables the timeout."""

    default_cache: CachePolicy = field(default_factory=CachePolicy)
    """Cache policy for requests that do not set one (disabled by default)."""

    default_retry: RetryPolicy = field(default_factory=RetryPolicy)
    """Retry policy for requests that do not set one (disabled by default)."""

    default_debounce: bool = False
    """Debounce requests that do not say otherwise."""

    default_request_lock: bool = False
    """Single-flight requests that do not say otherwise."""

    global_validate_error: Callable[[Any], Any] | None = None
    """Response validator for requests without their own ``validate_error``."""

    # === Cache ===

    cache_ttl: float = 300.0
    """Default cache entry lifetime."""

    cache_max_size: int = 100
    """Maximum number of cached responses."""

    enable_cache_cleanup: bool = True
    """Run a background sweep that removes expired cache entries."""

    cache_cleanup_interval: float = 60.0
    """Interval between cache sweeps."""

    # === Locking ===

    debounce_delay: float = 0.3
    """Quiet period after the last call before a debounced request runs."""

    lock_max_age: float = 30.0
    """Age after which ``cleanup_locks`` aborts a pending single-flight request."""

    # === Error Handling ===

    log_errors: bool = True
    """Log every request failure at ERROR level."""

    on_error: Callable[..., Any] | None = None
    """Observer called with (error, context) for every request failure."""

    transform_error: Callable[..., Any] | None = None
    """Replaces a request failure before it reaches the caller."""

    # === Metrics and Monitoring ===

    metrics_enabled: bool = True
    """Enable metrics collection."""

    enable_prometheus: bool = True
    """Mirror metrics into a Prometheus registry."""

    start_prometheus_server: bool = False
    """Serve the Prometheus registry over HTTP on start."""

    prometheus_host: str = "127.0.0.1"
    """Prometheus metrics host."""

    prometheus_port: int = 9090
    """Prometheus metrics port."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if self.default_timeout is not None and self.default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.cache_max_size < 1:
            raise ValueError("cache_max_size must be at least 1")
        if self.cache_cleanup_interval <= 0:
            raise ValueError("cache_cleanup_interval must be positive")
        if self.debounce_delay < 0:
            raise ValueError("debounce_delay must be >= 0")
        if self.lock_max_age <= 0:
            raise ValueError("lock_max_age must be positive")
