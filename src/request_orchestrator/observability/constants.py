# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metric name constants following Prometheus naming conventions.

All metric names use the `request_orch_` prefix.

Naming Conventions:
    - Counter metrics end with `_total`
    - Histogram metrics for time end with `_seconds`
    - Gauges use present-tense descriptive names

Label Best Practices:
    Only categorical labels are used:
    - `method` - HTTP method (GET, POST, ...)
    - `reason` - Failure category (an ErrorKind value)

    NEVER label by `request_id` or `url`; both are unbounded.
"""


# =============================================================================
# Global Prefix
# =============================================================================

METRIC_PREFIX = "request_orch"
"""Prefix for all Prometheus metrics in this library."""


# =============================================================================
# Request Lifecycle Metrics (scheduler/queue.py)
# =============================================================================

REQUESTS_SUBMITTED_TOTAL = f"{METRIC_PREFIX}_requests_submitted_total"
"""Total requests accepted into the admission queue."""

REQUESTS_COMPLETED_TOTAL = f"{METRIC_PREFIX}_requests_completed_total"
"""Total requests completed successfully."""

REQUESTS_FAILED_TOTAL = f"{METRIC_PREFIX}_requests_failed_total"
"""Total requests that settled with an error."""

REQUESTS_CANCELLED_TOTAL = f"{METRIC_PREFIX}_requests_cancelled_total"
"""Total requests cancelled while waiting or running."""

QUEUE_OVERFLOWS_TOTAL = f"{METRIC_PREFIX}_queue_overflows_total"
"""Total submissions rejected because the backlog was full."""

QUEUE_DEPTH = f"{METRIC_PREFIX}_queue_depth"
"""Current number of waiting tasks."""

ACTIVE_REQUESTS = f"{METRIC_PREFIX}_active_requests"
"""Current number of running tasks."""


# =============================================================================
# Cache Metrics (cache/manager.py)
# =============================================================================

CACHE_HITS_TOTAL = f"{METRIC_PREFIX}_cache_hits_total"
"""Total cache hits."""

CACHE_MISSES_TOTAL = f"{METRIC_PREFIX}_cache_misses_total"
"""Total cache misses, including stale entries."""

CACHE_EVICTIONS_TOTAL = f"{METRIC_PREFIX}_cache_evictions_total"
"""Total LRU evictions."""

CACHE_EXPIRATIONS_TOTAL = f"{METRIC_PREFIX}_cache_expirations_total"
"""Total entries removed because their TTL elapsed."""


# =============================================================================
# Pipeline Metrics (middleware/, locking/)
# =============================================================================

RETRIES_TOTAL = f"{METRIC_PREFIX}_retries_total"
"""Total retry attempts scheduled by the retry middleware."""

DEDUP_HITS_TOTAL = f"{METRIC_PREFIX}_dedup_hits_total"
"""Total requests that joined an in-flight identical request."""

DEBOUNCE_COLLAPSED_TOTAL = f"{METRIC_PREFIX}_debounce_collapsed_total"
"""Total calls absorbed into a debounce window."""

REQUEST_DURATION_SECONDS = f"{METRIC_PREFIX}_request_duration_seconds"
"""Histogram of end-to-end pipeline durations."""


# =============================================================================
# Histogram Buckets
# =============================================================================

LATENCY_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
"""Histogram buckets for request duration, in seconds."""


__all__ = [
    "ACTIVE_REQUESTS",
    "CACHE_EVICTIONS_TOTAL",
    "CACHE_EXPIRATIONS_TOTAL",
    "CACHE_HITS_TOTAL",
    "CACHE_MISSES_TOTAL",
    "DEBOUNCE_COLLAPSED_TOTAL",
    "DEDUP_HITS_TOTAL",
    "LATENCY_BUCKETS",
    "METRIC_PREFIX",
    "QUEUE_DEPTH",
    "QUEUE_OVERFLOWS_TOTAL",
    "REQUESTS_CANCELLED_TOTAL",
    "REQUESTS_COMPLETED_TOTAL",
    "REQUESTS_FAILED_TOTAL",
    "REQUESTS_SUBMITTED_TOTAL",
    "REQUEST_DURATION_SECONDS",
    "RETRIES_TOTAL",
]
