# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Observability module for the request orchestrator.

Provides metric name constants, the UnifiedMetricsCollector (dict snapshot
plus Prometheus export) and the MetricsCollectorProtocol that components
depend on.
"""

from .collector import METRIC_DEFINITIONS, MetricDefinition, UnifiedMetricsCollector
from .constants import (
    ACTIVE_REQUESTS,
    CACHE_EVICTIONS_TOTAL,
    CACHE_EXPIRATIONS_TOTAL,
    CACHE_HITS_TOTAL,
    CACHE_MISSES_TOTAL,
    DEBOUNCE_COLLAPSED_TOTAL,
    DEDUP_HITS_TOTAL,
    LATENCY_BUCKETS,
    METRIC_PREFIX,
    QUEUE_DEPTH,
    QUEUE_OVERFLOWS_TOTAL,
    REQUEST_DURATION_SECONDS,
    REQUESTS_CANCELLED_TOTAL,
    REQUESTS_COMPLETED_TOTAL,
    REQUESTS_FAILED_TOTAL,
    REQUESTS_SUBMITTED_TOTAL,
    RETRIES_TOTAL,
)
from .protocols import MetricsCollectorProtocol

__all__ = [
    "ACTIVE_REQUESTS",
    "CACHE_EVICTIONS_TOTAL",
    "CACHE_EXPIRATIONS_TOTAL",
    "CACHE_HITS_TOTAL",
    "CACHE_MISSES_TOTAL",
    "DEBOUNCE_COLLAPSED_TOTAL",
    "DEDUP_HITS_TOTAL",
    "LATENCY_BUCKETS",
    "METRIC_DEFINITIONS",
    "METRIC_PREFIX",
    "QUEUE_DEPTH",
    "QUEUE_OVERFLOWS_TOTAL",
    "REQUESTS_CANCELLED_TOTAL",
    "REQUESTS_COMPLETED_TOTAL",
    "REQUESTS_FAILED_TOTAL",
    "REQUESTS_SUBMITTED_TOTAL",
    "REQUEST_DURATION_SECONDS",
    "RETRIES_TOTAL",
    "MetricDefinition",
    "MetricsCollectorProtocol",
    "UnifiedMetricsCollector",
]
