# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metrics collector backing both dict snapshots and Prometheus export.

Each orchestrator owns one UnifiedMetricsCollector bound to its own
Prometheus ``CollectorRegistry``, so several orchestrators in one process
never collide on metric registration.

Usage:
    >>> collector = UnifiedMetricsCollector()
    >>> collector.inc_counter(CACHE_HITS_TOTAL)
    >>> collector.get_metrics()["counters"][CACHE_HITS_TOTAL]
    {'': 1}

Thread Safety:
    All operations are guarded by an RLock.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, ClassVar

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
from prometheus_client import start_http_server as _start_http_server

from .constants import (
    ACTIVE_REQUESTS,
    CACHE_EVICTIONS_TOTAL,
    CACHE_EXPIRATIONS_TOTAL,
    CACHE_HITS_TOTAL,
    CACHE_MISSES_TOTAL,
    DEBOUNCE_COLLAPSED_TOTAL,
    DEDUP_HITS_TOTAL,
    LATENCY_BUCKETS,
    QUEUE_DEPTH,
    QUEUE_OVERFLOWS_TOTAL,
    REQUEST_DURATION_SECONDS,
    REQUESTS_CANCELLED_TOTAL,
    REQUESTS_COMPLETED_TOTAL,
    REQUESTS_FAILED_TOTAL,
    REQUESTS_SUBMITTED_TOTAL,
    RETRIES_TOTAL,
)

logger = logging.getLogger(__name__)


@dataclass
class MetricDefinition:
    """Schema for a pre-declared metric."""

    name: str
    metric_type: str  # 'counter', 'gauge', 'histogram'
    description: str
    label_names: tuple[str, ...] = ()
    buckets: list[float] | None = None


def _counter(name: str, description: str, *labels: str) -> MetricDefinition:
    return MetricDefinition(name, "counter", description, labels)


METRIC_DEFINITIONS: dict[str, MetricDefinition] = {
    d.name: d
    for d in (
        _counter(REQUESTS_SUBMITTED_TOTAL, "Total requests admitted to the queue"),
        _counter(REQUESTS_COMPLETED_TOTAL, "Total requests completed successfully"),
        _counter(REQUESTS_FAILED_TOTAL, "Total requests failed", "reason"),
        _counter(REQUESTS_CANCELLED_TOTAL, "Total requests cancelled"),
        _counter(QUEUE_OVERFLOWS_TOTAL, "Total submissions rejected by a full queue"),
        _counter(CACHE_HITS_TOTAL, "Total cache hits"),
        _counter(CACHE_MISSES_TOTAL, "Total cache misses"),
        _counter(CACHE_EVICTIONS_TOTAL, "Total LRU cache evictions"),
        _counter(CACHE_EXPIRATIONS_TOTAL, "Total expired cache entries removed"),
        _counter(RETRIES_TOTAL, "Total retry attempts", "method"),
        _counter(DEDUP_HITS_TOTAL, "Total requests joined to an in-flight request"),
        _counter(DEBOUNCE_COLLAPSED_TOTAL, "Total calls absorbed by debouncing"),
        MetricDefinition(QUEUE_DEPTH, "gauge", "Current waiting tasks"),
        MetricDefinition(ACTIVE_REQUESTS, "gauge", "Current running tasks"),
        MetricDefinition(
            REQUEST_DURATION_SECONDS,
            "histogram",
            "End-to-end pipeline duration",
            ("method",),
            buckets=LATENCY_BUCKETS,
        ),
    )
}


class UnifiedMetricsCollector:
    """
    Thread-safe metrics collector with Prometheus mirroring.

    Every update is recorded in plain dicts (for ``get_metrics``) and, when
    Prometheus export is enabled, mirrored to a Counter/Gauge/Histogram
    registered lazily in this collector's registry.

    Cardinality Protection:
        At most MAX_LABEL_COMBINATIONS distinct label sets are tracked per
        metric; further combinations are dropped with a warning.
    """

    MAX_LABEL_COMBINATIONS: ClassVar[int] = 1000

    _PROM_TYPES: ClassVar[dict[str, type]] = {
        "counter": Counter,
        "gauge": Gauge,
        "histogram": Histogram,
    }

    def __init__(
        self,
        enable_prometheus: bool = True,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Whether to mirror metrics to Prometheus
            registry: Registry to register into; a private one is created if None
        """
        self._enable_prometheus = enable_prometheus
        self._registry = registry if registry is not None else CollectorRegistry()

        self._counters: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )
        self._gauges: dict[str, dict[str, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._histograms: dict[str, dict[str, list[float]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self._lock = threading.RLock()
        self._prom_metrics: dict[str, Any] = {}
        self._label_combinations: dict[str, set[str]] = defaultdict(set)
        self._server_running = False

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def _labels_to_key(self, labels: dict[str, str] | None) -> str:
        if not labels:
            return ""
        return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    def _check_cardinality(self, name: str, label_key: str) -> bool:
        if label_key in self._label_combinations[name]:
            return True
        if len(self._label_combinations[name]) >= self.MAX_LABEL_COMBINATIONS:
            logger.warning(
                f"Cardinality limit ({self.MAX_LABEL_COMBINATIONS}) reached "
                f"for metric {name}. Dropping label combination: {label_key}"
            )
            return False
        self._label_combinations[name].add(label_key)
        return True

    def _prom_metric(
        self, name: str, metric_type: str, labels: dict[str, str] | None
    ) -> Any | None:
        """Get or lazily register the Prometheus metric for ``name``."""
        if not self._enable_prometheus:
            return None

        with self._lock:
            if name not in self._prom_metrics:
                defn = METRIC_DEFINITIONS.get(name)
                if defn is None or defn.metric_type != metric_type:
                    defn = MetricDefinition(
                        name,
                        metric_type,
                        f"Dynamic {metric_type}: {name}",
                        tuple(sorted(labels or ())),
                    )
                kwargs: dict[str, Any] = {"registry": self._registry}
                if metric_type == "histogram":
                    kwargs["buckets"] = defn.buckets or LATENCY_BUCKETS
                try:
                    self._prom_metrics[name] = self._PROM_TYPES[metric_type](
                        name, defn.description, list(defn.label_names), **kwargs
                    )
                except ValueError as e:
                    logger.warning(f"Failed to register Prometheus {metric_type} {name}: {e}")
                    self._prom_metrics[name] = None
            metric = self._prom_metrics[name]

        if metric is not None and labels:
            return metric.labels(**labels)
        return metric

    def _mirror(
        self,
        name: str,
        metric_type: str,
        op: str,
        value: float,
        labels: dict[str, str] | None,
    ) -> None:
        try:
            metric = self._prom_metric(name, metric_type, labels)
            if metric is not None:
                getattr(metric, op)(value)
        except ValueError as e:
            logger.debug(f"Prometheus {op} failed for {name}: {e}")

    # === Counter Operations ===

    def inc_counter(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError("Counter increment must be non-negative")

        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._counters[name][label_key] += value
        self._mirror(name, "counter", "inc", value, labels)

    # === Gauge Operations ===

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to a specific value."""
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] = value
        self._mirror(name, "gauge", "set", value, labels)

    def inc_gauge(
        self,
        name: str,
        value: float = 1.0,
        labels: dict[str, str] | None = None,
    ) -> None:
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] += value
        self._mirror(name, "gauge", "inc", value, labels)

    def dec_gauge(
        self,
        name: str,
        value: float = 1.0,
        labels: dict[str, str] | None = None,
    ) -> None:
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] -= value
        self._mirror(name, "gauge", "dec", value, labels)

    # === Histogram Operations ===

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record an observation in a histogram."""
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            observations = self._histograms[name][label_key]
            observations.append(value)
            # Keep only recent observations
            if len(observations) > 10000:
                del observations[:-5000]
        self._mirror(name, "histogram", "observe", value, labels)

    # === Snapshot Operations ===

    def get_metrics(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Returns a dict with structure:
        {
            "counters": {"metric_name": {"label_key": value, ...}, ...},
            "gauges": {"metric_name": {"label_key": value, ...}, ...},
            "histograms": {"metric_name": {"label_key": {...}, ...}, ...}
        }
        """
        with self._lock:
            counters = {name: dict(values) for name, values in self._counters.items()}
            gauges = {name: dict(values) for name, values in self._gauges.items()}
            histograms: dict[str, dict[str, dict[str, Any]]] = {}
            for name, label_values in self._histograms.items():
                histograms[name] = {
                    label_key: {
                        "count": len(obs),
                        "sum": sum(obs),
                        "avg": sum(obs) / len(obs),
                        "min": min(obs),
                        "max": max(obs),
                    }
                    for label_key, obs in label_values.items()
                    if obs
                }

        return {"counters": counters, "gauges": gauges, "histograms": histograms}

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        """Return the current value of a counter (0 if never incremented)."""
        with self._lock:
            return self._counters.get(name, {}).get(self._labels_to_key(labels), 0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges.get(name, {}).get(self._labels_to_key(labels), 0.0)

    def reset(self) -> None:
        """Reset all recorded values. Prometheus metrics keep their totals."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._label_combinations.clear()
        logger.debug("Metrics collector reset")

    # === Prometheus HTTP Server ===

    def start_http_server(self, host: str = "127.0.0.1", port: int = 9090) -> bool:
        """
        Start the Prometheus HTTP server for this collector's registry.

        Binds to localhost by default; pass ``host="0.0.0.0"`` explicitly
        for external access.

        Returns:
            True if the server is running, False if it failed to start
        """
        if self._server_running:
            logger.warning("Prometheus server already running")
            return True

        try:
            _start_http_server(port, addr=host, registry=self._registry)
        except OSError as e:
            logger.error(f"Failed to start Prometheus server: {e}")
            return False
        self._server_running = True
        logger.info(f"Prometheus metrics server started on {host}:{port}")
        return True

    @property
    def prometheus_enabled(self) -> bool:
        return self._enable_prometheus

    @property
    def server_running(self) -> bool:
        return self._server_running


__all__ = [
    "METRIC_DEFINITIONS",
    "MetricDefinition",
    "UnifiedMetricsCollector",
]
