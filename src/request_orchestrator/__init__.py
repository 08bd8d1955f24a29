# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Request Orchestrator - client-side request scheduling for async Python.

Sits between application code and a transport, and decides when and how
each request runs.

Key Features:
    - Priority admission queue with a concurrency limit and bounded backlog
    - Onion middleware pipeline (timing, cache, retry, error classification)
    - TTL + LRU response cache for GET requests
    - Retry with linear or exponential backoff
    - Single-flight deduplication and trailing debounce
    - Cooperative cancellation by request id

Quick Start:
    >>> from request_orchestrator import Orchestrator, RequestDescriptor, RetryPolicy
    >>>
    >>> class MyTransport:
    ...     async def send(self, descriptor, token):
    ...         ...
    >>>
    >>> async with Orchestrator(MyTransport()) as orchestrator:
    ...     response = await orchestrator.submit(
    ...         RequestDescriptor("/users", cache=True, retry=RetryPolicy(times=3))
    ...     )

Version: 1.0.0
"""

__version__ = "1.0.0"

from .cache import CacheManager, LRUStore, generate_cache_key
from .exceptions import (
    CapacityError,
    ConfigurationError,
    ErrorKind,
    OrchestratorError,
    RequestCancelledError,
    TransportError,
    ValidationError,
    WrappedError,
)
from .locking import RequestLockManager
from .middleware import Middleware, MiddlewareContext, MiddlewareEngine
from .orchestrator import Orchestrator, create_orchestrator
from .protocols import MetricsCollectorProtocol, TransportProtocol
from .scheduler import AdmissionQueue, OrchestratorConfig
from .types import (
    BackoffKind,
    CachePolicy,
    CancellationToken,
    RequestDescriptor,
    RetryPolicy,
    TransportResponse,
)

__all__ = [
    "AdmissionQueue",
    "BackoffKind",
    "CacheManager",
    "CachePolicy",
    "CancellationToken",
    "CapacityError",
    "ConfigurationError",
    "ErrorKind",
    "LRUStore",
    "MetricsCollectorProtocol",
    "Middleware",
    "MiddlewareContext",
    "MiddlewareEngine",
    "Orchestrator",
    "OrchestratorConfig",
    "OrchestratorError",
    "RequestCancelledError",
    "RequestDescriptor",
    "RequestLockManager",
    "RetryPolicy",
    "TransportError",
    "TransportProtocol",
    "TransportResponse",
    "ValidationError",
    "WrappedError",
    "__version__",
    "create_orchestrator",
    "generate_cache_key",
]
