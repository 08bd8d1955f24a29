# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Orchestrator: the public entry point tying the components together.

Request flow:

    submit(descriptor)
      -> defaults merged from OrchestratorConfig
      -> single-flight lock (request_lock) / debounce (debounce)
      -> AdmissionQueue (priority + concurrency limit)
      -> MiddlewareEngine: timing -> cache -> retry -> error_handler -> transport
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from typing_extensions import Self

from .cache.manager import CacheManager
from .exceptions import OrchestratorError, TransportError
from .locking.manager import RequestLockManager
from .middleware.cache import create_cache_middleware
from .middleware.engine import Middleware, MiddlewareContext, MiddlewareEngine
from .middleware.errors import create_error_handler_middleware
from .middleware.retry import create_retry_middleware
from .middleware.timing import create_timing_middleware
from .observability.collector import UnifiedMetricsCollector
from .observability.protocols import MetricsCollectorProtocol
from .protocols.transport import TransportProtocol
from .scheduler.config import OrchestratorConfig
from .scheduler.queue import AdmissionQueue
from .types.cancellation import CancellationToken
from .types.request import RequestDescriptor, TransportResponse

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Client-side request orchestrator.

    Owns one cache, one admission queue, one middleware engine and one lock
    manager; nothing is shared between orchestrator instances.

    Example:
        >>> async with Orchestrator(transport) as orchestrator:
        ...     response = await orchestrator.submit(
        ...         RequestDescriptor("/users", priority=10, cache=True)
        ...     )
    """

    def __init__(
        self,
        transport: TransportProtocol,
        config: OrchestratorConfig | None = None,
        metrics_collector: MetricsCollectorProtocol | None = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self._transport = transport

        if metrics_collector is not None:
            self.metrics_collector: MetricsCollectorProtocol | None = metrics_collector
        elif self.config.metrics_enabled:
            self.metrics_collector = UnifiedMetricsCollector(
                enable_prometheus=self.config.enable_prometheus
            )
        else:
            self.metrics_collector = None

        self.cache = CacheManager(
            ttl=self.config.cache_ttl,
            max_size=self.config.cache_max_size,
            cleanup_interval=self.config.cache_cleanup_interval,
            metrics_collector=self.metrics_collector,
        )
        self.queue = AdmissionQueue(
            executor=self._run_pipeline,
            max_concurrent=self.config.max_concurrent,
            max_queue_size=self.config.max_queue_size,
            default_priority=self.config.default_priority,
            metrics_collector=self.metrics_collector,
        )
        self.locks = RequestLockManager(
            debounce_delay=self.config.debounce_delay,
            metrics_collector=self.metrics_collector,
        )
        self.middleware = MiddlewareEngine()
        self.middleware.set_executor(self._send)
        self._setup_default_middlewares()

        self._running = False
        self._shutdown_lock = asyncio.Lock()

    def _setup_default_middlewares(self) -> None:
        self.middleware.use(create_timing_middleware(self.metrics_collector))
        self.middleware.use(create_cache_middleware(self.cache))
        self.middleware.use(
            create_retry_middleware(self.config.default_retry, self.metrics_collector)
        )
        self.middleware.use(
            create_error_handler_middleware(
                log_errors=self.config.log_errors,
                on_error=self.config.on_error,
                transform_error=self.config.transform_error,
            )
        )

    # === Lifecycle ===

    async def start(self) -> None:
        if self._running:
            return
        if self.config.enable_cache_cleanup:
            await self.cache.start()
        if (
            self.config.start_prometheus_server
            and isinstance(self.metrics_collector, UnifiedMetricsCollector)
        ):
            self.metrics_collector.start_http_server(
                self.config.prometheus_host, self.config.prometheus_port
            )
        self._running = True
        logger.info(
            f"Orchestrator started (max_concurrent={self.config.max_concurrent}, "
            f"max_queue_size={self.config.max_queue_size})"
        )

    async def stop(self) -> None:
        """Cancel every outstanding request and stop background work."""
        async with self._shutdown_lock:
            if not self._running:
                return
            self._running = False
            self.locks.cancel_all()
            await self.queue.close()
            await self.cache.stop()
            logger.info("Orchestrator stopped")

    async def close(self) -> None:
        await self.stop()
        self.cache.clear()

    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    # === Requests ===

    async def submit(self, descriptor: RequestDescriptor) -> Any:
        """
        Run ``descriptor`` through locking, admission and the middleware chain.

        Returns the transport response (or the cached one).

        Raises:
            OrchestratorError: If the orchestrator is not running, or any
                error from the taxonomy in ``exceptions``
        """
        if not self._running:
            raise OrchestratorError("Orchestrator is not running; call start() first")

        descriptor = descriptor.with_defaults(self.config)
        if descriptor.request_lock:
            return await self.locks.run_locked(
                descriptor, lambda: self._debounce_or_enqueue(descriptor)
            )
        return await self._debounce_or_enqueue(descriptor)

    async def _debounce_or_enqueue(self, descriptor: RequestDescriptor) -> Any:
        if descriptor.debounce:
            return await self.locks.debounce(
                descriptor, lambda: self.queue.submit(descriptor)
            )
        return await self.queue.submit(descriptor)

    async def _run_pipeline(
        self, descriptor: RequestDescriptor, token: CancellationToken
    ) -> Any:
        context = MiddlewareContext(descriptor, token=token)
        return await self.middleware.execute(context)

    async def _send(self, context: MiddlewareContext) -> TransportResponse:
        descriptor = context.descriptor
        token = context.token or CancellationToken(descriptor.request_id)
        token.raise_if_cancelled()
        context.response = None

        call = self._transport.send(descriptor, token)
        try:
            if descriptor.timeout is not None:
                response = await asyncio.wait_for(call, descriptor.timeout)
            else:
                response = await call
        except asyncio.TimeoutError:
            raise TransportError(
                f"Request timed out after {descriptor.timeout}s",
                code="ETIMEDOUT",
                is_timeout=True,
            ) from None

        context.response = response
        return response

    def cancel(self, request_id: str) -> bool:
        """Cancel queued, running, locked or debounced requests with ``request_id``."""
        queued = self.queue.cancel(request_id)
        locked = self.locks.cancel(request_id)
        if queued or locked:
            logger.info(f"Cancelled request {request_id}")
        return queued or locked

    def cancel_all(self) -> None:
        self.locks.cancel_all()
        self.queue.cancel_all()

    def cleanup_locks(self, max_age: float | None = None) -> int:
        return self.locks.cleanup(max_age if max_age is not None else self.config.lock_max_age)

    # === Middleware ===

    def register_middleware(self, middleware: Middleware) -> None:
        self.middleware.use(middleware)

    def remove_middleware(self, name: str) -> bool:
        return self.middleware.remove(name)

    def get_middlewares(self) -> list[Middleware]:
        return self.middleware.get_middlewares()

    # === Cache ===

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.get_stats()

    def clear_cache(self, pattern: str | None = None) -> int:
        return self.cache.clear(pattern)

    def update_cache_config(
        self, ttl: float | None = None, max_size: int | None = None
    ) -> None:
        self.cache.update_config(ttl=ttl, max_size=max_size)

    # === Queue ===

    def get_queue_stats(self) -> dict[str, int]:
        return self.queue.get_stats()

    def update_queue_config(
        self, max_concurrent: int | None = None, max_queue_size: int | None = None
    ) -> None:
        self.queue.update_config(max_concurrent=max_concurrent, max_queue_size=max_queue_size)

    # === Locks and Metrics ===

    def get_lock_stats(self) -> dict[str, int]:
        return self.locks.get_stats()

    def set_debounce_delay(self, delay: float) -> None:
        self.locks.set_debounce_delay(delay)

    def get_metrics(self) -> dict[str, Any]:
        """Snapshot of component stats plus recorded metrics."""
        return {
            "running": self._running,
            "queue": self.get_queue_stats(),
            "cache": self.get_cache_stats(),
            "locks": self.get_lock_stats(),
            "metrics": self.metrics_collector.get_metrics() if self.metrics_collector else {},
        }


def create_orchestrator(
    transport: TransportProtocol,
    metrics_collector: MetricsCollectorProtocol | None = None,
    **config_overrides: Any,
) -> Orchestrator:
    """
    Build an Orchestrator from keyword overrides of OrchestratorConfig.

    Example:
        >>> orchestrator = create_orchestrator(transport, max_concurrent=2)
    """
    return Orchestrator(transport, OrchestratorConfig(**config_overrides), metrics_collector)


__all__ = ["Orchestrator", "create_orchestrator"]
