# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Priority-ordered onion middleware engine.

Middlewares are sorted by ascending priority: the lowest number runs
outermost. Each handler receives the shared context and a ``call_next``
continuation; it may call it zero times (short-circuit), once, or several
times (retry). Every call re-runs all inner handlers and the terminal
executor.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ConfigurationError
from ..types.cancellation import CancellationToken
from ..types.request import RequestDescriptor, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_MIDDLEWARE_PRIORITY = 100

Next = Callable[[], Awaitable[Any]]
Handler = Callable[["MiddlewareContext", Next], Awaitable[Any]]
Executor = Callable[["MiddlewareContext"], Awaitable[Any]]


@dataclass
class MiddlewareContext:
    """
    Per-execution state shared by every middleware in the chain.

    Attributes:
        descriptor: The request being executed
        token: Cancellation token of the owning queue task
        response: Last transport response seen by the pipeline
        error: Last error seen by the error handler
        start_time: Monotonic start time set by the timing middleware
        duration: Elapsed seconds, set by the timing middleware
        retry_count: Number of retries performed so far
        from_cache: True when the result was served from the cache
        extras: Free-form storage for custom middlewares
    """

    descriptor: RequestDescriptor
    token: CancellationToken | None = None
    response: TransportResponse | None = None
    error: BaseException | None = None
    start_time: float = field(default_factory=time.monotonic)
    duration: float | None = None
    retry_count: int = 0
    from_cache: bool = False
    extras: dict[str, Any] = field(default_factory=dict)

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def diagnostics(self) -> dict[str, Any]:
        """Summary attached to errors raised out of the pipeline."""
        return {
            "method": self.descriptor.method,
            "url": self.descriptor.url,
            "request_id": self.descriptor.request_id,
            "retry_count": self.retry_count,
            "duration": self.duration if self.duration is not None else self.elapsed(),
            "from_cache": self.from_cache,
        }


@dataclass
class Middleware:
    """A named handler with an ordering priority (lower runs first)."""

    name: str
    handler: Handler
    priority: int = DEFAULT_MIDDLEWARE_PRIORITY


class MiddlewareEngine:
    """
    Ordered middleware registry and chain runner.

    Example:
        >>> engine = MiddlewareEngine()
        >>> engine.set_executor(send_request)
        >>> engine.use(Middleware("auth", add_auth_header, priority=5))
        >>> result = await engine.execute(MiddlewareContext(descriptor))
    """

    def __init__(self) -> None:
        self._middlewares: list[Middleware] = []
        self._executor: Executor | None = None

    def use(self, middleware: Middleware) -> None:
        """Register ``middleware``, replacing any existing one with the same name."""
        for i, existing in enumerate(self._middlewares):
            if existing.name == middleware.name:
                self._middlewares[i] = middleware
                break
        else:
            self._middlewares.append(middleware)
        # list.sort is stable: equal priorities keep registration order
        self._middlewares.sort(key=lambda m: m.priority)
        logger.debug(f"Registered middleware {middleware.name!r} (priority={middleware.priority})")

    def remove(self, name: str) -> bool:
        for i, existing in enumerate(self._middlewares):
            if existing.name == name:
                del self._middlewares[i]
                logger.debug(f"Removed middleware {name!r}")
                return True
        return False

    def get_middlewares(self) -> list[Middleware]:
        return list(self._middlewares)

    def set_executor(self, executor: Executor) -> None:
        """Install the terminal stage that performs the actual request."""
        self._executor = executor

    async def execute(self, context: MiddlewareContext) -> Any:
        """Run the chain for ``context`` and return the outermost handler's result."""
        skip = context.descriptor.middleware_skip
        active = [m for m in self._middlewares if m.name not in skip]
        executor = self._executor

        async def dispatch(index: int) -> Any:
            if index >= len(active):
                if executor is None:
                    raise ConfigurationError("Request executor not set")
                return await executor(context)
            return await active[index].handler(context, lambda: dispatch(index + 1))

        return await dispatch(0)


__all__ = [
    "DEFAULT_MIDDLEWARE_PRIORITY",
    "Executor",
    "Handler",
    "Middleware",
    "MiddlewareContext",
    "MiddlewareEngine",
    "Next",
]
