# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Outermost middleware: measures how long the pipeline takes."""

from __future__ import annotations

import logging
import time
from typing import Any

from ..observability.constants import REQUEST_DURATION_SECONDS
from ..observability.protocols import MetricsCollectorProtocol
from .engine import Middleware, MiddlewareContext, Next

logger = logging.getLogger(__name__)

TIMING_PRIORITY = 1


def create_timing_middleware(
    metrics_collector: MetricsCollectorProtocol | None = None,
) -> Middleware:
    """Build the ``timing`` middleware (priority 1)."""

    async def handler(context: MiddlewareContext, call_next: Next) -> Any:
        context.start_time = time.monotonic()
        outcome = "completed"
        try:
            return await call_next()
        except BaseException:
            outcome = "failed"
            raise
        finally:
            context.duration = time.monotonic() - context.start_time
            logger.debug(
                f"{context.descriptor.method} {context.descriptor.url} {outcome} "
                f"in {context.duration * 1000:.1f}ms"
            )
            if metrics_collector:
                metrics_collector.observe_histogram(
                    REQUEST_DURATION_SECONDS,
                    context.duration,
                    labels={"method": context.descriptor.method},
                )

    return Middleware("timing", handler, TIMING_PRIORITY)


__all__ = ["TIMING_PRIORITY", "create_timing_middleware"]
