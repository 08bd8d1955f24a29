# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Error classification middleware.

Sits innermost (priority 100), directly around the transport, so every
attempt made by the retry middleware is classified. It turns responses
rejected by ``validate_error`` into ``ValidationError``, normalizes any
foreign exception into ``WrappedError``, attaches request diagnostics and
rethrows. It never turns a failure into a success.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ..exceptions import (
    OrchestratorError,
    RequestCancelledError,
    TransportError,
    ValidationError,
    WrappedError,
)
from .engine import Middleware, MiddlewareContext, Next

logger = logging.getLogger(__name__)

ERROR_HANDLER_PRIORITY = 100

ErrorCallback = Callable[[OrchestratorError, MiddlewareContext], Any]
ErrorTransform = Callable[[OrchestratorError, MiddlewareContext], BaseException | Any]


def _validate(context: MiddlewareContext) -> None:
    validate = context.descriptor.validate_error
    if validate is None or context.response is None:
        return
    verdict = validate(context.response)
    if verdict is True:
        raise ValidationError("Custom validation failed", response=context.response)
    if isinstance(verdict, BaseException):
        raise ValidationError(
            str(verdict) or "Custom validation failed", response=context.response
        ) from verdict


def _normalize(error: Exception, context: MiddlewareContext) -> OrchestratorError:
    if isinstance(error, OrchestratorError):
        for key, value in context.diagnostics().items():
            error.context.setdefault(key, value)
        return error
    return WrappedError(error, context.diagnostics())


def _log(error: OrchestratorError, context: MiddlewareContext) -> None:
    descriptor = context.descriptor
    details = f"{descriptor.method} {descriptor.url} retries={context.retry_count}"
    if isinstance(error, TransportError) and error.status is not None:
        details += f" status={error.status}"
    logger.error(f"Request error ({error.kind.value}) {details}: {error}")


def create_error_handler_middleware(
    log_errors: bool = True,
    on_error: ErrorCallback | None = None,
    transform_error: ErrorTransform | None = None,
) -> Middleware:
    """
    Build the ``error_handler`` middleware (priority 100).

    Args:
        log_errors: Log every failure at ERROR level
        on_error: Observer called with (error, context) for every failure
        transform_error: Replaces the error before it is rethrown; a
            non-exception return value is wrapped in ``WrappedError``
    """

    async def handler(context: MiddlewareContext, call_next: Next) -> Any:
        try:
            result = await call_next()
            _validate(context)
            return result
        except asyncio.CancelledError:
            raise
        except RequestCancelledError as e:
            context.error = e
            raise
        except Exception as e:
            error = _normalize(e, context)
            context.error = error
            if log_errors:
                _log(error, context)
            if on_error is not None:
                on_error(error, context)

            final: Any = error
            if transform_error is not None:
                final = transform_error(error, context)
            if not isinstance(final, BaseException):
                final = WrappedError(
                    error, context.diagnostics(), message=str(final) if final else None
                )
            if final is e:
                raise
            raise final from e

    return Middleware("error_handler", handler, ERROR_HANDLER_PRIORITY)


__all__ = [
    "ERROR_HANDLER_PRIORITY",
    "create_error_handler_middleware",
]
