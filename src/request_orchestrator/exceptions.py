# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Exception classes for the request orchestrator library.

This module defines the closed error taxonomy used throughout the library.
All exceptions inherit from OrchestratorError, making it easy to catch
all orchestrator-related exceptions with a single except clause. Every
class carries an ``ErrorKind`` so callers can dispatch on the category:

    match error.kind:
        case ErrorKind.TRANSPORT: ...
        case ErrorKind.CANCELLED: ...
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Category tag shared by every orchestrator error."""

    TRANSPORT = "transport"
    VALIDATION = "validation"
    CAPACITY = "capacity"
    CANCELLED = "cancelled"
    WRAPPED = "wrapped"
    CONFIGURATION = "configuration"


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors.

    Attributes:
        context: Diagnostic details about the request that failed
            (method, url, request_id, retry_count, duration). Filled in
            by the error handler middleware when the error passes through
            the pipeline; empty otherwise.

    Example:
        try:
            response = await orchestrator.submit(descriptor)
        except OrchestratorError as e:
            logger.error(f"Request failed ({e.kind.value}): {e}")
    """

    kind: ErrorKind = ErrorKind.WRAPPED

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context: dict[str, Any] = dict(context) if context else {}


class TransportError(OrchestratorError):
    """Raised when the transport fails to deliver a request.

    Covers network failures, timeouts and HTTP-level failures that the
    transport chose to surface as errors.

    Attributes:
        status: HTTP status code, if a response was received.
        code: Transport-specific error code (e.g. ``"ECONNRESET"``).
        response: The raw response object, if any.
        is_timeout: True when the request timed out.
        is_network: True when no response was received at all.

    Example:
        try:
            await orchestrator.submit(descriptor)
        except TransportError as e:
            if e.status == 429:
                await asyncio.sleep(5)
    """

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str | None = None,
        response: Any | None = None,
        is_timeout: bool = False,
        is_network: bool = False,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.status = status
        self.code = code
        self.response = response
        self.is_timeout = is_timeout
        self.is_network = is_network


class ValidationError(OrchestratorError):
    """Raised when a response is rejected by a ``validate_error`` predicate.

    The transport succeeded, but the caller-supplied predicate classified
    the response as a failure (for example an API returning HTTP 200 with
    an error body).

    Attributes:
        response: The response that failed validation.
    """

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        response: Any | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.response = response


class CapacityError(OrchestratorError):
    """Raised when the admission queue backlog is full.

    Attributes:
        queue_size: Number of waiting tasks at the time of rejection.
        max_queue_size: The configured backlog limit.
    """

    kind = ErrorKind.CAPACITY

    def __init__(
        self,
        message: str = "Request queue is full",
        queue_size: int | None = None,
        max_queue_size: int | None = None,
    ):
        super().__init__(message)
        self.queue_size = queue_size
        self.max_queue_size = max_queue_size


class RequestCancelledError(OrchestratorError):
    """Raised when a request is cancelled before it produced a result.

    Deliberately distinct from ``asyncio.CancelledError``: the caller's
    own task is not being cancelled, only the request it was waiting on.

    Attributes:
        request_id: Identifier of the cancelled request, if known.
        reason: Optional human-readable cancellation reason.
    """

    kind = ErrorKind.CANCELLED

    def __init__(
        self,
        message: str = "Request cancelled",
        request_id: str | None = None,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.request_id = request_id
        self.reason = reason


class WrappedError(OrchestratorError):
    """Wraps an unclassified exception raised inside the pipeline.

    Attributes:
        original: The exception that was wrapped.
    """

    kind = ErrorKind.WRAPPED

    def __init__(
        self,
        original: BaseException,
        context: dict[str, Any] | None = None,
        message: str | None = None,
    ):
        super().__init__(message or str(original) or type(original).__name__, context)
        self.original = original
        self.__cause__ = original


class ConfigurationError(OrchestratorError):
    """Raised when the orchestrator or one of its components is misconfigured."""

    kind = ErrorKind.CONFIGURATION


__all__ = [
    "CapacityError",
    "ConfigurationError",
    "ErrorKind",
    "OrchestratorError",
    "RequestCancelledError",
    "TransportError",
    "ValidationError",
    "WrappedError",
]
