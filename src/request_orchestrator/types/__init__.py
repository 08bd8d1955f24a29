# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Type definitions and constants."""

from .cancellation import CancellationToken
from .queue import QueueTask
from .request import (
    BackoffKind,
    CachePolicy,
    RequestDescriptor,
    RetryPolicy,
    TransportResponse,
    default_request_key,
)

__all__ = [
    "BackoffKind",
    "CachePolicy",
    "CancellationToken",
    # Queue types
    "QueueTask",
    # Request types
    "RequestDescriptor",
    "RetryPolicy",
    "TransportResponse",
    "default_request_key",
]
