# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Queue types for request admission.

This module defines the task record tracked by the admission queue while a
request waits for, and then holds, a concurrency slot.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from .cancellation import CancellationToken
from .request import RequestDescriptor


@dataclass(eq=False)
class QueueTask:
    """
    A request waiting in, or running from, the admission queue.

    Tasks are ordered by ``sort_key``: higher priority first, then
    submission order among equal priorities.

    Attributes:
        task_id: Internal unique identifier
        request_id: Caller-visible identifier used for cancellation
        descriptor: The submitted request
        priority: Effective priority at submission time
        sequence: Monotonic submission counter for stable ordering
        future: Resolved with the executor result or failure
        token: Cancellation token passed to the executor
        enqueued_at: Monotonic timestamp of submission
        started_at: Monotonic timestamp when the task was admitted
        runner: The asyncio task executing the request while running
    """

    task_id: str
    request_id: str
    descriptor: RequestDescriptor
    priority: int
    sequence: int
    future: asyncio.Future[Any]
    token: CancellationToken
    enqueued_at: float = field(default_factory=time.monotonic)
    started_at: float | None = None
    runner: asyncio.Task[Any] | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.sequence)

    def __lt__(self, other: QueueTask) -> bool:
        return self.sort_key < other.sort_key


__all__ = ["QueueTask"]
