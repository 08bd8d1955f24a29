# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Priority admission queue with bounded concurrency.

Submitted requests wait in a heap ordered by (priority desc, submission
order asc) and are started while fewer than ``max_concurrent`` are running.
Scheduling passes are deferred to the next event-loop iteration, so a
burst of submissions made in the same tick is ordered by priority before
any of them starts.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from ..exceptions import CapacityError, ConfigurationError, RequestCancelledError
from ..observability.constants import (
    ACTIVE_REQUESTS,
    QUEUE_DEPTH,
    QUEUE_OVERFLOWS_TOTAL,
    REQUESTS_CANCELLED_TOTAL,
    REQUESTS_COMPLETED_TOTAL,
    REQUESTS_FAILED_TOTAL,
    REQUESTS_SUBMITTED_TOTAL,
)
from ..observability.protocols import MetricsCollectorProtocol
from ..types.cancellation import CancellationToken
from ..types.queue import QueueTask
from ..types.request import RequestDescriptor

logger = logging.getLogger(__name__)

TaskExecutor = Callable[[RequestDescriptor, CancellationToken], Awaitable[Any]]


def _consume_result(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


class AdmissionQueue:
    """
    Admits requests into execution by priority under a concurrency limit.

    Args:
        executor: Coroutine function run for each admitted task
        max_concurrent: Maximum tasks running at once
        max_queue_size: Maximum tasks waiting; further submissions raise
            ``CapacityError`` immediately
        default_priority: Priority used when a descriptor has none
        metrics_collector: Optional metrics sink

    Example:
        >>> queue = AdmissionQueue(send, max_concurrent=2)
        >>> result = await queue.submit(RequestDescriptor("/users", priority=10))
    """

    def __init__(
        self,
        executor: TaskExecutor | None = None,
        max_concurrent: int = 6,
        max_queue_size: int = 100,
        default_priority: int = 5,
        metrics_collector: MetricsCollectorProtocol | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        self._executor = executor
        self._max_concurrent = max_concurrent
        self._max_queue_size = max_queue_size
        self._default_priority = default_priority
        self._metrics_collector = metrics_collector

        self._waiting: list[QueueTask] = []
        self._running: dict[str, QueueTask] = {}
        self._sequence = itertools.count()
        self._drain_scheduled = False

    def set_executor(self, executor: TaskExecutor) -> None:
        self._executor = executor

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def max_queue_size(self) -> int:
        return self._max_queue_size

    # === Submission ===

    def enqueue(self, descriptor: RequestDescriptor) -> QueueTask:
        """
        Add ``descriptor`` to the backlog and return its task.

        Raises:
            CapacityError: If the backlog already holds ``max_queue_size`` tasks
        """
        if len(self._waiting) >= self._max_queue_size:
            if self._metrics_collector:
                self._metrics_collector.inc_counter(QUEUE_OVERFLOWS_TOTAL)
            logger.warning(
                f"Rejecting {descriptor.method} {descriptor.url}: "
                f"queue full ({len(self._waiting)}/{self._max_queue_size})"
            )
            raise CapacityError(
                queue_size=len(self._waiting), max_queue_size=self._max_queue_size
            )

        loop = asyncio.get_running_loop()
        request_id = descriptor.resolved_request_id()
        task = QueueTask(
            task_id=uuid.uuid4().hex,
            request_id=request_id,
            descriptor=descriptor,
            priority=(
                descriptor.priority
                if descriptor.priority is not None
                else self._default_priority
            ),
            sequence=next(self._sequence),
            future=loop.create_future(),
            token=CancellationToken(request_id),
        )
        heapq.heappush(self._waiting, task)
        self._update_gauges()
        if self._metrics_collector:
            self._metrics_collector.inc_counter(REQUESTS_SUBMITTED_TOTAL)
        logger.debug(
            f"Queued {descriptor.method} {descriptor.url} "
            f"(id={request_id}, priority={task.priority}, waiting={len(self._waiting)})"
        )
        self._schedule_drain()
        return task

    async def submit(self, descriptor: RequestDescriptor) -> Any:
        """
        Enqueue ``descriptor`` and wait for its result.

        If the awaiting caller is cancelled, the queued or running task is
        cancelled as well.
        """
        task = self.enqueue(descriptor)
        try:
            return await asyncio.shield(task.future)
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.add_done_callback(_consume_result)
                self._cancel_task(task, "caller cancelled")
            raise

    # === Cancellation ===

    def cancel(self, request_id: str) -> bool:
        """
        Cancel every task whose request id (or internal task id) matches.

        Waiting tasks settle with ``RequestCancelledError`` immediately.
        Running tasks have their token cancelled and their runner
        interrupted, and settle once the runner processes the abort.
        """
        matches = [
            t
            for t in itertools.chain(self._waiting, self._running.values())
            if request_id in (t.request_id, t.task_id)
        ]
        for task in matches:
            self._cancel_task(task, "cancelled")
        return bool(matches)

    def cancel_all(self) -> int:
        tasks = [*self._waiting, *self._running.values()]
        for task in tasks:
            self._cancel_task(task, "cancelled")
        if tasks:
            logger.info(f"Cancelled {len(tasks)} queued requests")
        return len(tasks)

    async def close(self) -> None:
        """Cancel all tasks and wait for running ones to unwind."""
        runners = [t.runner for t in self._running.values() if t.runner is not None]
        self.cancel_all()
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)

    def _cancel_task(self, task: QueueTask, reason: str) -> None:
        task.token.cancel(reason)
        if task.task_id in self._running:
            if task.runner is not None and not task.runner.done():
                task.runner.cancel()
            return

        try:
            self._waiting.remove(task)
        except ValueError:
            return
        heapq.heapify(self._waiting)
        self._update_gauges()
        self._settle_cancelled(task, reason)

    def _settle_cancelled(self, task: QueueTask, reason: str) -> None:
        if task.future.done():
            return
        task.future.set_exception(
            RequestCancelledError(request_id=task.request_id, reason=reason)
        )
        if self._metrics_collector:
            self._metrics_collector.inc_counter(REQUESTS_CANCELLED_TOTAL)
        logger.debug(f"Request {task.request_id} cancelled ({reason})")

    # === Configuration and Stats ===

    def update_config(
        self, max_concurrent: int | None = None, max_queue_size: int | None = None
    ) -> None:
        """
        Change the limits and immediately re-run scheduling.

        Lowering ``max_queue_size`` below the current backlog keeps the
        waiting tasks; only new submissions are rejected.
        """
        if max_concurrent is not None:
            if max_concurrent < 1:
                raise ValueError("max_concurrent must be at least 1")
            self._max_concurrent = max_concurrent
        if max_queue_size is not None:
            if max_queue_size < 1:
                raise ValueError("max_queue_size must be at least 1")
            self._max_queue_size = max_queue_size
        logger.info(
            f"Queue config updated (max_concurrent={self._max_concurrent}, "
            f"max_queue_size={self._max_queue_size})"
        )
        self._drain()

    def get_stats(self) -> dict[str, int]:
        return {
            "pending": len(self._waiting),
            "running": len(self._running),
            "max_concurrent": self._max_concurrent,
            "max_queue_size": self._max_queue_size,
        }

    # === Scheduling ===

    def _schedule_drain(self) -> None:
        if self._drain_scheduled:
            return
        self._drain_scheduled = True
        asyncio.get_running_loop().call_soon(self._drain)

    def _drain(self) -> None:
        self._drain_scheduled = False
        while self._waiting and len(self._running) < self._max_concurrent:
            self._start(heapq.heappop(self._waiting))
        self._update_gauges()

    def _start(self, task: QueueTask) -> None:
        task.started_at = time.monotonic()
        self._running[task.task_id] = task
        task.runner = asyncio.create_task(
            self._execute(task), name=f"request_{task.request_id}"
        )
        task.runner.add_done_callback(lambda runner: self._on_runner_done(task, runner))
        logger.debug(
            f"Started {task.descriptor.method} {task.descriptor.url} "
            f"(id={task.request_id}, waited={task.started_at - task.enqueued_at:.3f}s)"
        )

    async def _execute(self, task: QueueTask) -> Any:
        if self._executor is None:
            raise ConfigurationError("Request executor not set")
        return await self._executor(task.descriptor, task.token)

    def _on_runner_done(self, task: QueueTask, runner: asyncio.Task[Any]) -> None:
        self._running.pop(task.task_id, None)

        if runner.cancelled():
            self._settle_cancelled(task, task.token.reason or "cancelled")
        else:
            error = runner.exception()
            if error is not None and task.token.cancelled:
                self._settle_cancelled(task, task.token.reason or "cancelled")
            elif error is not None:
                if not task.future.done():
                    task.future.set_exception(error)
                if self._metrics_collector:
                    reason = getattr(getattr(error, "kind", None), "value", "error")
                    self._metrics_collector.inc_counter(
                        REQUESTS_FAILED_TOTAL, labels={"reason": reason}
                    )
            else:
                if not task.future.done():
                    task.future.set_result(runner.result())
                if self._metrics_collector:
                    self._metrics_collector.inc_counter(REQUESTS_COMPLETED_TOTAL)

        self._update_gauges()
        self._schedule_drain()

    def _update_gauges(self) -> None:
        if self._metrics_collector:
            self._metrics_collector.set_gauge(QUEUE_DEPTH, len(self._waiting))
            self._metrics_collector.set_gauge(ACTIVE_REQUESTS, len(self._running))


__all__ = ["AdmissionQueue", "TaskExecutor"]
