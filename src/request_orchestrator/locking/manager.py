# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Single-flight request locking and trailing-edge debouncing.

Single-flight: while a request with a given identity is in flight, later
identical requests join it instead of starting a new execution. The lock
is released as soon as the shared execution settles.

Debounce: calls for the same identity arriving within ``debounce_delay``
of each other collapse into one execution that starts once the calls stop.
Every call in the window receives that execution's result or error.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import RequestCancelledError
from ..observability.constants import DEBOUNCE_COLLAPSED_TOTAL, DEDUP_HITS_TOTAL
from ..observability.protocols import MetricsCollectorProtocol
from ..types.request import RequestDescriptor

logger = logging.getLogger(__name__)

Factory = Callable[[], Awaitable[Any]]


def _consume_result(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


@dataclass(eq=False)
class PendingLock:
    """An in-flight execution shared by identical requests."""

    key: str
    request_id: str | None
    future: asyncio.Future[Any]
    created_at: float
    task: asyncio.Task[Any] | None = None


@dataclass(eq=False)
class DebounceWindow:
    """Calls collected for one identity while its timer is pending."""

    key: str
    executor: Factory
    waiters: list[asyncio.Future[Any]] = field(default_factory=list)
    request_ids: set[str] = field(default_factory=set)
    handle: asyncio.TimerHandle | None = None
    task: asyncio.Task[Any] | None = None


class RequestLockManager:
    """
    Registry of in-flight single-flight locks and debounce windows.

    All mutations happen synchronously on the event loop, so each
    check-and-register runs without interleaving.

    Args:
        debounce_delay: Quiet period in seconds before a debounced call runs
        metrics_collector: Optional metrics sink
        clock: Time source used for lock ages
    """

    def __init__(
        self,
        debounce_delay: float = 0.3,
        metrics_collector: MetricsCollectorProtocol | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if debounce_delay < 0:
            raise ValueError("debounce_delay must be >= 0")
        self._debounce_delay = debounce_delay
        self._metrics_collector = metrics_collector
        self._clock = clock
        self._pending: dict[str, PendingLock] = {}
        self._windows: dict[str, DebounceWindow] = {}
        self._firing: set[DebounceWindow] = set()

    @property
    def debounce_delay(self) -> float:
        return self._debounce_delay

    def set_debounce_delay(self, delay: float) -> None:
        """Change the quiet period for windows opened from now on."""
        if delay < 0:
            raise ValueError("debounce_delay must be >= 0")
        self._debounce_delay = delay

    # === Single-flight ===

    def check_duplicate(self, descriptor: RequestDescriptor) -> asyncio.Future[Any] | None:
        """Return the shared future of an identical in-flight request, if any."""
        lock = self._pending.get(descriptor.dedup_identity())
        return lock.future if lock is not None else None

    def register(self, descriptor: RequestDescriptor, factory: Factory) -> asyncio.Future[Any]:
        """
        Join or start the shared execution for ``descriptor``.

        ``factory`` is invoked only when no identical request is in flight.
        Returns the shared future; await it through ``asyncio.shield`` so a
        cancelled waiter does not cancel the others.
        """
        key = descriptor.dedup_identity()
        existing = self._pending.get(key)
        if existing is not None:
            if self._metrics_collector:
                self._metrics_collector.inc_counter(DEDUP_HITS_TOTAL)
            logger.debug(f"Joining in-flight request {key!r}")
            return existing.future

        loop = asyncio.get_running_loop()
        lock = PendingLock(
            key=key,
            request_id=descriptor.request_id,
            future=loop.create_future(),
            created_at=self._clock(),
        )
        self._pending[key] = lock
        lock.future.add_done_callback(_consume_result)
        lock.task = asyncio.create_task(factory(), name=f"locked_{key[:40]}")
        lock.task.add_done_callback(lambda task: self._settle_lock(lock, task))
        return lock.future

    async def run_locked(self, descriptor: RequestDescriptor, factory: Factory) -> Any:
        """Register (or join) and wait for the shared result."""
        return await asyncio.shield(self.register(descriptor, factory))

    def _settle_lock(self, lock: PendingLock, task: asyncio.Task[Any]) -> None:
        self._release(lock)
        if lock.future.done():
            return
        if task.cancelled():
            lock.future.set_exception(RequestCancelledError(request_id=lock.request_id))
        elif task.exception() is not None:
            lock.future.set_exception(task.exception())  # type: ignore[arg-type]
        else:
            lock.future.set_result(task.result())

    def _release(self, lock: PendingLock) -> None:
        if self._pending.get(lock.key) is lock:
            del self._pending[lock.key]

    def _abort_lock(self, lock: PendingLock, reason: str) -> None:
        self._release(lock)
        if not lock.future.done():
            lock.future.set_exception(
                RequestCancelledError(request_id=lock.request_id, reason=reason)
            )
        if lock.task is not None and not lock.task.done():
            lock.task.cancel()
        logger.debug(f"Aborted in-flight request {lock.key!r} ({reason})")

    # === Debounce ===

    async def debounce(self, descriptor: RequestDescriptor, executor: Factory) -> Any:
        """
        Run ``executor`` once calls for this identity go quiet.

        Each call restarts the timer and replaces the executor, so the
        trailing call's executor is the one that runs.
        """
        key = descriptor.dedup_identity()
        loop = asyncio.get_running_loop()
        window = self._windows.get(key)
        if window is None:
            window = DebounceWindow(key=key, executor=executor)
            self._windows[key] = window
        else:
            if window.handle is not None:
                window.handle.cancel()
            window.executor = executor
            if self._metrics_collector:
                self._metrics_collector.inc_counter(DEBOUNCE_COLLAPSED_TOTAL)
            logger.debug(f"Debounce restarted for {key!r} ({len(window.waiters) + 1} calls)")

        waiter = loop.create_future()
        waiter.add_done_callback(_consume_result)
        window.waiters.append(waiter)
        if descriptor.request_id:
            window.request_ids.add(descriptor.request_id)
        window.handle = loop.call_later(self._debounce_delay, self._fire, window)
        return await asyncio.shield(waiter)

    def _fire(self, window: DebounceWindow) -> None:
        if self._windows.get(window.key) is window:
            del self._windows[window.key]
        window.handle = None
        self._firing.add(window)
        window.task = asyncio.create_task(window.executor(), name=f"debounced_{window.key[:40]}")
        window.task.add_done_callback(lambda task: self._fan_out(window, task))

    def _fan_out(self, window: DebounceWindow, task: asyncio.Task[Any]) -> None:
        self._firing.discard(window)
        for waiter in window.waiters:
            if waiter.done():
                continue
            if task.cancelled():
                waiter.set_exception(RequestCancelledError())
            elif task.exception() is not None:
                waiter.set_exception(task.exception())  # type: ignore[arg-type]
            else:
                waiter.set_result(task.result())

    def _abort_window(self, window: DebounceWindow, reason: str) -> None:
        if window.handle is not None:
            window.handle.cancel()
            window.handle = None
        if self._windows.get(window.key) is window:
            del self._windows[window.key]
        self._firing.discard(window)
        for waiter in window.waiters:
            if not waiter.done():
                waiter.set_exception(RequestCancelledError(reason=reason))
        if window.task is not None and not window.task.done():
            window.task.cancel()
        logger.debug(f"Aborted debounce window {window.key!r} ({reason})")

    # === Cancellation and Maintenance ===

    def cancel(self, request_id: str) -> bool:
        """
        Abort locks and debounce windows belonging to ``request_id``.

        A lock matches when its key or its originating request id equals
        ``request_id``; every caller sharing it is rejected with
        ``RequestCancelledError``.
        """
        found = False
        for key, lock in list(self._pending.items()):
            if request_id in (key, lock.request_id):
                self._abort_lock(lock, "cancelled")
                found = True
        for window in [*self._windows.values(), *self._firing]:
            if request_id == window.key or request_id in window.request_ids:
                self._abort_window(window, "cancelled")
                found = True
        return found

    def cancel_all(self) -> None:
        for lock in list(self._pending.values()):
            self._abort_lock(lock, "cancelled")
        for window in [*self._windows.values(), *self._firing]:
            self._abort_window(window, "cancelled")

    def cleanup(self, max_age: float = 30.0) -> int:
        """Abort in-flight locks older than ``max_age`` seconds; returns how many."""
        now = self._clock()
        stale = [lock for lock in self._pending.values() if now - lock.created_at > max_age]
        for lock in stale:
            self._abort_lock(lock, "expired")
        if stale:
            logger.warning(f"Aborted {len(stale)} request locks older than {max_age}s")
        return len(stale)

    def get_stats(self) -> dict[str, int]:
        return {
            "pending_requests": len(self._pending),
            "debounce_requests": len(self._windows),
        }


__all__ = ["DebounceWindow", "PendingLock", "RequestLockManager"]
