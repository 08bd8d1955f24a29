# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Cooperative cancellation token handed to transports."""

from __future__ import annotations

import asyncio

from ..exceptions import RequestCancelledError


class CancellationToken:
    """
    Signals that a request should be abandoned.

    The queue creates one token per task and passes it to the transport,
    which may poll ``cancelled`` or await ``wait()`` to abort early. The
    queue also cancels the running asyncio task, so transports that only
    await I/O are interrupted without inspecting the token.
    """

    def __init__(self, request_id: str | None = None) -> None:
        self.request_id = request_id
        self.reason: str | None = None
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> bool:
        """Mark the token cancelled. Returns False if it already was."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError(request_id=self.request_id, reason=self.reason)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"CancellationToken(request_id={self.request_id!r}, {state})"


__all__ = ["CancellationToken"]
