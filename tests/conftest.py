"""
Shared fixtures for the request orchestrator test suite.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from request_orchestrator.types import (
    CancellationToken,
    RequestDescriptor,
    TransportResponse,
)


class RecordingTransport:
    """Transport double that records every call.

    By default returns a 200 response echoing the URL. Set ``handler`` to
    customize the response, or ``gate`` to hold calls until the event is set.
    """

    def __init__(
        self,
        handler: Callable[[RequestDescriptor, CancellationToken], Awaitable[Any]]
        | None = None,
    ) -> None:
        self.handler = handler
        self.gate: asyncio.Event | None = None
        self.calls: list[RequestDescriptor] = []
        self.tokens: list[CancellationToken] = []
        self.started: list[str] = []

    async def send(
        self, descriptor: RequestDescriptor, token: CancellationToken
    ) -> TransportResponse:
        self.calls.append(descriptor)
        self.tokens.append(token)
        self.started.append(descriptor.url)
        if self.gate is not None:
            await self.gate.wait()
        if self.handler is not None:
            return await self.handler(descriptor, token)
        return TransportResponse(200, data={"url": descriptor.url})

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def transport() -> RecordingTransport:
    """A fresh recording transport."""
    return RecordingTransport()


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
