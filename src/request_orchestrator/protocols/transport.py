# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocol for the transport that actually performs requests."""

from typing import Protocol, runtime_checkable

from ..types.cancellation import CancellationToken
from ..types.request import RequestDescriptor, TransportResponse


@runtime_checkable
class TransportProtocol(Protocol):
    """
    Minimal protocol for pluggable transports.

    The orchestrator never speaks HTTP itself. A transport receives the
    descriptor and the task's cancellation token and returns a response.
    It should raise ``TransportError`` for network, timeout and HTTP
    failures it wants to surface as errors; any other exception is
    wrapped by the pipeline.
    """

    async def send(
        self, descriptor: RequestDescriptor, token: CancellationToken
    ) -> TransportResponse:
        """Perform the request described by ``descriptor``."""
        ...
