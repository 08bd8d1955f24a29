# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Protocol definitions for orchestrator collaborators.

Available protocols:
- TransportProtocol: Interface for the component that performs requests
- MetricsCollectorProtocol: Interface for metrics backends
"""

from ..observability.protocols import MetricsCollectorProtocol
from .transport import TransportProtocol

__all__ = [
    "MetricsCollectorProtocol",
    "TransportProtocol",
]
