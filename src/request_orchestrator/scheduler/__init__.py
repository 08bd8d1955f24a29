# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Admission scheduling and orchestrator configuration."""

from .config import OrchestratorConfig
from .queue import AdmissionQueue, TaskExecutor

__all__ = [
    "AdmissionQueue",
    "OrchestratorConfig",
    "TaskExecutor",
]
