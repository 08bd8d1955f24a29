# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Single-flight request locking and debouncing."""

from .manager import DebounceWindow, PendingLock, RequestLockManager

__all__ = ["DebounceWindow", "PendingLock", "RequestLockManager"]
