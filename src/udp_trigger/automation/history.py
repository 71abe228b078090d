"""Bounded execution history, newest entry first."""

from __future__ import annotations

import threading
from collections import deque

from .models import ExecutionLog

MAX_EXECUTION_LOGS = 100


class ExecutionHistory:
    """Capped ring of :class:`ExecutionLog` entries.

    Entries are fully built before they are linked in, so a cancelled run can
    never leave a half-populated record behind.
    """

    def __init__(self, capacity: int = MAX_EXECUTION_LOGS) -> None:
        self._entries: deque[ExecutionLog] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def add(self, entry: ExecutionLog) -> None:
        with self._lock:
            self._entries.appendleft(entry)

    def entries(self, automation_id: str | None = None) -> list[ExecutionLog]:
        """Entries newest first, optionally only those of one automation."""
        with self._lock:
            snapshot = list(self._entries)
        if automation_id is None:
            return snapshot
        return [entry for entry in snapshot if entry.automation_id == automation_id]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["MAX_EXECUTION_LOGS", "ExecutionHistory"]
