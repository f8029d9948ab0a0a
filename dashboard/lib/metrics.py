"""Operational counters describing the dashboard service itself.

These are separate from the dashboard counters in ``dashboard.counters``: they
record how the service is doing and are exposed only under ``GET /health``.

Names in use:

- ``signal.accepted`` / ``signal.rejected`` / ``signal.error``
- ``persist.success`` / ``persist.failure``
- ``broadcast.sent``: messages queued to subscribers
- ``subscriber.connected`` / ``subscriber.dropped``: dropped covers full queues and failed sends
- ``reset.count``
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Dict


class MetricsRegistry:
    """Thread-safe name -> count tally; callers may run on the loop or in worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] += value

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()


OPS_METRICS = MetricsRegistry()
