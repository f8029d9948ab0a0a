"""Authoritative in-memory counter state.

All mutations go through a single lock and bump a monotonic sequence number.
Readers only ever receive frozen ``CounterState`` copies, so nothing outside
this module holds a reference to the live mapping.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import NamedTuple

from dashboard.counters.constants import METRIC_NAMES
from dashboard.counters.schemas import CounterState


class UnknownMetricError(ValueError):
    """Raised when a signal names a counter outside the fixed set."""

    def __init__(self, name: object) -> None:
        super().__init__(f"Unknown metric '{name}'")
        self.name = name


@dataclass(frozen=True)
class CounterUpdate:
    """Result of one applied increment."""

    metric: str
    value: int
    seq: int


class VersionedState(NamedTuple):
    state: CounterState
    seq: int


class CounterStore:
    """Mutex-guarded mapping of metric name to count."""

    def __init__(self, initial: CounterState | None = None) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = (initial or CounterState()).as_dict()
        self._seq = 0

    def increment(self, name: str) -> CounterUpdate:
        """Add one to ``name`` and return the new value.

        Raises ``UnknownMetricError`` without touching state when ``name`` is
        not a recognised metric.
        """

        if name not in METRIC_NAMES:
            raise UnknownMetricError(name)
        with self._lock:
            self._counts[name] += 1
            self._seq += 1
            return CounterUpdate(metric=name, value=self._counts[name], seq=self._seq)

    def snapshot(self) -> CounterState:
        return self.versioned_snapshot().state

    def versioned_snapshot(self) -> VersionedState:
        with self._lock:
            return VersionedState(CounterState(**self._counts), self._seq)

    def reset(self) -> CounterState:
        return self.reset_versioned().state

    def reset_versioned(self) -> VersionedState:
        """Zero every counter in one step."""

        with self._lock:
            self._counts = dict.fromkeys(METRIC_NAMES, 0)
            self._seq += 1
            return VersionedState(CounterState(**self._counts), self._seq)

    def load(self, initial: CounterState) -> None:
        """Replace state wholesale; intended for startup before traffic is served."""

        with self._lock:
            self._counts = initial.as_dict()
            self._seq += 1

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq
