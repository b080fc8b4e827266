"""
Sliding-window metric store

Per-family, time-bounded event log used for failure-rate computation. Events
older than the window are evicted lazily on every ``record`` and every read;
there is no background sweep. Each family is additionally capped at
``max_events`` so a burst can never grow memory without bound.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from inspection_engine.core.config import settings


@dataclass(frozen=True)
class MetricEvent:
    """One classified metric emission."""

    key: str
    success: bool
    timestamp: float | None = None


@dataclass(frozen=True)
class WindowSnapshot:
    key: str
    total: int
    failures: int
    window_seconds: float
    rate: float | None = field(default=None)

    @property
    def successes(self) -> int:
        return self.total - self.failures


class MetricWindowStore:
    """
    Thread-safe per-key sliding window.

    ``clock`` returns seconds (monotonic by default) and is injectable for tests.
    """

    def __init__(
        self,
        *,
        window_seconds: float | None = None,
        min_events: int | None = None,
        max_events: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.metrics_window_seconds
        )
        self.min_events = min_events if min_events is not None else settings.metrics_min_events
        self.max_events = max_events
        self._clock = clock
        self._windows: dict[str, deque[tuple[float, bool]]] = {}
        self._lock = threading.Lock()

    def record(self, event: MetricEvent) -> None:
        now = self._clock()
        ts = event.timestamp if event.timestamp is not None else now
        with self._lock:
            window = self._windows.get(event.key)
            if window is None:
                window = deque(maxlen=self.max_events)
                self._windows[event.key] = window
            window.append((ts, event.success))
            self._evict(window, now)

    def current_rate(self, key: str) -> float | None:
        """Failure rate for ``key``, or None below the minimum event count."""
        return self.snapshot(key).rate

    def snapshot(self, key: str) -> WindowSnapshot:
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                events: list[tuple[float, bool]] = []
            else:
                self._evict(window, now)
                # appends may arrive slightly out of order; filter instead of trusting the head
                events = [e for e in window if e[0] > cutoff]

        total = len(events)
        failures = sum(1 for _, ok in events if not ok)
        rate = failures / total if total >= self.min_events else None
        return WindowSnapshot(
            key=key,
            total=total,
            failures=failures,
            window_seconds=self.window_seconds,
            rate=rate,
        )

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._windows)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _evict(self, window: deque[tuple[float, bool]], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0][0] <= cutoff:
            window.popleft()
