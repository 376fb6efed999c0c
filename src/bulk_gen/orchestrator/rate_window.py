"""Sliding-window admission counter."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable


class RateWindowTracker:
    """Records admission timestamps and reports remaining window budget.

    Timestamps come from ``clock`` (monotonic seconds by default). Every read
    prunes entries that have aged out, so the record set never grows beyond
    the admissions made within one window.
    """

    def __init__(
        self,
        *,
        rate_limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate_limit = rate_limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._timestamps: deque[float] = deque()

    def now(self) -> float:
        return self._clock()

    def record_admissions(self, count: int, at: float | None = None) -> None:
        """Append ``count`` admission timestamps at the same instant."""

        if count <= 0:
            return
        moment = self._clock() if at is None else at
        with self._lock:
            self._timestamps.extend([moment] * count)

    def available_now(self, at: float | None = None) -> int:
        """Return how many admissions the window still allows at ``at``."""

        moment = self._clock() if at is None else at
        with self._lock:
            self._prune_locked(moment)
            in_window = sum(1 for stamp in self._timestamps if stamp <= moment)
        return max(0, self.rate_limit - in_window)

    def prune(self, at: float | None = None) -> None:
        moment = self._clock() if at is None else at
        with self._lock:
            self._prune_locked(moment)

    def recorded_count(self) -> int:
        with self._lock:
            return len(self._timestamps)

    def _prune_locked(self, moment: float) -> None:
        cutoff = moment - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
