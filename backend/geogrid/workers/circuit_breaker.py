# backend/geogrid/workers/circuit_breaker.py
"""
Failure-rate circuit breaker for the worker pool.

Keeps a sliding window of recent point outcomes. Once the window is full and
the failure ratio reaches the threshold, the breaker trips; it stays paused
until resume() clears the window. A paused breaker never trips again.
"""

from collections import deque
from typing import Deque

from ..constants import DEFAULT_FAILURE_THRESHOLD, DEFAULT_FAILURE_WINDOW_SIZE


class FailureWindow:
    """Sliding window of point outcomes with pause state."""

    def __init__(
        self,
        window_size: int = DEFAULT_FAILURE_WINDOW_SIZE,
        threshold: float = DEFAULT_FAILURE_THRESHOLD,
    ):
        if window_size <= 0:
            raise ValueError("window_size must be greater than 0")
        if not 0 < threshold <= 1:
            raise ValueError("threshold must be in (0, 1]")

        self.window_size = window_size
        self.threshold = threshold
        self._outcomes: Deque[bool] = deque(maxlen=window_size)
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_full(self) -> bool:
        return len(self._outcomes) >= self.window_size

    @property
    def failure_count(self) -> int:
        return sum(1 for failed in self._outcomes if failed)

    @property
    def failure_ratio(self) -> float:
        if not self._outcomes:
            return 0.0
        return self.failure_count / len(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    def record(self, failed: bool) -> bool:
        """
        Record one outcome.

        Returns:
            True if this outcome tripped the breaker into the paused state
        """
        self._outcomes.append(bool(failed))
        if self._paused or not self.is_full:
            return False
        if self.failure_ratio >= self.threshold:
            self._paused = True
            return True
        return False

    def resume(self) -> None:
        """Leave the paused state with an empty window."""
        self._outcomes.clear()
        self._paused = False
