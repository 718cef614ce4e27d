"""Adaptive concurrency limit for the crawl worker pool.

Workers call ``acquire`` before running a task and ``release`` after. The
permitted width starts at ``desired`` and moves between ``minimum`` and
``maximum``: it grows while the pool is saturated (active tasks at or above
``target_utilization`` of the width) and shrinks when many recent tasks failed.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict


logger = logging.getLogger(__name__)


class ConcurrencyGovernor:
    """Bounded, self-adjusting concurrency limit."""

    def __init__(
        self,
        minimum: int = 2,
        desired: int = 5,
        maximum: int = 10,
        target_utilization: float = 0.9,
        step_ratio: float = 0.05,
        window: int = 10,
        failure_ratio_threshold: float = 0.3
    ):
        """Initialize the governor.

        Args:
            minimum: Floor for the width
            desired: Starting width
            maximum: Hard ceiling, never exceeded
            target_utilization: Busy ratio that triggers growth
            step_ratio: Relative width change per adjustment
            window: Completed tasks between adjustments
            failure_ratio_threshold: Failure share in a window that triggers shrinking
        """
        if not 1 <= minimum <= desired <= maximum:
            raise ValueError("Expected 1 <= minimum <= desired <= maximum")
        self.minimum = minimum
        self.maximum = maximum
        self.target_utilization = target_utilization
        self.step_ratio = step_ratio
        self.window = window
        self.failure_ratio_threshold = failure_ratio_threshold

        self._width = float(desired)
        self._active = 0
        self._peak_active = 0
        self._outcomes: Deque[bool] = deque(maxlen=window)
        self._completed_since_adjust = 0
        self._condition = asyncio.Condition()

    @property
    def limit(self) -> int:
        """Current integer width."""
        return max(self.minimum, min(self.maximum, int(self._width)))

    @property
    def active(self) -> int:
        return self._active

    async def acquire(self) -> None:
        async with self._condition:
            await self._condition.wait_for(lambda: self._active < self.limit)
            self._active += 1
            self._peak_active = max(self._peak_active, self._active)

    async def release(self, success: bool = True) -> None:
        async with self._condition:
            self._active -= 1
            self._outcomes.append(success)
            self._completed_since_adjust += 1
            if self._completed_since_adjust >= self.window:
                self._adjust()
            self._condition.notify_all()

    def _adjust(self) -> None:
        failures = self._outcomes.count(False)
        failure_ratio = failures / len(self._outcomes) if self._outcomes else 0.0
        previous = self.limit
        if failure_ratio > self.failure_ratio_threshold:
            self._width = max(float(self.minimum), self._width * (1 - self.step_ratio * 4))
        elif self._peak_active >= self.target_utilization * self.limit:
            self._width = min(float(self.maximum), self._width * (1 + self.step_ratio) + self.step_ratio)
        if self.limit != previous:
            logger.debug(f"Concurrency adjusted {previous} -> {self.limit} (failure ratio {failure_ratio:.2f})")
        self._completed_since_adjust = 0
        self._peak_active = self._active

    def get_stats(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "active": self._active,
            "minimum": self.minimum,
            "maximum": self.maximum,
        }
