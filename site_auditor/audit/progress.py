"""Throttled, monotonic progress reporting.

``update`` is synchronous and cheap: it decides whether a notification is due
and drops it into a bounded queue. A single delivery task drains the queue
and awaits the caller's callback, so a slow callback (for example one that
writes to a database) never holds up crawl workers. When the queue is full
the oldest pending event is replaced; delivered percentages still only
increase.
"""

import asyncio
import inspect
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int, int], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    discovered: int
    processed: int


def compute_percentage(processed: int, discovered: int) -> int:
    """``min(100, floor(processed / discovered * 100))``, 0 when nothing is discovered."""
    if discovered <= 0:
        return 0
    return min(100, math.floor(processed / discovered * 100))


class ProgressTracker:
    """Converts processed/discovered counters into throttled progress events."""

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        step: int = 5,
        interval_seconds: float = 5.0,
        max_pending: int = 16,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the tracker.

        Args:
            callback: ``(percent, discovered, processed)``; may be a coroutine function
            step: Minimum percentage change between notifications
            interval_seconds: Notify anyway once this much time has passed
            max_pending: Capacity of the delivery queue
            clock: Time source, injectable for tests
        """
        self.callback = callback
        self.step = step
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue(maxsize=max_pending)
        self._delivery_task: Optional[asyncio.Task] = None

        self.percent = 0
        self.last_sent: Optional[int] = None
        self._last_sent_at = clock()
        self.dropped = 0
        self.delivered = 0
        self.failures = 0

    def start(self) -> None:
        """Start the delivery task; must be called from a running event loop."""
        if self.callback is not None and self._delivery_task is None:
            self._delivery_task = asyncio.create_task(self._deliver_loop())

    def update(self, processed: int, discovered: int) -> Optional[ProgressEvent]:
        """Record new counters.

        Returns:
            The event queued for delivery, or None when throttled
        """
        self.percent = max(self.percent, compute_percentage(processed, discovered))
        now = self._clock()
        due = (
            self.last_sent is None
            or self.percent - self.last_sent >= self.step
            or (now - self._last_sent_at >= self.interval_seconds and self.percent >= self.last_sent)
        )
        if not due:
            return None
        return self._emit(ProgressEvent(self.percent, discovered, processed), now)

    def _emit(self, event: ProgressEvent, now: float) -> ProgressEvent:
        self.last_sent = event.percent
        self._last_sent_at = now
        if self.callback is None:
            return event
        if self._queue.full():
            self._queue.get_nowait()
            self._queue.task_done()
            self.dropped += 1
        self._queue.put_nowait(event)
        return event

    async def finish(self, processed: int, discovered: int) -> None:
        """Send the final state and wait for pending notifications to be delivered."""
        self.percent = max(self.percent, compute_percentage(processed, discovered))
        if self.last_sent != self.percent:
            self._emit(ProgressEvent(self.percent, discovered, processed), self._clock())
        await self.close()

    async def close(self) -> None:
        if self._delivery_task is None:
            return
        await self._queue.put(None)
        await self._delivery_task
        self._delivery_task = None

    async def _deliver_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                await self._invoke(event)
            finally:
                self._queue.task_done()

    async def _invoke(self, event: ProgressEvent) -> None:
        try:
            result: Any = self.callback(event.percent, event.discovered, event.processed)
            if inspect.isawaitable(result):
                await result
            self.delivered += 1
        except Exception as e:
            self.failures += 1
            logger.warning(f"Progress callback failed at {event.percent}%: {e}")
