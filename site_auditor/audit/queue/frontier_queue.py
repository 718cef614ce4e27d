"""Frontier queue holding discovered-but-not-yet-processed crawl tasks.

Tasks are de-duplicated by normalized URL at enqueue time and served
shallowest-first (seeds before links, FIFO within a depth). The queue keeps
``asyncio.Queue`` task accounting so the orchestrator can ``join`` it: every
``get`` must be matched by exactly one ``task_done``.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

from ..models.crawl import CrawlTask
from ..utils.url_normalizer import URLNormalizationError, normalize


logger = logging.getLogger(__name__)


class QueueClosedError(Exception):
    """Raised when attempting to operate on a closed queue."""
    pass


class FrontierQueueStats:
    """Statistics tracking for frontier queue operations."""

    def __init__(self):
        self.enqueued_total = 0
        self.dequeued_total = 0
        self.deduplicated_total = 0
        self.dropped_full = 0
        self.queue_size_max = 0
        self.start_time = time.time()

    def export(self) -> Dict[str, Any]:
        return {
            "enqueued_total": self.enqueued_total,
            "dequeued_total": self.dequeued_total,
            "deduplicated_total": self.deduplicated_total,
            "dropped_full": self.dropped_full,
            "queue_size_max": self.queue_size_max,
            "uptime_seconds": time.time() - self.start_time,
        }


class FrontierQueue:
    """Async priority queue of CrawlTasks with URL de-duplication.

    ``put`` never blocks: when the queue is at capacity the task is dropped
    and counted, so workers that enqueue children cannot deadlock against
    each other.
    """

    def __init__(self, max_size: int = 10000):
        """Initialize the frontier queue.

        Args:
            max_size: Maximum number of queued tasks
        """
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._max_size = max_size
        self._seen_urls: Set[str] = set()
        self._stats = FrontierQueueStats()
        self._closed = False
        self._counter = 0

    def put(self, task: CrawlTask) -> bool:
        """Add a task to the queue.

        Args:
            task: Task to enqueue; its URL is normalized for de-duplication

        Returns:
            True if the task was added, False if invalid, already seen or the queue is full

        Raises:
            QueueClosedError: If the queue has been closed
        """
        if self._closed:
            raise QueueClosedError("Queue has been closed")

        try:
            normalized_url = normalize(task.url)
        except URLNormalizationError:
            logger.debug(f"Skipping invalid URL: {task.url}")
            return False

        if normalized_url in self._seen_urls:
            self._stats.deduplicated_total += 1
            return False

        if self._queue.qsize() >= self._max_size:
            self._stats.dropped_full += 1
            logger.warning(f"Frontier full ({self._max_size}), dropping URL: {normalized_url}")
            return False

        if normalized_url != task.url:
            task = task.model_copy(update={"url": normalized_url})

        self._seen_urls.add(normalized_url)
        self._counter += 1
        self._queue.put_nowait((task.depth, self._counter, task))
        self._stats.enqueued_total += 1
        self._stats.queue_size_max = max(self._stats.queue_size_max, self._queue.qsize())
        logger.debug(f"Enqueued {normalized_url} at depth {task.depth}")
        return True

    def has_seen(self, url: str) -> bool:
        try:
            return normalize(url) in self._seen_urls
        except URLNormalizationError:
            return False

    async def get(self, timeout: Optional[float] = None) -> Optional[CrawlTask]:
        """Get the next task.

        Args:
            timeout: Maximum time to wait for an item

        Returns:
            Next CrawlTask, or None on timeout
        """
        try:
            if timeout:
                _, _, task = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            else:
                _, _, task = await self._queue.get()
        except asyncio.TimeoutError:
            return None
        self._stats.dequeued_total += 1
        return task

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every enqueued task has been marked done."""
        await self._queue.join()

    def close(self) -> None:
        """Reject further puts."""
        self._closed = True

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def is_closed(self) -> bool:
        return self._closed

    @property
    def seen_count(self) -> int:
        return len(self._seen_urls)

    def get_stats(self) -> Dict[str, Any]:
        stats = self._stats.export()
        stats.update({
            "current_size": self.qsize(),
            "max_capacity": self._max_size,
            "seen_urls_count": len(self._seen_urls),
            "is_closed": self._closed,
        })
        return stats
