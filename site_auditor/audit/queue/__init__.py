"""Frontier, politeness and concurrency control."""

from .frontier_queue import FrontierQueue, FrontierQueueStats, QueueClosedError
from .governor import ConcurrencyGovernor
from .rate_limiter import HostBudget, PerHostRateLimiter, TokenBucket

__all__ = [
    'FrontierQueue',
    'FrontierQueueStats',
    'QueueClosedError',
    'ConcurrencyGovernor',
    'HostBudget',
    'PerHostRateLimiter',
    'TokenBucket',
]
