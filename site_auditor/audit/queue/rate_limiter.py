"""Per-host politeness limiting with a token bucket and response backoff.

The request budget is expressed per minute. Each host gets its own bucket;
429 and 5xx responses push the host into exponential backoff, honouring
``Retry-After`` when the server sends one.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..utils.url_normalizer import get_host


logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """Token bucket refilled continuously at ``refill_rate`` tokens per second."""
    capacity: float
    tokens: float
    refill_rate: float
    last_refill: float

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now

    def try_consume(self) -> float:
        """Consume one token if available.

        Returns:
            0.0 on success, otherwise seconds until a token will be available
        """
        self._refill()
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return 0.0
        return (1.0 - self.tokens) / self.refill_rate


@dataclass
class HostBackoff:
    consecutive_failures: int = 0
    blocked_until: float = 0.0

    def delay(self) -> float:
        return max(0.0, self.blocked_until - time.monotonic())


class HostBudget:
    """Request budget for one host."""

    def __init__(self, host: str, requests_per_minute: int, base_delay: float = 1.0, max_delay: float = 60.0):
        self.host = host
        rate = requests_per_minute / 60.0
        capacity = max(1.0, min(rate * 2, float(requests_per_minute)))
        self._bucket = TokenBucket(capacity=capacity, tokens=capacity, refill_rate=rate, last_refill=time.monotonic())
        self._backoff = HostBackoff()
        self._lock = asyncio.Lock()
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.requests = 0
        self.throttled = 0

    async def acquire(self) -> None:
        """Wait until this host may receive another request."""
        async with self._lock:
            while True:
                wait = self._backoff.delay() or self._bucket.try_consume()
                if wait <= 0:
                    break
                self.throttled += 1
                await asyncio.sleep(wait)
            self.requests += 1

    def record_response(self, status_code: int, retry_after: Optional[float] = None) -> None:
        if status_code == 429 or status_code >= 500:
            self._backoff.consecutive_failures += 1
            if retry_after is not None:
                delay = min(retry_after, self.max_delay)
            else:
                delay = min(self.base_delay * 2 ** (self._backoff.consecutive_failures - 1), self.max_delay)
                delay += random.uniform(0, delay * 0.1)
            self._backoff.blocked_until = time.monotonic() + delay
            logger.info(f"Backing off {self.host} for {delay:.1f}s after HTTP {status_code}")
        else:
            self._backoff.consecutive_failures = 0

    def get_stats(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "requests": self.requests,
            "throttled": self.throttled,
            "consecutive_failures": self._backoff.consecutive_failures,
            "backoff_remaining": self._backoff.delay(),
        }


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None


class PerHostRateLimiter:
    """Hands out per-host budgets sharing one requests-per-minute setting."""

    def __init__(self, requests_per_minute: int = 60, max_delay: float = 60.0):
        self.requests_per_minute = requests_per_minute
        self.max_delay = max_delay
        self._budgets: Dict[str, HostBudget] = {}

    def get_budget(self, url: str) -> HostBudget:
        host = get_host(url) or url
        budget = self._budgets.get(host)
        if budget is None:
            budget = HostBudget(host, self.requests_per_minute, max_delay=self.max_delay)
            self._budgets[host] = budget
        return budget

    async def acquire(self, url: str) -> None:
        await self.get_budget(url).acquire()

    def record_response(self, url: str, status_code: int, headers: Optional[Dict[str, str]] = None) -> None:
        retry_after = None
        if headers:
            lowered = {k.lower(): v for k, v in headers.items()}
            retry_after = parse_retry_after(lowered.get('retry-after'))
        self.get_budget(url).record_response(status_code, retry_after)

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return {host: budget.get_stats() for host, budget in self._budgets.items()}
