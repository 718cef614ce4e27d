"""Fetcher capability interface and the RenderedPage it produces.

Extractors and the analyzer only see ``RenderedPage``: plain HTML, title,
response metadata and an optional ``evaluate`` hook into the live page. A
fetch path without a JavaScript execution context simply leaves the hook
unset.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, Optional, Protocol


class FetcherError(Exception):
    """Raised when a page cannot be fetched."""
    pass


class FetcherLaunchError(FetcherError):
    """Raised when the fetch backend itself cannot be started."""
    pass


class EvaluationUnavailableError(FetcherError):
    """Raised when evaluate() is called on a page without an execution context."""
    pass


Evaluator = Callable[[str, Any], Awaitable[Any]]


@dataclass
class FetchOptions:
    """Per-fetch settings derived from audit options and crawl settings."""
    navigation_timeout_ms: int = 30000
    block_resources: bool = True
    spa_settle_ms: int = 1000
    user_agent: Optional[str] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)


@dataclass
class RenderedPage:
    """A fetched page.

    Attributes:
        url: URL that was requested
        final_url: URL after redirects
        html: Final (rendered) HTML
        title: Document title as reported by the fetch path, None if unknown
        status_code: HTTP status of the main document, 0 if there was no response
        headers: Response headers with lower-cased names
        load_time_ms: Wall time from request to ready
        is_spa: Whether client-side framework markers were detected
    """
    url: str
    final_url: str
    html: str
    title: Optional[str] = None
    status_code: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    load_time_ms: float = 0.0
    is_spa: bool = False
    _evaluator: Optional[Evaluator] = field(default=None, repr=False)

    @property
    def content_length(self) -> int:
        declared = self.headers.get('content-length')
        if declared and declared.isdigit():
            return int(declared)
        return len(self.html.encode('utf-8'))

    @property
    def can_evaluate(self) -> bool:
        return self._evaluator is not None

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript expression in the live page.

        Raises:
            EvaluationUnavailableError: If this page has no execution context
        """
        if self._evaluator is None:
            raise EvaluationUnavailableError(f"No execution context for {self.url}")
        return await self._evaluator(script, arg)


class PageFetcher(Protocol):
    """Capability interface shared by the crawler and the rank tracker."""

    async def start(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def fetch(self, url: str, options: FetchOptions) -> AsyncContextManager[RenderedPage]:
        """Fetch a page; the execution context stays alive inside the ``async with`` block."""
        ...
