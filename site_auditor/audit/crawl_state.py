"""Single owner of the mutable state of one crawl run.

The visited set, the PageResult map, the title index, the duplicate content
detector and the set of deliberately skipped URLs are only changed through
this object. Multi-step updates run under one ``asyncio.Lock``; the
single-step ones contain no suspension point and are atomic on the event loop.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from .detectors.duplicate_content import DuplicateContentDetector
from .models.extraction import SEOData
from .models.results import PageResult
from .rules.analyzer import SiteContext


logger = logging.getLogger(__name__)


class CrawlState:
    """Visited set, results and crawl-wide indexes for one run."""

    def __init__(self, max_pages: int, detector: Optional[DuplicateContentDetector] = None):
        self.max_pages = max_pages
        self.detector = detector or DuplicateContentDetector()
        self._lock = asyncio.Lock()
        self._visited: Set[str] = set()
        self._results: Dict[str, PageResult] = {}
        self._titles: Dict[str, str] = {}
        self._declined: Set[str] = set()
        self.discovered = 0

    async def admit(self, url: str) -> bool:
        """Mark a dequeued URL as visited if it may be processed.

        Returns:
            False when the URL was already visited or the page budget is spent
        """
        async with self._lock:
            if url in self._visited:
                return False
            if len(self._visited) >= self.max_pages:
                self._declined.add(url)
                return False
            self._visited.add(url)
            return True

    async def register_content(self, url: str, seo: SEOData) -> SiteContext:
        """Register a page's title and text and return what it collides with."""
        async with self._lock:
            duplicate_of = self.detector.check(url, seo.text_content)
            title_key = seo.title.strip().lower()
            titles = {}
            if title_key:
                first_url = self._titles.setdefault(title_key, url)
                titles[title_key] = first_url
            return SiteContext(titles=titles, duplicate_of=duplicate_of)

    async def record(self, result: PageResult) -> int:
        """Store a finished PageResult.

        Returns:
            Number of recorded pages

        Raises:
            ValueError: If the URL was never admitted or was already recorded
        """
        async with self._lock:
            if result.url not in self._visited:
                raise ValueError(f"Recording result for unadmitted URL: {result.url}")
            if result.url in self._results:
                raise ValueError(f"Result already recorded for {result.url}")
            self._results[result.url] = result
            return len(self._results)

    def note_discovered(self, count: int = 1) -> None:
        self.discovered += count

    def decline(self, urls: Iterable[str]) -> None:
        """Remember URLs that crawl rules kept out of the frontier."""
        for url in urls:
            if url and url not in self._visited:
                self._declined.add(url)

    @property
    def processed(self) -> int:
        return len(self._results)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def budget_spent(self) -> bool:
        return len(self._visited) >= self.max_pages

    def progress_counters(self) -> tuple:
        """``(processed, discovered)`` with discovered capped at the page budget."""
        return len(self._results), max(min(self.discovered, self.max_pages), len(self._results))

    def results(self) -> Dict[str, PageResult]:
        return dict(self._results)

    def ordered_results(self) -> List[PageResult]:
        return list(self._results.values())

    def visited(self) -> Set[str]:
        return set(self._visited)

    def declined(self) -> Set[str]:
        return set(self._declined)
