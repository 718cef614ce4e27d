"""Keyword rank tracking on search engine result pages.

Result pages are loaded through the same ``PageFetcher`` contract the
crawler uses, so a browser or a static fetcher (or a fake in tests) can be
plugged in. Keywords are checked one after another; a failure on one result
page or keyword is logged and leaves that keyword unranked.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Tuple
from urllib.parse import parse_qs, quote_plus, urlparse

from bs4 import BeautifulSoup

from .capture.page import FetcherError, FetchOptions, PageFetcher, RenderedPage
from .utils.url_normalizer import get_host, strip_www


logger = logging.getLogger(__name__)


RESULTS_PER_PAGE = 10


@dataclass(frozen=True)
class Keyword:
    id: str
    keyword: str


@dataclass(frozen=True)
class RankingRecord:
    """Where a domain ranks for a keyword.

    ``rank`` is the overall position, ``page`` and ``position`` locate it on a
    result page. All four location fields are None when the domain was not
    found within the checked pages.
    """
    keyword_id: str
    keyword: str
    rank: Optional[int] = None
    url: Optional[str] = None
    page: Optional[int] = None
    position: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.rank is not None


class SerpParser(Protocol):
    """Search-engine specific URL building and result extraction."""

    def build_url(self, keyword: str, page: int) -> str:
        ...

    def parse(self, page: RenderedPage) -> List[str]:
        """Return organic result URLs in display order."""
        ...


class GoogleSerpParser:
    """Best-effort Google result parsing; the markup changes often."""

    RESULT_SELECTORS = [
        'div.g a[href]',
        '.yuRUbf > a[href]',
        '#search a[href]',
    ]
    EXCLUDED_FRAGMENTS = (
        'google.',
        'webcache.googleusercontent',
        'accounts.google',
        'support.google',
    )

    def __init__(self, language: str = 'en'):
        self.language = language

    def build_url(self, keyword: str, page: int) -> str:
        url = f"https://www.google.com/search?q={quote_plus(keyword)}&hl={self.language}"
        if page > 1:
            url += f"&start={(page - 1) * RESULTS_PER_PAGE}"
        return url

    def parse(self, page: RenderedPage) -> List[str]:
        soup = BeautifulSoup(page.html, 'html.parser')
        for selector in self.RESULT_SELECTORS:
            links = self._unique(self._target(a.get('href', '')) for a in soup.select(selector))
            if links:
                return links
        return []

    def _target(self, href: str) -> Optional[str]:
        # Without JavaScript, results are wrapped as /url?q=<target>
        if href.startswith('/url?'):
            href = parse_qs(urlparse(href).query).get('q', [''])[0]
        if not href.startswith(('http://', 'https://')):
            return None
        if any(fragment in href for fragment in self.EXCLUDED_FRAGMENTS):
            return None
        return href

    @staticmethod
    def _unique(links: Iterable[Optional[str]]) -> List[str]:
        seen = set()
        result = []
        for link in links:
            if link and link not in seen:
                seen.add(link)
                result.append(link)
        return result


class BingSerpParser:
    """Bing organic results (``li.b_algo h2 > a``)."""

    def build_url(self, keyword: str, page: int) -> str:
        url = f"https://www.bing.com/search?q={quote_plus(keyword)}"
        if page > 1:
            url += f"&first={(page - 1) * RESULTS_PER_PAGE + 1}"
        return url

    def parse(self, page: RenderedPage) -> List[str]:
        soup = BeautifulSoup(page.html, 'html.parser')
        return [
            a['href'] for a in soup.select('li.b_algo h2 > a[href]')
            if a['href'].startswith(('http://', 'https://'))
        ]


def find_domain_position(links: List[str], domain: str) -> Optional[Tuple[int, str]]:
    """1-based position of the first link on ``domain`` or one of its subdomains."""
    domain = strip_www(domain.lower())
    for index, link in enumerate(links, start=1):
        host = strip_www(get_host(link).lower().split(':')[0])
        if host == domain or host.endswith(f".{domain}"):
            return index, link
    return None


class RankTracker:
    """Checks where a site ranks for a list of keywords."""

    def __init__(
        self,
        fetcher: PageFetcher,
        parser: Optional[SerpParser] = None,
        max_result_pages: int = 2,
        fetch_options: Optional[FetchOptions] = None,
        page_delay_seconds: float = 1.5
    ):
        """Initialize the tracker.

        Args:
            fetcher: Fetch path used to load result pages; must be started
            parser: Search engine parser, Google by default
            max_result_pages: Result pages checked per keyword
            fetch_options: Fetch settings for result pages
            page_delay_seconds: Pause between result page requests
        """
        if max_result_pages < 1:
            raise ValueError("max_result_pages must be at least 1")
        self.fetcher = fetcher
        self.parser = parser or GoogleSerpParser()
        self.max_result_pages = max_result_pages
        self.fetch_options = fetch_options or FetchOptions(block_resources=True)
        self.page_delay_seconds = page_delay_seconds

    async def check(self, site_url: str, keywords: Iterable[Keyword]) -> List[RankingRecord]:
        """Rank ``site_url``'s domain for every keyword.

        Returns:
            One RankingRecord per keyword, in input order
        """
        domain = strip_www(get_host(site_url).lower().split(':')[0])
        if not domain:
            raise ValueError(f"Invalid site URL: {site_url}")

        records = []
        for keyword in keywords:
            records.append(await self._check_keyword(domain, keyword))
        found = sum(1 for record in records if record.found)
        logger.info(f"Rank check for {domain}: {found}/{len(records)} keywords ranked")
        return records

    async def _check_keyword(self, domain: str, keyword: Keyword) -> RankingRecord:
        for page_number in range(1, self.max_result_pages + 1):
            if page_number > 1 and self.page_delay_seconds > 0:
                await asyncio.sleep(self.page_delay_seconds)

            url = self.parser.build_url(keyword.keyword, page_number)
            logger.debug(f"Checking '{keyword.keyword}' result page {page_number}")
            try:
                async with self.fetcher.fetch(url, self.fetch_options) as page:
                    links = self.parser.parse(page)
            except FetcherError as e:
                logger.warning(f"Result page {page_number} for '{keyword.keyword}' failed: {e}")
                continue

            match = find_domain_position(links, domain)
            if match is not None:
                position, link = match
                return RankingRecord(
                    keyword_id=keyword.id,
                    keyword=keyword.keyword,
                    rank=(page_number - 1) * RESULTS_PER_PAGE + position,
                    url=link,
                    page=page_number,
                    position=position,
                )
        return RankingRecord(keyword_id=keyword.id, keyword=keyword.keyword)
