"""Sitemap parsing for seed discovery.

Handles ``urlset`` and ``sitemapindex`` documents (recursively, with a depth
bound and a processed set against cycles), gzip bodies, and falls back to a
regex scan for ``<loc>`` tags when the XML cannot be parsed or yields nothing.
"""

import gzip
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple
from urllib.parse import urljoin

import aiohttp

from ..utils.url_normalizer import URLNormalizationError, normalize


logger = logging.getLogger(__name__)


class SitemapError(Exception):
    """Raised when a sitemap cannot be fetched or decoded."""
    pass


SITEMAP_NS = {'sitemap': 'http://www.sitemaps.org/schemas/sitemap/0.9'}

_LOC_RE = re.compile(r'<loc>\s*(?:<!\[CDATA\[)?\s*(.*?)\s*(?:\]\]>)?\s*</loc>', re.IGNORECASE | re.DOTALL)


@dataclass
class ParsedSitemap:
    """Result of parsing one sitemap document."""
    page_urls: List[str] = field(default_factory=list)
    child_sitemaps: List[str] = field(default_factory=list)
    is_index: bool = False
    used_fallback: bool = False


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def _find_locs(root: ET.Element, entry_tag: str) -> List[str]:
    locs = []
    for element in root.iter():
        if _local_name(element.tag) != entry_tag:
            continue
        for child in element:
            if _local_name(child.tag) == 'loc' and child.text and child.text.strip():
                locs.append(child.text.strip())
                break
    return locs


def parse_sitemap(content: bytes, base_url: str = '') -> ParsedSitemap:
    """Parse a sitemap body into page URLs or child sitemap URLs.

    Args:
        content: Raw (already decompressed) sitemap bytes
        base_url: URL of the sitemap, for resolving relative locations

    Returns:
        ParsedSitemap; empty if nothing could be extracted
    """
    result = ParsedSitemap()
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        logger.debug(f"Sitemap {base_url or '<inline>'} is not well-formed XML: {e}")
        root = None

    if root is not None:
        if _local_name(root.tag) == 'sitemapindex':
            result.is_index = True
            result.child_sitemaps = [urljoin(base_url, loc) for loc in _find_locs(root, 'sitemap')]
        else:
            result.page_urls = [urljoin(base_url, loc) for loc in _find_locs(root, 'url')]

    if not result.page_urls and not result.child_sitemaps:
        text = content.decode('utf-8', errors='replace')
        locs = [urljoin(base_url, loc) for loc in _LOC_RE.findall(text) if loc]
        if locs:
            result.used_fallback = True
            if '<sitemapindex' in text.lower():
                result.is_index = True
                result.child_sitemaps = locs
            else:
                result.page_urls = locs
    return result


def _is_gzipped(content: bytes) -> bool:
    return content.startswith(b'\x1f\x8b')


class SitemapProvider:
    """Collects page URLs from one or more sitemap locations.

    Features:
    - urlset and sitemapindex documents
    - Recursive index handling bounded by ``max_depth``
    - Gzip-compressed sitemaps
    - Regex fallback for malformed XML
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        max_urls: int = 50000,
        max_depth: int = 3,
        timeout: float = 20.0
    ):
        """Initialize sitemap provider.

        Args:
            session: Shared HTTP session
            max_urls: Stop after this many page URLs
            max_depth: Maximum sitemap index nesting
            timeout: Per-request timeout in seconds
        """
        self._session = session
        self.max_urls = max_urls
        self.max_depth = max_depth
        self.timeout = timeout
        self._processed: Set[str] = set()
        self._stats = {
            "sitemaps_processed": 0,
            "sitemaps_failed": 0,
            "index_sitemaps": 0,
            "compressed_sitemaps": 0,
            "fallback_parses": 0,
            "urls_discovered": 0,
        }

    async def fetch(self, sitemap_url: str) -> Tuple[bytes, str]:
        """Fetch a sitemap body.

        Returns:
            Tuple of (decompressed content, content type)

        Raises:
            SitemapError: On non-200 responses or undecodable gzip bodies
        """
        async with self._session.get(
            sitemap_url, timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as response:
            if response.status != 200:
                raise SitemapError(f"HTTP {response.status} fetching sitemap: {sitemap_url}")
            content = await response.read()
            content_type = response.headers.get('Content-Type', '')

        if _is_gzipped(content):
            try:
                content = gzip.decompress(content)
                self._stats["compressed_sitemaps"] += 1
            except (OSError, EOFError) as e:
                raise SitemapError(f"Failed to decompress sitemap {sitemap_url}: {e}")
        return content, content_type

    async def collect(self, sitemap_url: str, depth: int = 0) -> List[str]:
        """Collect page URLs reachable from a sitemap.

        Never raises: failures are logged and yield an empty list.

        Args:
            sitemap_url: Sitemap or sitemap index URL
            depth: Current index nesting (internal)

        Returns:
            Normalized, de-duplicated page URLs in document order
        """
        if depth > self.max_depth:
            logger.warning(f"Maximum sitemap depth reached: {sitemap_url}")
            return []
        try:
            key = normalize(sitemap_url)
        except URLNormalizationError:
            logger.debug(f"Skipping invalid sitemap URL: {sitemap_url}")
            return []
        if key in self._processed:
            return []
        self._processed.add(key)

        try:
            content, content_type = await self.fetch(key)
        except Exception as e:
            self._stats["sitemaps_failed"] += 1
            logger.warning(f"Could not fetch sitemap {key}: {e}")
            return []

        if content_type and 'xml' not in content_type.lower() and 'gzip' not in content_type.lower():
            logger.warning(f"Sitemap {key} served as '{content_type}', parsing anyway")

        parsed = parse_sitemap(content, key)
        self._stats["sitemaps_processed"] += 1
        if parsed.used_fallback:
            self._stats["fallback_parses"] += 1

        urls: List[str] = []
        if parsed.is_index:
            self._stats["index_sitemaps"] += 1
            for child in parsed.child_sitemaps:
                if len(urls) >= self.max_urls:
                    break
                urls.extend(await self.collect(child, depth + 1))
        else:
            urls = parsed.page_urls

        seen: Set[str] = set()
        unique: List[str] = []
        for url in urls:
            try:
                normalized = normalize(url)
            except URLNormalizationError:
                continue
            if normalized not in seen:
                seen.add(normalized)
                unique.append(normalized)
            if len(unique) >= self.max_urls:
                break

        if depth == 0:
            self._stats["urls_discovered"] += len(unique)
            logger.info(f"Sitemap {key}: {len(unique)} URLs")
        return unique

    def get_stats(self) -> dict:
        return {"provider": "sitemap", **self._stats, "max_depth": self.max_depth}
