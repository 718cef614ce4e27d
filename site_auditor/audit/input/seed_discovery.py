"""Seed discovery: resolve the initial URL set for an audit run.

The site URL always comes first. robots.txt is fetched when robots handling
is enabled (its rules feed the scope matcher and its ``Sitemap:`` lines feed
sitemap discovery), then sitemaps are read. Every fetch is bounded by a
timeout and degrades to an empty result.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

import aiohttp

from ..models.crawl import DEFAULT_USER_AGENT, AuditOptions, TaskLabel
from ..utils.url_normalizer import URLNormalizationError, get_base_url, normalize
from .robots_provider import RobotsRules, fetch_robots
from .sitemap_provider import SitemapProvider


logger = logging.getLogger(__name__)


# Probed when neither /sitemap.xml nor robots.txt produced any URLs
COMMON_SITEMAP_PATHS = (
    '/sitemap_index.xml',
    '/sitemap-index.xml',
    '/sitemap/sitemap.xml',
    '/wp-sitemap.xml',
    '/post-sitemap.xml',
    '/page-sitemap.xml',
)


@dataclass
class Seed:
    url: str
    label: TaskLabel


@dataclass
class SeedResolution:
    """Seeds plus the robots rules found while resolving them."""
    seeds: List[Seed] = field(default_factory=list)
    robots: Optional[RobotsRules] = None
    sitemaps_checked: List[str] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [seed.url for seed in self.seeds]


class SeedDiscovery:
    """Resolves seeds from the site URL, robots.txt and sitemaps."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        robots_agent: str = '*',
        sitemap_timeout: float = 20.0,
        robots_timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.user_agent = user_agent
        self.robots_agent = robots_agent
        self.sitemap_timeout = sitemap_timeout
        self.robots_timeout = robots_timeout
        self._session = session

    async def resolve_seeds(self, base_url: str, options: AuditOptions) -> SeedResolution:
        """Resolve the initial URL set.

        Args:
            base_url: Site URL to start from
            options: Audit options (sitemap/robots toggles, single-URL mode, page budget)

        Returns:
            SeedResolution with the site URL first and at most ``max_pages`` seeds;
            empty when base_url is not a valid http(s) URL
        """
        try:
            site_url = normalize(base_url)
            origin = get_base_url(site_url)
        except URLNormalizationError as e:
            logger.error(f"Cannot resolve seeds for invalid URL {base_url!r}: {e}")
            return SeedResolution()

        resolution = SeedResolution(seeds=[Seed(site_url, TaskLabel.START_URL)])
        if options.crawl_single_url:
            return resolution
        if not options.include_robots and not options.include_sitemap:
            return resolution

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(headers={'User-Agent': self.user_agent})
        try:
            robot_sitemaps: List[str] = []
            if options.include_robots:
                resolution.robots = await fetch_robots(
                    session, origin, self.robots_agent, self.robots_timeout
                )
                if resolution.robots is not None:
                    robot_sitemaps = list(resolution.robots.sitemaps)

            if options.include_sitemap:
                provider = SitemapProvider(session, timeout=self.sitemap_timeout)
                found = await self._collect_sitemaps(provider, origin, robot_sitemaps, resolution)
                self._add_seeds(resolution, found, options.max_pages)
        finally:
            if owns_session:
                await session.close()

        logger.info(f"Resolved {len(resolution.seeds)} seeds for {site_url}")
        return resolution

    async def _collect_sitemaps(
        self,
        provider: SitemapProvider,
        origin: str,
        robot_sitemaps: List[str],
        resolution: SeedResolution
    ) -> List[str]:
        candidates = [f"{origin}/sitemap.xml", *robot_sitemaps]
        urls: List[str] = []
        for sitemap_url in candidates:
            resolution.sitemaps_checked.append(sitemap_url)
            urls.extend(await provider.collect(sitemap_url))

        if not urls:
            for path in COMMON_SITEMAP_PATHS:
                sitemap_url = f"{origin}{path}"
                resolution.sitemaps_checked.append(sitemap_url)
                urls = await provider.collect(sitemap_url)
                if urls:
                    logger.info(f"Found sitemap at {sitemap_url}")
                    break
        return urls

    @staticmethod
    def _add_seeds(resolution: SeedResolution, urls: List[str], limit: int) -> None:
        seen: Set[str] = set(resolution.urls)
        for url in urls:
            if len(resolution.seeds) >= limit:
                break
            if url not in seen:
                seen.add(url)
                resolution.seeds.append(Seed(url, TaskLabel.SITEMAP_URL))


async def resolve_seeds(base_url: str, options: AuditOptions, **kwargs) -> List[str]:
    """Convenience wrapper returning only the seed URLs."""
    resolution = await SeedDiscovery(**kwargs).resolve_seeds(base_url, options)
    return resolution.urls
