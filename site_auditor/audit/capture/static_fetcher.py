"""Plain HTTP fetch path: no rendering, no execution context.

Pages fetched here cannot be evaluated, so performance and accessibility
extraction report "unavailable" while SEO extraction works from the HTML.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import aiohttp

from ..models.crawl import DEFAULT_USER_AGENT
from .page import FetcherError, FetcherLaunchError, FetchOptions, RenderedPage


logger = logging.getLogger(__name__)


class StaticHtmlFetcher:
    """Fetches raw HTML over aiohttp."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, max_connections: int = 20):
        self.user_agent = user_agent
        self.max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None
        self._stats = {"fetches": 0, "failures": 0}

    async def start(self) -> None:
        if self._session is None:
            try:
                self._session = aiohttp.ClientSession(
                    headers={'User-Agent': self.user_agent},
                    connector=aiohttp.TCPConnector(limit=self.max_connections)
                )
            except Exception as e:
                raise FetcherLaunchError(f"Could not create HTTP session: {e}") from e

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def fetch(self, url: str, options: FetchOptions) -> AsyncGenerator[RenderedPage, None]:
        """GET a URL and yield its HTML.

        Raises:
            FetcherError: On timeouts and connection errors
        """
        await self.start()
        headers = dict(options.extra_headers)
        if options.user_agent:
            headers['User-Agent'] = options.user_agent

        self._stats["fetches"] += 1
        started = time.monotonic()
        try:
            async with self._session.get(
                url,
                headers=headers,
                cookies=options.cookies or None,
                timeout=aiohttp.ClientTimeout(total=options.navigation_timeout_ms / 1000),
                allow_redirects=True
            ) as response:
                html = await response.text(errors='replace')
                status = response.status
                final_url = str(response.url)
                response_headers = {k.lower(): v for k, v in response.headers.items()}
        except asyncio.TimeoutError as e:
            self._stats["failures"] += 1
            raise FetcherError(f"Request timeout after {options.navigation_timeout_ms}ms: {url}") from e
        except aiohttp.ClientError as e:
            self._stats["failures"] += 1
            raise FetcherError(f"Request failed for {url}: {e}") from e

        yield RenderedPage(
            url=url,
            final_url=final_url,
            html=html,
            title=None,
            status_code=status,
            headers=response_headers,
            load_time_ms=(time.monotonic() - started) * 1000,
        )

    def get_stats(self) -> dict:
        return {"fetcher": "static", **self._stats}
