"""Playwright-backed fetch path with resource blocking and an SPA-aware wait."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser_factory import BrowserConfig, BrowserFactory
from .page import FetcherError, FetchOptions, RenderedPage


logger = logging.getLogger(__name__)


BLOCKED_RESOURCE_TYPES = frozenset({'font', 'image', 'stylesheet', 'media'})

SPA_MARKERS_SCRIPT = """() => Boolean(
    window.angular || window.React || window.Vue || window.__NEXT_DATA__ || window.__NUXT__ ||
    document.querySelector('#__next, #app, #root, [data-reactroot], [ng-version], script[src*="runtime~main"]')
)"""

MAIN_CONTENT_READY_SCRIPT = """() => {
    const el = document.querySelector('main, #main, .main, #content, .content') || document.body;
    return Boolean(el) && el.children.length > 0;
}"""


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class PlaywrightFetcher:
    """Renders pages in a shared headless browser, one isolated context per fetch."""

    def __init__(self, factory: Optional[BrowserFactory] = None, config: Optional[BrowserConfig] = None):
        self._factory = factory or BrowserFactory(config)
        self._stats = {"fetches": 0, "failures": 0, "spa_pages": 0}

    async def start(self) -> None:
        await self._factory.start()

    async def close(self) -> None:
        await self._factory.stop()

    @asynccontextmanager
    async def fetch(self, url: str, options: FetchOptions) -> AsyncGenerator[RenderedPage, None]:
        """Navigate to a URL and yield the rendered page.

        The browser context stays open for the duration of the ``async with``
        block so extractors can evaluate scripts against the live DOM.

        Args:
            url: URL to load
            options: Timeouts, blocking, header and cookie settings

        Yields:
            RenderedPage with an evaluation hook

        Raises:
            FetcherLaunchError: If the browser cannot be launched
            FetcherError: If navigation fails or times out
        """
        overrides = {}
        if options.user_agent:
            overrides['user_agent'] = options.user_agent
        if options.extra_headers:
            overrides['extra_http_headers'] = options.extra_headers

        async with self._factory.context(**overrides) as context:
            if options.cookies:
                await context.add_cookies([
                    {'name': name, 'value': value, 'url': url}
                    for name, value in options.cookies.items()
                ])
            page = await context.new_page()
            if options.block_resources:
                await page.route("**/*", _block_heavy_resources)

            self._stats["fetches"] += 1
            started = time.monotonic()
            deadline = started + options.navigation_timeout_ms / 1000
            try:
                response = await page.goto(
                    url,
                    timeout=options.navigation_timeout_ms,
                    wait_until="domcontentloaded"
                )
            except PlaywrightTimeoutError as e:
                self._stats["failures"] += 1
                raise FetcherError(f"Navigation timeout after {options.navigation_timeout_ms}ms: {url}") from e
            except PlaywrightError as e:
                self._stats["failures"] += 1
                raise FetcherError(f"Navigation failed for {url}: {e}") from e

            is_spa = await self._wait_until_ready(page, deadline, options.spa_settle_ms)
            load_time_ms = (time.monotonic() - started) * 1000

            try:
                html = await page.content()
                title = await page.title()
            except PlaywrightError as e:
                self._stats["failures"] += 1
                raise FetcherError(f"Could not read page content for {url}: {e}") from e

            yield RenderedPage(
                url=url,
                final_url=page.url,
                html=html,
                title=title,
                status_code=response.status if response else 0,
                headers={k.lower(): v for k, v in response.headers.items()} if response else {},
                load_time_ms=load_time_ms,
                is_spa=is_spa,
                _evaluator=page.evaluate,
            )

    async def _wait_until_ready(self, page: Page, deadline: float, spa_settle_ms: int) -> bool:
        """Best-effort readiness wait bounded by the navigation deadline.

        Returns:
            Whether client-side framework markers were found
        """
        def remaining_ms() -> float:
            return max(0.0, (deadline - time.monotonic()) * 1000)

        if remaining_ms() > 0:
            try:
                await page.wait_for_load_state("networkidle", timeout=remaining_ms())
            except PlaywrightTimeoutError:
                logger.debug(f"Network did not go idle before the deadline: {page.url}")

        try:
            is_spa = bool(await page.evaluate(SPA_MARKERS_SCRIPT))
        except PlaywrightError as e:
            logger.debug(f"SPA detection failed for {page.url}: {e}")
            return False

        if not is_spa:
            return False

        self._stats["spa_pages"] += 1
        settle = min(float(spa_settle_ms), remaining_ms())
        if settle > 0:
            await page.wait_for_timeout(settle)
        if remaining_ms() > 0:
            try:
                await page.wait_for_function(MAIN_CONTENT_READY_SCRIPT, timeout=remaining_ms())
            except PlaywrightError:
                logger.debug(f"Main content did not render before the deadline: {page.url}")
        return True

    def get_stats(self) -> dict:
        return {"fetcher": "browser", **self._stats, "browser_running": self._factory.is_running}
