"""Shared, lazily launched Playwright browser with one context per fetch.

The browser is launched on first use behind a lock, so concurrent workers
share a single process. Every fetch gets a fresh ``BrowserContext`` which is
closed afterwards; cookies and storage never leak between pages.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from .page import FetcherLaunchError


logger = logging.getLogger(__name__)


DEFAULT_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
]


class BrowserEngineType:
    """Supported browser engine types."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class BrowserConfig:
    """Configuration for browser launch and context setup."""

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        ignore_https_errors: bool = True,
        launch_args: Optional[List[str]] = None,
        locale: Optional[str] = "en-US"
    ):
        """Initialize browser configuration.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run browser in headless mode
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: Custom User-Agent string
            extra_headers: Additional HTTP headers for all requests
            ignore_https_errors: Ignore SSL/TLS certificate errors
            launch_args: Extra browser command line switches (chromium only)
            locale: Locale for the browser context
        """
        self.engine = engine
        self.headless = headless
        self.viewport = viewport or {'width': 1366, 'height': 768}
        self.user_agent = user_agent
        self.extra_headers = extra_headers or {}
        self.ignore_https_errors = ignore_https_errors
        self.launch_args = DEFAULT_LAUNCH_ARGS if launch_args is None else launch_args
        self.locale = locale

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options: Dict[str, Any] = {'headless': self.headless}
        if self.engine == BrowserEngineType.CHROMIUM and self.launch_args:
            options['args'] = list(self.launch_args)
        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options: Dict[str, Any] = {'viewport': self.viewport}
        if self.user_agent:
            options['user_agent'] = self.user_agent
        if self.extra_headers:
            options['extra_http_headers'] = self.extra_headers
        if self.ignore_https_errors:
            options['ignore_https_errors'] = True
        if self.locale:
            options['locale'] = self.locale
        return options


class BrowserFactory:
    """Owns the Playwright driver and the single shared browser."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._start_lock = asyncio.Lock()
        self._context_count = 0

    async def start(self) -> None:
        """Start Playwright and launch the browser if it is not running.

        A browser that has disconnected (crashed or was closed externally) is
        torn down and launched again.

        Raises:
            FetcherLaunchError: If the driver or browser cannot be launched
        """
        async with self._start_lock:
            if self.is_running:
                return
            if self.browser is not None:
                logger.warning("Browser disconnected, relaunching")
                await self._shutdown()

            logger.info(f"Launching browser (engine={self.config.engine}, headless={self.config.headless})")
            try:
                self.playwright = await async_playwright().start()
                browser_type = getattr(self.playwright, self.config.engine, self.playwright.chromium)
                self.browser = await browser_type.launch(**self.config.to_browser_options())
            except Exception as e:
                logger.error(f"Failed to start browser: {e}")
                await self._shutdown()
                raise FetcherLaunchError(f"Browser launch failed: {e}") from e

            logger.info("Browser launched successfully")

    async def stop(self) -> None:
        """Stop browser and cleanup resources."""
        async with self._start_lock:
            await self._shutdown()

    async def _shutdown(self) -> None:
        try:
            if self.browser:
                await self.browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            self.browser = None

        try:
            if self.playwright:
                await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright: {e}")
        finally:
            self.playwright = None
            self._context_count = 0

    @asynccontextmanager
    async def context(self, **context_overrides) -> AsyncGenerator[BrowserContext, None]:
        """Yield a fresh browser context, launching the browser on first use.

        Args:
            **context_overrides: Override default context options

        Yields:
            Browser context that is closed on exit

        Raises:
            FetcherLaunchError: If the browser cannot be (re)launched or refuses
                to create a context
        """
        await self.start()

        options = self.config.to_context_options()
        options.update(context_overrides)
        try:
            context = await self.browser.new_context(**options)
        except Exception as e:
            logger.error(f"Failed to create browser context: {e}")
            raise FetcherLaunchError(f"Browser context could not be created: {e}") from e
        self._context_count += 1
        try:
            yield context
        finally:
            self._context_count = max(0, self._context_count - 1)
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"Error closing browser context: {e}")

    @property
    def is_running(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    @property
    def context_count(self) -> int:
        return self._context_count

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(engine={self.config.engine}, "
            f"headless={self.config.headless}, "
            f"running={self.is_running}, "
            f"contexts={self.context_count})"
        )
