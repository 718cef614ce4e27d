"""Shared test fixtures and configuration for site auditor tests."""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from site_auditor.audit.capture.page import FetcherError, FetcherLaunchError, FetchOptions, RenderedPage
from site_auditor.audit.models.crawl import AuditOptions, CrawlSettings, CrawlTask


def html_page(
    title: str = "",
    body: str = "",
    description: Optional[str] = None,
    links: Optional[List[str]] = None,
    head: str = ""
) -> str:
    """Build a small HTML document for fixtures."""
    parts = ["<html><head>"]
    if title:
        parts.append(f"<title>{title}</title>")
    if description is not None:
        parts.append(f'<meta name="description" content="{description}">')
    parts.append(head)
    parts.append("</head><body>")
    parts.append(body)
    for href in links or []:
        parts.append(f'<a href="{href}">{href}</a>')
    parts.append("</body></html>")
    return "".join(parts)


class FakeFetcher:
    """In-memory PageFetcher serving ``url -> (status, html)``.

    Unknown URLs answer 404. URLs in ``fail_urls`` raise FetcherError, and
    ``launch_error`` makes start() fail.
    """

    def __init__(
        self,
        pages: Dict[str, Tuple[int, str]],
        fail_urls: Optional[Set[str]] = None,
        launch_error: bool = False,
        fail_launch_on: Optional[str] = None
    ):
        self.pages = pages
        self.fail_urls = fail_urls or set()
        self.launch_error = launch_error
        self.fail_launch_on = fail_launch_on
        self.fetched: List[str] = []
        self.options: List[FetchOptions] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        if self.launch_error:
            raise FetcherLaunchError("browser executable not found")
        self.started = True

    async def close(self) -> None:
        self.closed = True

    @asynccontextmanager
    async def fetch(self, url: str, options: FetchOptions):
        self.fetched.append(url)
        self.options.append(options)
        if url == self.fail_launch_on:
            raise FetcherLaunchError("browser crashed")
        if url in self.fail_urls:
            raise FetcherError(f"connection refused: {url}")
        status, html = self.pages.get(url, (404, "<html><head><title>Not found</title></head></html>"))
        yield RenderedPage(url=url, final_url=url, html=html, status_code=status, load_time_ms=120.0)


@pytest.fixture
def fake_fetcher_factory():
    """Factory building FakeFetcher instances."""
    return FakeFetcher


@pytest.fixture
def audit_options():
    """Offline audit options: no sitemap, robots, performance or accessibility."""
    return AuditOptions(
        site_url="https://example.com/",
        max_pages=20,
        max_depth=3,
        include_sitemap=False,
        include_robots=False,
        check_performance=False,
        check_accessibility=False,
    )


@pytest.fixture
def fast_settings():
    """Crawl settings tuned for quick tests."""
    return CrawlSettings(
        max_concurrency=4,
        min_concurrency=1,
        desired_concurrency=2,
        max_requests_per_minute=100000,
        task_timeout_seconds=5,
        progress_interval_seconds=0.01,
    )


@pytest.fixture
def sample_task():
    """Sample crawl task for testing."""
    return CrawlTask(url="https://example.com/page", depth=0)


@pytest.fixture
def rendered_page():
    """Factory for RenderedPage instances without an execution context."""
    def _make(html: str, url: str = "https://example.com/", status_code: int = 200, **kwargs) -> RenderedPage:
        return RenderedPage(url=url, final_url=url, html=html, status_code=status_code, **kwargs)
    return _make


def _make_handler(status: int, body, content_type: str):
    async def handler(request: web.Request) -> web.Response:
        payload = body
        if isinstance(payload, str):
            payload = payload.replace("{origin}", f"{request.scheme}://{request.host}").encode("utf-8")
        return web.Response(status=status, body=payload, content_type=content_type)
    return handler


@pytest.fixture
async def serve_site():
    """Serve ``path -> (status, body, content_type)`` routes on a local aiohttp server.

    ``{origin}`` inside string bodies is replaced by the server origin. The
    returned coroutine yields the origin URL without a trailing slash.
    """
    servers = []

    async def _serve(routes: Dict[str, Tuple[int, object, str]]) -> str:
        app = web.Application()
        for path, (status, body, content_type) in routes.items():
            app.router.add_get(path, _make_handler(status, body, content_type))
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/")).rstrip("/")

    yield _serve
    for server in servers:
        await server.close()


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


@pytest.fixture
def make_html():
    """Helper building small HTML documents."""
    return html_page


@pytest.fixture
def mock_browser_page():
    """Factory for Playwright page mocks that load successfully."""
    def _make(url: str = "https://example.com/", html: str = "<html><head><title>Home</title></head></html>"):
        page = AsyncMock()
        page.url = url
        page.goto.return_value = MagicMock(status=200, headers={"Content-Type": "text/html"})
        page.evaluate.return_value = False
        page.content.return_value = html
        page.title.return_value = "Home"
        return page
    return _make
