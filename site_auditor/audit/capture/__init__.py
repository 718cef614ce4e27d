"""Fetch paths: Playwright rendering and plain HTTP."""

from ..models.crawl import CrawlSettings, FetcherKind
from .browser_factory import BrowserConfig, BrowserEngineType, BrowserFactory
from .page import (
    EvaluationUnavailableError,
    FetcherError,
    FetcherLaunchError,
    FetchOptions,
    PageFetcher,
    RenderedPage,
)
from .playwright_fetcher import PlaywrightFetcher
from .static_fetcher import StaticHtmlFetcher


def create_fetcher(settings: CrawlSettings) -> PageFetcher:
    """Build the fetch path selected in the crawl settings."""
    if settings.fetcher == FetcherKind.STATIC:
        return StaticHtmlFetcher(user_agent=settings.user_agent)
    config = BrowserConfig(
        engine=settings.browser_engine,
        headless=settings.headless,
        user_agent=settings.user_agent,
    )
    return PlaywrightFetcher(config=config)


__all__ = [
    'BrowserConfig',
    'BrowserEngineType',
    'BrowserFactory',
    'EvaluationUnavailableError',
    'FetcherError',
    'FetcherLaunchError',
    'FetchOptions',
    'PageFetcher',
    'RenderedPage',
    'PlaywrightFetcher',
    'StaticHtmlFetcher',
    'create_fetcher',
]
