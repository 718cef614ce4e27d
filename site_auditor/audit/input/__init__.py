"""Seed discovery package: robots.txt and sitemap providers."""

from .robots_provider import RobotsRules, fetch_robots
from .seed_discovery import Seed, SeedDiscovery, SeedResolution, resolve_seeds
from .sitemap_provider import SitemapError, SitemapProvider, parse_sitemap

__all__ = [
    'RobotsRules',
    'fetch_robots',
    'Seed',
    'SeedDiscovery',
    'SeedResolution',
    'resolve_seeds',
    'SitemapError',
    'SitemapProvider',
    'parse_sitemap',
]
