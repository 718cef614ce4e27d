"""Shared fixtures for crawler integration tests."""

from typing import List, Optional

import pytest

from site_auditor.audit.input.robots_provider import RobotsRules
from site_auditor.audit.input.seed_discovery import Seed, SeedResolution
from site_auditor.audit.models.crawl import TaskLabel


class StaticSeedDiscovery:
    """Seed resolver returning a fixed resolution without network access."""

    def __init__(self, extra_seeds: Optional[List[str]] = None, robots_txt: Optional[str] = None):
        self.extra_seeds = extra_seeds or []
        self.robots_txt = robots_txt
        self.calls = 0

    async def resolve_seeds(self, base_url, options) -> SeedResolution:
        self.calls += 1
        seeds = [Seed(options.site_url, TaskLabel.START_URL)]
        seeds.extend(Seed(url, TaskLabel.SITEMAP_URL) for url in self.extra_seeds)
        robots = RobotsRules.parse(self.robots_txt) if self.robots_txt is not None else None
        return SeedResolution(seeds=seeds, robots=robots)


@pytest.fixture
def static_seeds():
    """Factory for network-free seed resolvers."""
    return StaticSeedDiscovery


@pytest.fixture
def long_text():
    """Body text long enough for duplicate detection."""
    return " ".join(f"paragraph{i} about widgets and gadgets" for i in range(60))
