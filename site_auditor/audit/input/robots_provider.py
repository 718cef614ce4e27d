"""robots.txt parsing and fetching.

Rules are grouped by ``User-agent`` block. The group naming our agent token
wins over the ``*`` group; inside a group the longest matching ``Allow`` or
``Disallow`` path decides, and ``Allow`` wins a tie.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp


logger = logging.getLogger(__name__)


@dataclass
class RobotsGroup:
    """One ``User-agent`` block and its path rules."""
    agents: List[str] = field(default_factory=list)
    rules: List[Tuple[bool, str]] = field(default_factory=list)  # (allow, path pattern)


def _pattern_to_regex(pattern: str) -> re.Pattern:
    anchored = pattern.endswith('$')
    if anchored:
        pattern = pattern[:-1]
    body = '.*'.join(re.escape(part) for part in pattern.split('*'))
    return re.compile(body + ('$' if anchored else ''))


class RobotsRules:
    """Parsed robots.txt for a single user agent."""

    def __init__(self, groups: List[RobotsGroup], sitemaps: List[str], user_agent: str = '*'):
        self.groups = groups
        self.sitemaps = sitemaps
        self.user_agent = user_agent
        self._group = self._select_group(user_agent)
        self._compiled = [
            (allow, path, _pattern_to_regex(path))
            for allow, path in (self._group.rules if self._group else [])
        ]

    @classmethod
    def parse(cls, text: str, user_agent: str = '*') -> "RobotsRules":
        """Parse robots.txt content.

        Consecutive ``User-agent`` lines share one group. ``Sitemap`` lines are
        collected regardless of grouping and unknown directives are ignored.

        Args:
            text: robots.txt body
            user_agent: Agent token whose rules should apply

        Returns:
            RobotsRules instance
        """
        groups: List[RobotsGroup] = []
        sitemaps: List[str] = []
        current: Optional[RobotsGroup] = None
        collecting_agents = False

        for raw_line in text.splitlines():
            line = raw_line.split('#', 1)[0].strip()
            if not line or ':' not in line:
                continue
            key, _, value = line.partition(':')
            key = key.strip().lower()
            value = value.strip()

            if key == 'user-agent':
                if current is None or not collecting_agents:
                    current = RobotsGroup()
                    groups.append(current)
                current.agents.append(value.lower())
                collecting_agents = True
            elif key in ('allow', 'disallow'):
                collecting_agents = False
                if current is None or not value:
                    # Empty Disallow allows everything
                    continue
                current.rules.append((key == 'allow', value))
            elif key == 'sitemap':
                if value:
                    sitemaps.append(value)
            else:
                collecting_agents = False

        return cls(groups, sitemaps, user_agent)

    def _select_group(self, user_agent: str) -> Optional[RobotsGroup]:
        token = user_agent.lower()
        wildcard = None
        for group in self.groups:
            for agent in group.agents:
                if agent == '*':
                    wildcard = wildcard or group
                elif agent == token:
                    return group
        return wildcard

    def is_allowed(self, url: str) -> bool:
        """Check whether a URL (or absolute path) may be crawled."""
        if not self._compiled:
            return True
        parsed = urlparse(url)
        path = parsed.path or '/'
        if parsed.query:
            path = f"{path}?{parsed.query}"

        best_length = -1
        allowed = True
        for allow, pattern, regex in self._compiled:
            if regex.match(path):
                length = len(pattern)
                if length > best_length or (length == best_length and allow):
                    best_length = length
                    allowed = allow
        return allowed

    @property
    def rule_count(self) -> int:
        return len(self._compiled)


async def fetch_robots(
    session: aiohttp.ClientSession,
    base_url: str,
    user_agent: str = '*',
    timeout: float = 10.0
) -> Optional[RobotsRules]:
    """Fetch and parse ``/robots.txt`` for a site.

    Returns None when the file is missing or cannot be fetched, so callers
    treat the site as unrestricted.
    """
    parsed = urlparse(base_url)
    robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
    try:
        async with session.get(robots_url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                logger.info(f"No robots.txt at {robots_url} (HTTP {response.status})")
                return None
            text = await response.text(errors='replace')
    except Exception as e:
        logger.warning(f"Failed to fetch robots.txt from {robots_url}: {e}")
        return None

    rules = RobotsRules.parse(text, user_agent)
    logger.info(
        f"Parsed robots.txt from {robots_url}: {rules.rule_count} rules apply, "
        f"{len(rules.sitemaps)} sitemaps listed"
    )
    return rules
