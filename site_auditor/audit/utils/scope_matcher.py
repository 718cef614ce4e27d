"""Scope rules deciding which discovered URLs may enter the frontier.

The checks run in a fixed order and the first failing check names the skip
reason:

1. the URL must normalize to an http(s) URL
2. the link depth must not exceed ``max_depth``
3. the host must equal the site host unless external crawling is enabled
4. default and configured ignore patterns exclude the URL
5. configured follow patterns, if any, must match (seeds are exempt)
6. query strings are only accepted when every parameter is allow-listed
7. parsed robots.txt rules must allow the path
"""

import logging
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional, Protocol
from urllib.parse import parse_qsl, urlparse

from ..models.crawl import AuditOptions, SkipReason
from .url_normalizer import URLNormalizationError, get_host, normalize


logger = logging.getLogger(__name__)


# Static assets and documents that are never HTML pages
DEFAULT_IGNORE_EXTENSIONS = (
    'jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'ico', 'bmp', 'avif',
    'css', 'js', 'json', 'xml', 'txt', 'map',
    'pdf', 'doc', 'docx', 'xls', 'xlsx', 'ppt', 'pptx', 'zip', 'gz', 'rar',
    'mp3', 'mp4', 'avi', 'mov', 'webm', 'woff', 'woff2', 'ttf', 'eot',
)

# Path prefixes of admin, account and commerce flows
DEFAULT_IGNORE_PATHS = (
    '/admin', '/login', '/logout', '/cart', '/checkout', '/my-account',
    '/wp-admin', '/wp-login.php', '/wp-json', '/feed', '/rss',
    '/xmlrpc.php', '/cdn-cgi/',
)

_EXTENSION_RE = re.compile(r'\.(%s)$' % '|'.join(DEFAULT_IGNORE_EXTENSIONS), re.IGNORECASE)


class RobotsPolicy(Protocol):
    """Anything that can answer robots.txt questions for a URL."""

    def is_allowed(self, url: str) -> bool:
        ...


@dataclass(frozen=True)
class ScopeDecision:
    """Outcome of a scope check."""
    url: Optional[str]
    allowed: bool
    reason: Optional[SkipReason] = None
    detail: str = ""


def _path_matches_prefix(path: str, prefix: str) -> bool:
    if prefix.endswith('/'):
        return path.startswith(prefix)
    return path == prefix or path.startswith(prefix + '/')


def is_default_ignored(url: str) -> bool:
    """Check a normalized URL against the built-in ignore rules."""
    path = urlparse(url).path.lower()
    if _EXTENSION_RE.search(path):
        return True
    return any(_path_matches_prefix(path, prefix) for prefix in DEFAULT_IGNORE_PATHS)


def matches_glob(url: str, pattern: str) -> bool:
    """Match a glob pattern against the path (with query) or the full URL.

    ``**/`` prefixes match any directory depth, including none.
    """
    parsed = urlparse(url)
    targets = [parsed.path]
    if parsed.query:
        targets.append(f"{parsed.path}?{parsed.query}")
    targets.append(url)

    candidates = [pattern]
    if pattern.startswith('**/'):
        candidates.append(pattern[2:])
    return any(fnmatchcase(target, candidate) for target in targets for candidate in candidates)


class ScopeMatcher:
    """Applies depth, host, pattern, query-string and robots rules to URLs."""

    def __init__(
        self,
        site_url: str,
        max_depth: int,
        follow_patterns: Optional[Iterable[str]] = None,
        ignore_patterns: Optional[Iterable[str]] = None,
        skip_external: bool = True,
        allowed_query_params: Optional[Iterable[str]] = None,
        robots: Optional[RobotsPolicy] = None,
        apply_default_ignores: bool = True
    ):
        """Initialize the scope matcher.

        Args:
            site_url: Site URL whose host defines "internal"
            max_depth: Deepest link depth that may be enqueued
            follow_patterns: Globs a non-seed URL must match, if given
            ignore_patterns: Globs that exclude URLs
            skip_external: Reject URLs on other hosts
            allowed_query_params: Query parameter names that are tolerated
            robots: Parsed robots rules, or None to ignore robots.txt
            apply_default_ignores: Apply the built-in asset and admin rules

        Raises:
            URLNormalizationError: If site_url is not a valid http(s) URL
        """
        self.site_url = normalize(site_url)
        self.site_host = get_host(self.site_url)
        self.max_depth = max_depth
        self.follow_patterns: List[str] = [p for p in (follow_patterns or []) if p]
        self.ignore_patterns: List[str] = [p for p in (ignore_patterns or []) if p]
        self.skip_external = skip_external
        self.allowed_query_params = {p.lower() for p in (allowed_query_params or [])}
        self.robots = robots
        self.apply_default_ignores = apply_default_ignores

    def check(self, url: str, depth: int = 0, is_seed: bool = False) -> ScopeDecision:
        """Decide whether a URL may be enqueued.

        Args:
            url: Absolute URL (normalized or not)
            depth: Depth the task would have
            is_seed: Seeds skip the follow-pattern and depth checks

        Returns:
            ScopeDecision with the normalized URL and skip reason
        """
        try:
            normalized = normalize(url)
        except URLNormalizationError as e:
            return ScopeDecision(None, False, SkipReason.INVALID_URL, str(e))

        if not is_seed and depth > self.max_depth:
            return ScopeDecision(normalized, False, SkipReason.DEPTH, f"depth {depth} > {self.max_depth}")

        if self.skip_external and get_host(normalized) != self.site_host:
            return ScopeDecision(normalized, False, SkipReason.EXTERNAL, get_host(normalized))

        is_site_root = normalized == self.site_url
        if not is_site_root:
            if self.apply_default_ignores and is_default_ignored(normalized):
                return ScopeDecision(normalized, False, SkipReason.IGNORED, "default ignore rule")

            for pattern in self.ignore_patterns:
                if matches_glob(normalized, pattern):
                    return ScopeDecision(normalized, False, SkipReason.IGNORED, pattern)

            if not is_seed and self.follow_patterns:
                if not any(matches_glob(normalized, p) for p in self.follow_patterns):
                    return ScopeDecision(normalized, False, SkipReason.NOT_FOLLOWED, "no follow pattern matched")

            query = urlparse(normalized).query
            if query:
                names = {name.lower() for name, _ in parse_qsl(query, keep_blank_values=True)}
                if not names or not names.issubset(self.allowed_query_params):
                    return ScopeDecision(normalized, False, SkipReason.QUERY_STRING, query)

        if not is_site_root and self.robots is not None and not self.robots.is_allowed(normalized):
            return ScopeDecision(normalized, False, SkipReason.ROBOTS, "disallowed by robots.txt")

        return ScopeDecision(normalized, True)

    def is_in_scope(self, url: str, depth: int = 0) -> bool:
        return self.check(url, depth).allowed

    def get_scope_info(self) -> dict:
        """Describe the configured scope, for logging and debugging."""
        return {
            "site_url": self.site_url,
            "site_host": self.site_host,
            "max_depth": self.max_depth,
            "follow_patterns": list(self.follow_patterns),
            "ignore_patterns": list(self.ignore_patterns),
            "skip_external": self.skip_external,
            "allowed_query_params": sorted(self.allowed_query_params),
            "robots": self.robots is not None,
        }


def create_scope_matcher_from_options(
    options: AuditOptions,
    robots: Optional[RobotsPolicy] = None
) -> ScopeMatcher:
    """Create a ScopeMatcher from audit options.

    Args:
        options: Audit options with scope settings
        robots: Parsed robots rules, used only when ``include_robots`` is set

    Returns:
        Configured ScopeMatcher instance
    """
    return ScopeMatcher(
        site_url=options.site_url,
        max_depth=options.max_depth,
        follow_patterns=options.follow_patterns,
        ignore_patterns=options.ignore_patterns,
        skip_external=options.skip_external,
        allowed_query_params=options.allowed_query_params,
        robots=robots if options.include_robots else None,
    )
