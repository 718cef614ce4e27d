"""Unit tests for scope matching functionality."""

import pytest

from site_auditor.audit.models.crawl import AuditOptions, SkipReason
from site_auditor.audit.utils.scope_matcher import (
    ScopeMatcher,
    create_scope_matcher_from_options,
    is_default_ignored,
    matches_glob,
)


class DenyPrivate:
    """Robots policy disallowing everything under /private/."""

    def __init__(self):
        self.checked = []

    def is_allowed(self, url: str) -> bool:
        self.checked.append(url)
        return "/private/" not in url


class DenyAll:
    def is_allowed(self, url: str) -> bool:
        return False


class TestScopeMatcher:
    """Test cases for scope matching."""

    def test_internal_url_allowed_and_normalized(self):
        matcher = ScopeMatcher("https://example.com", max_depth=2)
        decision = matcher.check("https://EXAMPLE.com/about#team", depth=1)

        assert decision.allowed
        assert decision.url == "https://example.com/about"
        assert decision.reason is None

    def test_invalid_url(self):
        matcher = ScopeMatcher("https://example.com", max_depth=2)
        decision = matcher.check("mailto:info@example.com", depth=1)

        assert not decision.allowed
        assert decision.url is None
        assert decision.reason == SkipReason.INVALID_URL

    def test_depth_limit(self):
        matcher = ScopeMatcher("https://example.com", max_depth=1)

        assert matcher.check("https://example.com/a", depth=1).allowed
        decision = matcher.check("https://example.com/a/b", depth=2)
        assert decision.reason == SkipReason.DEPTH

    def test_seeds_bypass_depth(self):
        matcher = ScopeMatcher("https://example.com", max_depth=0)
        assert matcher.check("https://example.com/deep", depth=5, is_seed=True).allowed

    def test_external_hosts(self):
        matcher = ScopeMatcher("https://example.com", max_depth=2)
        assert matcher.check("https://other.com/", depth=1).reason == SkipReason.EXTERNAL
        assert matcher.check("https://www.example.com/", depth=1).reason == SkipReason.EXTERNAL

        open_matcher = ScopeMatcher("https://example.com", max_depth=2, skip_external=False)
        assert open_matcher.check("https://other.com/", depth=1).allowed

    def test_default_ignores(self):
        matcher = ScopeMatcher("https://example.com", max_depth=2)

        for url in [
            "https://example.com/logo.PNG",
            "https://example.com/files/report.pdf",
            "https://example.com/wp-admin/options.php",
            "https://example.com/cart",
            "https://example.com/cdn-cgi/l/email-protection",
        ]:
            assert matcher.check(url, depth=1).reason == SkipReason.IGNORED, url

        assert matcher.check("https://example.com/administrators-guide", depth=1).allowed
        assert matcher.check("https://example.com/cartography", depth=1).allowed

    def test_default_ignores_can_be_disabled(self):
        matcher = ScopeMatcher("https://example.com", max_depth=2, apply_default_ignores=False)
        assert matcher.check("https://example.com/logo.png", depth=1).allowed

    def test_ignore_patterns(self):
        matcher = ScopeMatcher("https://example.com", max_depth=3, ignore_patterns=["/tag/*", "**/print"])

        assert matcher.check("https://example.com/tag/python", depth=1).reason == SkipReason.IGNORED
        assert matcher.check("https://example.com/blog/post/print", depth=1).reason == SkipReason.IGNORED
        assert matcher.check("https://example.com/blog/post", depth=1).allowed

    def test_follow_patterns(self):
        matcher = ScopeMatcher("https://example.com", max_depth=3, follow_patterns=["/blog/*"])

        assert matcher.check("https://example.com/blog/first", depth=1).allowed
        decision = matcher.check("https://example.com/about", depth=1)
        assert decision.reason == SkipReason.NOT_FOLLOWED

    def test_seeds_bypass_follow_patterns(self):
        matcher = ScopeMatcher("https://example.com", max_depth=3, follow_patterns=["/blog/*"])
        assert matcher.check("https://example.com/about", depth=0, is_seed=True).allowed

    def test_site_root_always_admitted(self):
        matcher = ScopeMatcher(
            "https://example.com/",
            max_depth=3,
            follow_patterns=["/blog/*"],
            ignore_patterns=["*"],
            robots=DenyAll(),
        )
        assert matcher.check("https://example.com", depth=1).allowed

    def test_query_strings(self):
        matcher = ScopeMatcher("https://example.com", max_depth=3, allowed_query_params=["page", "id"])

        assert matcher.check("https://example.com/list?page=2", depth=1).allowed
        assert matcher.check("https://example.com/item?id=7&page=1", depth=1).allowed
        assert matcher.check("https://example.com/list?utm_source=x", depth=1).reason == SkipReason.QUERY_STRING
        assert matcher.check("https://example.com/list?page=2&utm_source=x", depth=1).reason == SkipReason.QUERY_STRING

    def test_robots_disallow(self):
        robots = DenyPrivate()
        matcher = ScopeMatcher("https://example.com", max_depth=3, robots=robots)

        assert matcher.check("https://example.com/private/data", depth=1).reason == SkipReason.ROBOTS
        assert matcher.check("https://example.com/public", depth=1).allowed
        assert "https://example.com/private/data" in robots.checked

    def test_checks_run_in_order(self):
        """Depth is reported before host, host before patterns."""
        matcher = ScopeMatcher("https://example.com", max_depth=1, ignore_patterns=["*"])

        assert matcher.check("https://other.com/x", depth=2).reason == SkipReason.DEPTH
        assert matcher.check("https://other.com/x", depth=1).reason == SkipReason.EXTERNAL
        assert matcher.check("https://example.com/x", depth=1).reason == SkipReason.IGNORED

    def test_is_in_scope(self):
        matcher = ScopeMatcher("https://example.com", max_depth=1)
        assert matcher.is_in_scope("https://example.com/page")
        assert not matcher.is_in_scope("https://other.com/page")

    def test_scope_info(self):
        matcher = ScopeMatcher("https://example.com", max_depth=2, allowed_query_params=["Page"])
        info = matcher.get_scope_info()

        assert info["site_host"] == "example.com"
        assert info["allowed_query_params"] == ["page"]
        assert info["robots"] is False


class TestGlobMatching:
    """Test cases for glob helpers."""

    def test_matches_path_and_full_url(self):
        assert matches_glob("https://example.com/blog/post", "/blog/*")
        assert matches_glob("https://example.com/blog/post", "https://example.com/*")
        assert not matches_glob("https://example.com/news/post", "/blog/*")

    def test_matches_query(self):
        assert matches_glob("https://example.com/search?q=x", "/search?q=*")

    def test_double_star_prefix(self):
        assert matches_glob("https://example.com/a/b/file.html", "**/file.html")
        assert matches_glob("https://example.com/file.html", "**/file.html")

    def test_is_default_ignored(self):
        assert is_default_ignored("https://example.com/style.css")
        assert not is_default_ignored("https://example.com/styles")


class TestScopeFromOptions:
    """Test cases for building a matcher from AuditOptions."""

    def test_robots_only_used_when_enabled(self):
        robots = DenyAll()
        with_robots = create_scope_matcher_from_options(
            AuditOptions(site_url="https://example.com", include_robots=True), robots
        )
        without_robots = create_scope_matcher_from_options(
            AuditOptions(site_url="https://example.com", include_robots=False), robots
        )

        assert with_robots.robots is robots
        assert without_robots.robots is None

    def test_options_are_carried_over(self):
        options = AuditOptions(
            site_url="https://example.com",
            max_depth=1,
            follow_patterns=["/docs/*"],
            ignore_patterns=["/docs/old/*"],
        )
        matcher = create_scope_matcher_from_options(options)

        assert matcher.max_depth == 1
        assert matcher.check("https://example.com/docs/new", depth=1).allowed
        assert matcher.check("https://example.com/docs/old/x", depth=1).reason == SkipReason.IGNORED
        assert matcher.check("https://example.com/page?page=2", depth=1).reason == SkipReason.NOT_FOLLOWED

    def test_invalid_site_url(self):
        with pytest.raises(ValueError):
            AuditOptions(site_url="example")
