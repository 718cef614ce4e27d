"""Integration tests for the audit crawler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from site_auditor.audit.capture.browser_factory import BrowserConfig, BrowserFactory
from site_auditor.audit.capture.playwright_fetcher import PlaywrightFetcher
from site_auditor.audit.capture.static_fetcher import StaticHtmlFetcher
from site_auditor.audit.crawler import AuditCrawler, run_audit
from site_auditor.audit.input.seed_discovery import SeedDiscovery, SeedResolution
from site_auditor.audit.models import AuditOptions, AuditStatus
from site_auditor.audit.models.crawl import FetcherKind
from site_auditor.audit.models.issues import IssueSeverity


SITE = "https://example.com"

pytestmark = pytest.mark.integration


@pytest.fixture
def site_page(make_html):
    """Build a ``(200, html)`` FakeFetcher entry."""
    def _page(title: str, links=(), body: str = "<h1>Heading</h1><p>Content</p>") -> tuple:
        return 200, make_html(title=title, body=body, links=list(links))
    return _page


def issue_types(result_page):
    return {issue.type for issue in result_page.issues}


@pytest.fixture
def make_crawler(fake_fetcher_factory, fast_settings, static_seeds):
    def _make(pages, seeds=None, **fetcher_kwargs):
        fetcher = fake_fetcher_factory(pages, **fetcher_kwargs)
        crawler = AuditCrawler(fetcher=fetcher, settings=fast_settings, seed_discovery=seeds or static_seeds())
        return crawler, fetcher
    return _make


@pytest.fixture
def options(audit_options):
    def _options(**overrides) -> AuditOptions:
        return audit_options.model_copy(update=overrides)
    return _options


class TestCrawlTraversal:
    """Test cases for link following, limits and de-duplication."""

    @pytest.mark.asyncio
    async def test_every_page_visited_once(self, make_crawler, options, site_page):
        pages = {
            f"{SITE}/": site_page("Home", ["/a", "/b", "/"]),
            f"{SITE}/a": site_page("A", ["/", "/b", "/a#section"]),
            f"{SITE}/b": site_page("B", ["/a", "/"]),
        }
        crawler, fetcher = make_crawler(pages)

        result = await crawler.run(options())

        assert result.status == AuditStatus.COMPLETED
        assert sorted(fetcher.fetched) == [f"{SITE}/", f"{SITE}/a", f"{SITE}/b"]
        assert result.pages_analyzed == 3
        assert {p.url for p in result.pages} == set(pages)
        assert result.stats.urls_processed == 3

    @pytest.mark.asyncio
    async def test_max_depth(self, make_crawler, options, site_page):
        pages = {
            f"{SITE}/": site_page("Home", ["/level1"]),
            f"{SITE}/level1": site_page("Level 1", ["/level2"]),
            f"{SITE}/level2": site_page("Level 2", ["/level3"]),
        }
        crawler, fetcher = make_crawler(pages)

        result = await crawler.run(options(max_depth=1))

        assert set(fetcher.fetched) == {f"{SITE}/", f"{SITE}/level1"}
        assert result.get_page(f"{SITE}/level1").depth == 1
        assert result.stats.urls_skipped.get("depth") == 1
        # Excluded on purpose, so not reported as broken
        assert result.site_issues == []

    @pytest.mark.asyncio
    async def test_max_pages(self, make_crawler, options, site_page):
        links = [f"/p{i}" for i in range(50)]
        pages = {f"{SITE}/": site_page("Home", links)}
        pages.update({f"{SITE}{link}": site_page(link) for link in links})
        crawler, fetcher = make_crawler(pages)

        result = await crawler.run(options(max_pages=10))

        assert result.pages_analyzed == 10
        assert len(result.pages) == 10
        assert len(set(fetcher.fetched)) == 10
        assert result.site_issues == []

    @pytest.mark.asyncio
    async def test_external_links_not_followed(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("Home", ["https://other.org/", "/a"]), f"{SITE}/a": site_page("A")}
        crawler, fetcher = make_crawler(pages)

        result = await crawler.run(options())

        assert "https://other.org/" not in fetcher.fetched
        assert result.get_page(f"{SITE}/").external_links == ["https://other.org/"]

    @pytest.mark.asyncio
    async def test_ignore_patterns(self, make_crawler, options, site_page):
        pages = {
            f"{SITE}/": site_page("Home", ["/blog/post", "/tmp/file", "/admin/login"]),
            f"{SITE}/blog/post": site_page("Post"),
        }
        crawler, fetcher = make_crawler(pages)

        result = await crawler.run(options(ignore_patterns=["/tmp/**"]))

        assert set(fetcher.fetched) == {f"{SITE}/", f"{SITE}/blog/post"}
        assert result.stats.urls_skipped.get("ignored") == 2

    @pytest.mark.asyncio
    async def test_follow_patterns(self, make_crawler, options, site_page):
        pages = {
            f"{SITE}/": site_page("Home", ["/blog/one", "/shop/item"]),
            f"{SITE}/blog/one": site_page("One"),
        }
        crawler, fetcher = make_crawler(pages)

        await crawler.run(options(follow_patterns=["/blog/**"]))

        assert set(fetcher.fetched) == {f"{SITE}/", f"{SITE}/blog/one"}

    @pytest.mark.asyncio
    async def test_single_url(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("Home", ["/a", "/b"])}
        crawler, fetcher = make_crawler(pages)

        result = await crawler.run(options(crawl_single_url=True))

        assert fetcher.fetched == [f"{SITE}/"]
        assert result.pages_analyzed == 1
        assert result.stats.urls_skipped == {"single_url": 1}
        assert result.site_issues == []

    @pytest.mark.asyncio
    async def test_sitemap_seeds_are_crawled(self, make_crawler, options, site_page, static_seeds):
        pages = {f"{SITE}/": site_page("Home"), f"{SITE}/orphan": site_page("Orphan")}
        crawler, fetcher = make_crawler(pages, seeds=static_seeds(extra_seeds=[f"{SITE}/orphan"]))

        result = await crawler.run(options())

        assert set(fetcher.fetched) == {f"{SITE}/", f"{SITE}/orphan"}
        assert result.get_page(f"{SITE}/orphan").depth == 0


class TestRobots:
    """Test cases for robots.txt enforcement."""

    @pytest.mark.asyncio
    async def test_disallowed_paths_skipped(self, make_crawler, options, site_page, static_seeds):
        pages = {
            f"{SITE}/": site_page("Home", ["/private/data", "/public"]),
            f"{SITE}/public": site_page("Public"),
            f"{SITE}/private/data": site_page("Private"),
        }
        seeds = static_seeds(robots_txt="User-agent: *\nDisallow: /private/\n")
        crawler, fetcher = make_crawler(pages, seeds=seeds)

        result = await crawler.run(options(include_robots=True))

        assert f"{SITE}/private/data" not in fetcher.fetched
        assert f"{SITE}/public" in fetcher.fetched
        assert result.stats.urls_skipped.get("robots") == 1
        assert result.site_issues == []

    @pytest.mark.asyncio
    async def test_site_root_always_admitted(self, make_crawler, options, site_page, static_seeds):
        pages = {f"{SITE}/": site_page("Home", ["/a"])}
        crawler, fetcher = make_crawler(pages, seeds=static_seeds(robots_txt="User-agent: *\nDisallow: /\n"))

        result = await crawler.run(options(include_robots=True))

        assert fetcher.fetched == [f"{SITE}/"]
        assert result.pages_analyzed == 1


class TestAnalysis:
    """Test cases for per-page analysis inside the crawl."""

    @pytest.mark.asyncio
    async def test_duplicate_content(self, make_crawler, options, site_page, long_text):
        body = f"<h1>Widgets</h1><p>{long_text}</p>"
        pages = {
            f"{SITE}/": site_page("Home", ["/one", "/two"]),
            f"{SITE}/one": site_page("Page one", body=body),
            f"{SITE}/two": site_page("Page two", body=body),
        }
        crawler, _ = make_crawler(pages)

        result = await crawler.run(options())

        one, two = result.get_page(f"{SITE}/one"), result.get_page(f"{SITE}/two")
        duplicates = [p for p in (one, two) if p.duplicate_of]
        assert len(duplicates) == 1
        duplicate = duplicates[0]
        original = two if duplicate is one else one
        assert duplicate.duplicate_of == original.url
        assert "duplicate_content" in issue_types(duplicate)
        assert "duplicate_content" not in issue_types(original)

    @pytest.mark.asyncio
    async def test_duplicate_titles(self, make_crawler, options, site_page):
        pages = {
            f"{SITE}/": site_page("Home", ["/a", "/b"]),
            f"{SITE}/a": site_page("Same title"),
            f"{SITE}/b": site_page("Same title"),
        }
        crawler, _ = make_crawler(pages)

        result = await crawler.run(options())

        flagged = [p.url for p in result.pages if "duplicate_title" in issue_types(p)]
        assert len(flagged) == 1

    @pytest.mark.asyncio
    async def test_page_result_fields(self, make_crawler, options, make_html):
        html = make_html(
            title="Home",
            description="Welcome",
            head='<link rel="canonical" href="/">',
            body='<h1>Main</h1><h2>Sub</h2><img src="/logo.png">',
        )
        crawler, _ = make_crawler({f"{SITE}/": (200, html)})

        result = await crawler.run(options())

        home = result.get_page(f"{SITE}/")
        assert home.title == "Home"
        assert home.description == "Welcome"
        assert home.status_code == 200
        assert home.load_time_ms == 120.0
        assert home.headings.h1 == ["Main"]
        assert home.canonical_url == f"{SITE}/"
        assert home.images[0].src == f"{SITE}/logo.png"
        assert home.performance is None
        assert home.accessibility is None
        assert "missing_title" not in issue_types(home)
        assert "images_missing_alt" in issue_types(home)
        assert 0 <= home.score < 100

    @pytest.mark.asyncio
    async def test_issue_summary_matches_issues(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("", ["/a"]), f"{SITE}/a": site_page("")}
        crawler, _ = make_crawler(pages)

        result = await crawler.run(options())

        summary = result.issues_summary
        assert summary.total == len(result.all_issues)
        assert summary.critical == sum(1 for i in result.all_issues if i.severity == IssueSeverity.CRITICAL)
        assert summary.critical >= 2


class TestFailures:
    """Test cases for error isolation and fatal failures."""

    @pytest.mark.asyncio
    async def test_page_errors_are_isolated(self, make_crawler, options, site_page):
        pages = {
            f"{SITE}/": site_page("Home", ["/ok", "/broken", "/missing"]),
            f"{SITE}/ok": site_page("OK"),
        }
        crawler, _ = make_crawler(pages, fail_urls={f"{SITE}/broken"})

        result = await crawler.run(options())

        assert result.status == AuditStatus.COMPLETED
        assert result.pages_analyzed == 4

        broken = result.get_page(f"{SITE}/broken")
        assert broken.status_code == 0
        assert "connection refused" in broken.error
        assert [i.type for i in broken.issues] == ["processing_error"]
        assert result.stats.urls_failed == 1

        missing = result.get_page(f"{SITE}/missing")
        assert missing.status_code == 404
        assert "http_error_status" in issue_types(missing)

        assert result.get_page(f"{SITE}/ok").error is None

    @pytest.mark.asyncio
    async def test_broken_links_reported(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("Home", ["/ok", "/missing"]), f"{SITE}/ok": site_page("OK", ["/missing"])}
        crawler, _ = make_crawler(pages)

        result = await crawler.run(options())

        assert [i.affected_urls[0] for i in result.site_issues] == [f"{SITE}/", f"{SITE}/ok"]
        assert all(i.type == "broken_internal_links" for i in result.site_issues)
        assert all(i.severity == IssueSeverity.CRITICAL for i in result.site_issues)

    @pytest.mark.asyncio
    async def test_broken_link_check_disabled(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("Home", ["/missing"])}
        crawler, _ = make_crawler(pages)

        result = await crawler.run(options(check_broken_links=False))

        assert result.site_issues == []

    @pytest.mark.asyncio
    async def test_launch_failure(self, make_crawler, options, site_page):
        crawler, fetcher = make_crawler({}, launch_error=True)

        result = await crawler.run(options())

        assert result.status == AuditStatus.FAILED
        assert "browser executable not found" in result.failure_reason
        assert result.pages == []
        assert fetcher.fetched == []

    @pytest.mark.asyncio
    async def test_fetcher_crash_fails_run(self, make_crawler, options, site_page):
        links = [f"/p{i}" for i in range(10)]
        pages = {f"{SITE}/": site_page("Home", links)}
        pages.update({f"{SITE}{link}": site_page(link) for link in links})
        crawler, _ = make_crawler(pages, fail_launch_on=f"{SITE}/")

        result = await crawler.run(options())

        assert result.status == AuditStatus.FAILED
        assert result.failure_reason == "browser crashed"
        assert result.pages_analyzed == 1
        assert result.get_page(f"{SITE}/").error == "browser crashed"

    @pytest.mark.asyncio
    async def test_browser_disconnect_mid_run_fails_run(
        self, fast_settings, options, static_seeds, make_html, mock_browser_page
    ):
        state = {"connected": True}
        browser = AsyncMock()
        browser.is_connected = MagicMock(side_effect=lambda: state["connected"])
        context = AsyncMock()
        context.new_page.return_value = mock_browser_page(f"{SITE}/", make_html("Home", links=["/a", "/b"]))

        async def crash_after_first_context(**kwargs):
            state["connected"] = False
            return context

        browser.new_context = AsyncMock(side_effect=crash_after_first_context)
        factory = BrowserFactory(BrowserConfig())
        factory.playwright = AsyncMock()
        factory.browser = browser
        crawler = AuditCrawler(fetcher=PlaywrightFetcher(factory=factory), settings=fast_settings,
                               seed_discovery=static_seeds())

        with patch('site_auditor.audit.capture.browser_factory.async_playwright') as mock_pw:
            mock_pw.return_value.start = AsyncMock(side_effect=RuntimeError("driver exited"))
            result = await crawler.run(options())

        assert result.status == AuditStatus.FAILED
        assert "driver exited" in result.failure_reason
        assert result.get_page(f"{SITE}/").error is None
        others = [page for page in result.pages if page.url != f"{SITE}/"]
        assert others and all(page.error for page in others)

    @pytest.mark.asyncio
    async def test_dead_browser_that_cannot_relaunch_fails_run(self, fast_settings, options, static_seeds):
        browser = AsyncMock()
        browser.is_connected = MagicMock(return_value=False)
        browser.new_context.side_effect = PlaywrightError("Target page, context or browser has been closed")
        factory = BrowserFactory(BrowserConfig())
        factory.playwright = AsyncMock()
        factory.browser = browser
        seeds = static_seeds(extra_seeds=[f"{SITE}/s{i}" for i in range(5)])
        crawler = AuditCrawler(fetcher=PlaywrightFetcher(factory=factory), settings=fast_settings,
                               seed_discovery=seeds)

        with patch('site_auditor.audit.capture.browser_factory.async_playwright') as mock_pw:
            mock_pw.return_value.start = AsyncMock(side_effect=RuntimeError("driver exited"))
            result = await crawler.run(options())

        assert result.status == AuditStatus.FAILED
        assert "driver exited" in result.failure_reason
        assert result.pages == []
        browser.new_context.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_seeds(self, fake_fetcher_factory, fast_settings, options):
        class NoSeeds:
            async def resolve_seeds(self, base_url, options):
                return SeedResolution()

        crawler = AuditCrawler(fetcher=fake_fetcher_factory({}), settings=fast_settings, seed_discovery=NoSeeds())

        result = await crawler.run(options())

        assert result.status == AuditStatus.FAILED
        assert result.failure_reason == "No seed URL could be resolved"

    @pytest.mark.asyncio
    async def test_task_timeout(self, fake_fetcher_factory, fast_settings, options, static_seeds, site_page):
        class SlowFetcher(fake_fetcher_factory):
            def fetch(self, url, fetch_options):
                inner = super().fetch(url, fetch_options)

                class _Slow:
                    async def __aenter__(self_inner):
                        if url.endswith("/slow"):
                            await asyncio.sleep(10)
                        return await inner.__aenter__()

                    async def __aexit__(self_inner, *exc):
                        return await inner.__aexit__(*exc)

                return _Slow()

        settings = fast_settings.model_copy(update={"task_timeout_seconds": 0.2})
        fetcher = SlowFetcher({f"{SITE}/": site_page("Home", ["/slow"])})
        crawler = AuditCrawler(fetcher=fetcher, settings=settings, seed_discovery=static_seeds())

        result = await crawler.run(options())

        slow = result.get_page(f"{SITE}/slow")
        assert slow.status_code == 0
        assert "timed out" in slow.error
        assert result.status == AuditStatus.COMPLETED


class TestLifecycle:
    """Test cases for progress reporting and crawler lifecycle."""

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_completes(self, make_crawler, options, site_page):
        links = [f"/p{i}" for i in range(12)]
        pages = {f"{SITE}/": site_page("Home", links)}
        pages.update({f"{SITE}{link}": site_page(link) for link in links})
        crawler, _ = make_crawler(pages)
        events = []

        await crawler.run(options(), progress_callback=lambda percent, discovered, processed: events.append(percent))

        assert events
        assert events == sorted(events)
        assert events[-1] == 100
        assert all(0 <= percent <= 100 for percent in events)

    @pytest.mark.asyncio
    async def test_async_callback_errors_are_ignored(self, make_crawler, options, site_page):
        crawler, _ = make_crawler({f"{SITE}/": site_page("Home")})

        async def callback(percent, discovered, processed):
            raise RuntimeError("listener went away")

        result = await crawler.run(options(), progress_callback=callback)

        assert result.status == AuditStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_crawler_is_reusable(self, make_crawler, options, site_page):
        crawler, fetcher = make_crawler({f"{SITE}/": site_page("Home")})

        first = await crawler.run(options())
        second = await crawler.run(options())

        assert first.pages_analyzed == second.pages_analyzed == 1
        assert crawler.get_stats() == {}
        assert not fetcher.closed

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, make_crawler):
        crawler, _ = make_crawler({})
        crawler.stop()
        assert crawler.get_stats() == {}

    @pytest.mark.asyncio
    async def test_run_audit_wrapper(self, fake_fetcher_factory, fast_settings, options, site_page):
        fetcher = fake_fetcher_factory({f"{SITE}/": site_page("Home")})

        result = await run_audit(options(crawl_single_url=True), settings=fast_settings, fetcher=fetcher)

        assert result.pages_analyzed == 1


class TestRequestSettings:
    """Test cases for per-request headers, cookies and live stats."""

    @pytest.mark.asyncio
    async def test_headers_and_cookies_reach_fetcher(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("Home", ["/a"]), f"{SITE}/a": site_page("A")}
        crawler, fetcher = make_crawler(pages)

        await crawler.run(options(extra_headers={"Authorization": "Bearer t"}, cookies={"session": "abc"}))

        assert len(fetcher.options) == 2
        for fetch_options in fetcher.options:
            assert fetch_options.extra_headers == {"Authorization": "Bearer t"}
            assert fetch_options.cookies == {"session": "abc"}

    @pytest.mark.asyncio
    async def test_live_stats_describe_scope(self, make_crawler, options, site_page):
        pages = {f"{SITE}/": site_page("Home", ["/a"]), f"{SITE}/a": site_page("A")}
        crawler, _ = make_crawler(pages)
        snapshots = []

        await crawler.run(options(ignore_patterns=["/tmp/*"]), lambda *_: snapshots.append(crawler.get_stats()))

        assert snapshots
        scope = snapshots[-1]["scope"]
        assert scope["site_host"] == "example.com"
        assert "/tmp/*" in scope["ignore_patterns"]
        assert scope["robots"] is False


class TestStaticSite:
    """End-to-end crawl of a local site over HTTP."""

    @pytest.mark.asyncio
    async def test_static_fetcher_crawl(self, serve_site, fast_settings, make_html):
        origin = await serve_site({
            "/robots.txt": (200, "User-agent: *\nDisallow: /private/\n", "text/plain"),
            "/sitemap.xml": (
                200,
                '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
                "<url><loc>{origin}/orphan</loc></url></urlset>",
                "application/xml",
            ),
            "/": (200, make_html("Home page", "<h1>Home</h1>", links=["/about", "/private/x", "/gone"]), "text/html"),
            "/about": (200, make_html("About", "<h1>About</h1>", links=["/"]), "text/html"),
            "/orphan": (200, make_html("Orphan", "<h1>Orphan</h1>"), "text/html"),
            "/private/x": (200, make_html("Private"), "text/html"),
        })
        settings = fast_settings.model_copy(update={"fetcher": FetcherKind.STATIC})
        options = AuditOptions(site_url=origin, check_performance=True, check_accessibility=True)
        crawler = AuditCrawler(
            fetcher=StaticHtmlFetcher(),
            settings=settings,
            seed_discovery=SeedDiscovery(sitemap_timeout=5, robots_timeout=5),
        )

        try:
            result = await crawler.run(options)
        finally:
            await crawler.fetcher.close()

        urls = {p.url for p in result.pages}
        assert urls == {f"{origin}/", f"{origin}/about", f"{origin}/orphan", f"{origin}/gone"}
        assert result.get_page(f"{origin}/gone").status_code == 404
        assert result.get_page(f"{origin}/about").performance is None
        assert result.stats.urls_skipped.get("robots") == 1
        assert [i.affected_urls for i in result.site_issues] == [[f"{origin}/"]]
