"""Pydantic models for audit input, crawl tuning and crawl bookkeeping.

``AuditOptions`` is what a caller asks for, ``CrawlSettings`` is how the
engine behaves while answering, and ``CrawlTask`` / ``CrawlStats`` are the
records the orchestrator moves around during a run.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.url_normalizer import URLNormalizationError, normalize


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/112.0.0.0 Safari/537.36"
)

DEFAULT_ALLOWED_QUERY_PARAMS = ["page", "id", "category", "product"]

AXE_CORE_URL = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.8.2/axe.min.js"


class TaskLabel(str, Enum):
    """How a crawl task entered the frontier."""
    START_URL = "START_URL"
    SITEMAP_URL = "SITEMAP_URL"
    LINK = "LINK"


class SkipReason(str, Enum):
    """Why a discovered URL was not admitted into the frontier."""
    INVALID_URL = "invalid_url"
    DEPTH = "depth"
    EXTERNAL = "external"
    IGNORED = "ignored"
    NOT_FOLLOWED = "not_followed"
    QUERY_STRING = "query_string"
    ROBOTS = "robots"
    DUPLICATE = "duplicate"
    BUDGET = "budget"
    SINGLE_URL = "single_url"


class FetcherKind(str, Enum):
    """Available fetch paths."""
    BROWSER = "browser"    # Playwright, full rendering with an execution context
    STATIC = "static"      # Plain HTTP + HTML parsing, no execution context


class AuditOptions(BaseModel):
    """Caller-supplied options for one audit run.

    The engine treats this object as read-only.
    """

    model_config = ConfigDict(frozen=True)

    site_url: str = Field(description="Site URL the audit starts from")

    max_pages: int = Field(
        default=100,
        ge=1,
        le=100000,
        description="Maximum number of pages to process"
    )

    max_depth: int = Field(
        default=3,
        ge=0,
        le=100,
        description="Maximum link depth from the seed URLs"
    )

    include_sitemap: bool = Field(default=True, description="Seed the crawl from sitemaps")
    include_robots: bool = Field(default=True, description="Honour robots.txt and harvest its sitemaps")
    crawl_single_url: bool = Field(default=False, description="Only audit the site URL, no link discovery")

    follow_patterns: List[str] = Field(
        default_factory=list,
        description="Glob patterns a discovered URL must match to be followed"
    )

    ignore_patterns: List[str] = Field(
        default_factory=list,
        description="Glob patterns for URLs that must never be crawled"
    )

    check_performance: bool = Field(default=True, description="Collect performance metrics")
    check_accessibility: bool = Field(default=True, description="Run the accessibility rule engine")
    check_broken_links: bool = Field(default=True, description="Cross-check internal links after the crawl")
    use_javascript: bool = Field(
        default=False,
        description="Load fonts, images and stylesheets instead of blocking them"
    )

    skip_external: bool = Field(default=True, description="Stay on the site URL's host")

    allowed_query_params: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_QUERY_PARAMS),
        description="Query parameters that do not cause a URL to be skipped"
    )

    user_agent: Optional[str] = Field(default=None, description="Override the crawler user agent")

    extra_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="HTTP headers sent with every page request, e.g. Authorization"
    )

    cookies: Dict[str, str] = Field(
        default_factory=dict,
        description="Cookies (name to value) sent with every page request, e.g. a session cookie"
    )

    @field_validator('site_url')
    @classmethod
    def validate_site_url(cls, v: str) -> str:
        """Require an absolute http(s) URL, stored normalized."""
        try:
            return normalize(v)
        except URLNormalizationError as e:
            raise ValueError(f"Invalid site URL: {e}")


class CrawlSettings(BaseModel):
    """Engine tuning that is not part of a caller's audit request."""

    # Worker pool
    max_concurrency: int = Field(default=10, ge=1, le=50, description="Hard ceiling on parallel tasks")
    min_concurrency: int = Field(default=2, ge=1, le=50, description="Floor for the adaptive pool width")
    desired_concurrency: int = Field(default=5, ge=1, le=50, description="Initial pool width")
    target_utilization: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        description="Busy ratio above which the pool grows"
    )
    scale_step_ratio: float = Field(default=0.05, gt=0.0, le=1.0, description="Relative width change per adjustment")
    max_requests_per_minute: int = Field(default=60, ge=1, le=100000, description="Politeness budget per host")

    # Timeouts
    navigation_timeout_ms: int = Field(default=30000, ge=1000, le=300000, description="Navigation timeout")
    task_timeout_seconds: float = Field(default=90.0, gt=0, le=900, description="Whole-pipeline timeout per page")
    spa_settle_ms: int = Field(default=1000, ge=0, le=30000, description="Extra wait once a SPA is detected")
    seed_timeout_seconds: float = Field(default=20.0, gt=0, le=120, description="Sitemap fetch timeout")
    robots_timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="robots.txt fetch timeout")

    # Fetching
    fetcher: FetcherKind = Field(default=FetcherKind.BROWSER, description="Fetch path to use")
    browser_engine: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Playwright browser engine for the browser fetch path"
    )
    headless: bool = Field(default=True, description="Run the browser headless")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User agent for all requests")
    robots_agent: str = Field(default="SiteAuditorBot", description="Agent token matched in robots.txt")
    axe_script_url: str = Field(default=AXE_CORE_URL, description="Where the accessibility engine is loaded from")

    # Progress reporting
    progress_step: int = Field(default=5, ge=1, le=100, description="Percentage points between notifications")
    progress_interval_seconds: float = Field(default=5.0, gt=0, description="Max seconds between notifications")

    # Duplicate content
    duplicate_min_length: int = Field(default=500, ge=0, description="Shortest text compared for duplicates")
    duplicate_prefilter_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    duplicate_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    duplicate_store_capacity: int = Field(default=1000, ge=1, description="Fingerprints retained per run")

    frontier_max_size: int = Field(default=10000, ge=100, description="Frontier capacity")

    @model_validator(mode='after')
    def validate_concurrency_bounds(self):
        """Keep floor <= desired <= ceiling.

        Bounds left at their defaults are moved to fit the explicitly set
        ones; only explicitly contradictory values are rejected.
        """
        explicit = set(self.model_fields_set)
        if 'max_concurrency' not in explicit:
            for name in ('min_concurrency', 'desired_concurrency'):
                if name in explicit:
                    self.max_concurrency = max(self.max_concurrency, getattr(self, name))
        if 'min_concurrency' not in explicit:
            self.min_concurrency = min(self.min_concurrency, self.max_concurrency)
            if 'desired_concurrency' in explicit:
                self.min_concurrency = min(self.min_concurrency, self.desired_concurrency)
        if 'desired_concurrency' not in explicit:
            self.desired_concurrency = max(self.min_concurrency, min(self.desired_concurrency, self.max_concurrency))

        if self.min_concurrency > self.max_concurrency:
            raise ValueError("min_concurrency cannot exceed max_concurrency")
        if not self.min_concurrency <= self.desired_concurrency <= self.max_concurrency:
            raise ValueError("desired_concurrency must lie between min_concurrency and max_concurrency")
        return self


class CrawlTask(BaseModel):
    """A URL waiting in (or taken from) the frontier."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(description="Normalized absolute URL")
    depth: int = Field(default=0, ge=0, description="Link depth from the seeds")
    discovered_from: Optional[str] = Field(default=None, description="Parent page URL, None for seeds")
    user_attributes: Dict[str, Any] = Field(default_factory=dict, description="Free-form task metadata")

    @property
    def label(self) -> str:
        return self.user_attributes.get("label", TaskLabel.LINK.value)


class CrawlStats(BaseModel):
    """Counters collected over one audit run."""

    urls_discovered: int = Field(default=0, description="URLs accepted into the frontier")
    urls_processed: int = Field(default=0, description="Tasks that produced a PageResult")
    urls_failed: int = Field(default=0, description="Tasks that ended in a processing error")
    urls_discarded: int = Field(default=0, description="Dequeued tasks dropped after the page budget was spent")
    urls_skipped: Dict[str, int] = Field(default_factory=dict, description="Skipped URLs by reason")

    start_time: Optional[datetime] = Field(default=None)
    end_time: Optional[datetime] = Field(default=None)

    def record_skip(self, reason: SkipReason) -> None:
        self.urls_skipped[reason.value] = self.urls_skipped.get(reason.value, 0) + 1

    @property
    def duration(self) -> Optional[float]:
        """Crawl duration in seconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def success_rate(self) -> float:
        """Share of processed tasks without a processing error, in percent."""
        if self.urls_processed == 0:
            return 0.0
        return (self.urls_processed - self.urls_failed) / self.urls_processed * 100.0

    @property
    def pages_per_second(self) -> float:
        duration = self.duration
        if duration and duration > 0:
            return self.urls_processed / duration
        return 0.0

    def export_summary(self) -> Dict[str, Any]:
        """Export a JSON-friendly summary."""
        return {
            "urls_discovered": self.urls_discovered,
            "urls_processed": self.urls_processed,
            "urls_failed": self.urls_failed,
            "urls_discarded": self.urls_discarded,
            "urls_skipped": dict(self.urls_skipped),
            "duration_seconds": self.duration,
            "success_rate": round(self.success_rate, 1),
            "pages_per_second": round(self.pages_per_second, 2),
        }
