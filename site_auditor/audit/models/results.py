"""Per-page and per-run audit results."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .crawl import CrawlStats
from .extraction import AccessibilityData, PerformanceData
from .issues import Issue, IssuesSummary


class Headings(BaseModel):
    model_config = ConfigDict(frozen=True)

    h1: List[str] = Field(default_factory=list)
    h2: List[str] = Field(default_factory=list)
    h3: List[str] = Field(default_factory=list)


class ImageRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    src: str
    alt: str = ""


class PageResult(BaseModel):
    """Outcome of processing one URL, successful or not.

    Built once by the orchestrator and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    description: str = ""
    status_code: int = Field(default=0, ge=0, description="0 when no response was obtained")
    load_time_ms: float = Field(default=0.0, ge=0)
    content_length: int = Field(default=0, ge=0)
    headings: Headings = Field(default_factory=Headings)
    internal_links: List[str] = Field(default_factory=list)
    external_links: List[str] = Field(default_factory=list)
    images: List[ImageRef] = Field(default_factory=list)
    canonical_url: Optional[str] = None
    meta_robots: Optional[str] = None
    has_structured_data: bool = False
    is_mobile_friendly: bool = False
    duplicate_of: Optional[str] = None
    issues: List[Issue] = Field(default_factory=list)

    depth: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)
    score: int = Field(default=0, ge=0, le=100)
    performance: Optional[PerformanceData] = None
    accessibility: Optional[AccessibilityData] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code == 0 or self.status_code >= 400


class AuditStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``"Xh Ym Zs"``, omitting leading zero units."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class AuditResult(BaseModel):
    """The single artifact handed back to the caller at the end of a run."""

    site_url: str
    status: AuditStatus = AuditStatus.COMPLETED
    failure_reason: Optional[str] = None
    pages_analyzed: int = 0
    start_time: datetime
    end_time: datetime
    issues_summary: IssuesSummary = Field(default_factory=IssuesSummary)
    pages: List[PageResult] = Field(default_factory=list)
    site_issues: List[Issue] = Field(default_factory=list, description="Crawl-wide findings")
    stats: CrawlStats = Field(default_factory=CrawlStats)

    @model_validator(mode='after')
    def validate_page_count(self):
        if self.pages_analyzed != len(self.pages):
            raise ValueError("pages_analyzed must equal the number of page results")
        return self

    @property
    def elapsed(self) -> str:
        return format_elapsed((self.end_time - self.start_time).total_seconds())

    @property
    def all_issues(self) -> List[Issue]:
        issues = [issue for page in self.pages for issue in page.issues]
        issues.extend(self.site_issues)
        return issues

    def get_page(self, url: str) -> Optional[PageResult]:
        for page in self.pages:
            if page.url == url:
                return page
        return None

    def export_summary(self) -> Dict[str, Any]:
        return {
            "site_url": self.site_url,
            "status": self.status.value,
            "failure_reason": self.failure_reason,
            "pages_analyzed": self.pages_analyzed,
            "elapsed": self.elapsed,
            "issues": self.issues_summary.model_dump(),
            "stats": self.stats.export_summary(),
        }
