"""Rule-based page analysis producing severity-ranked issues and a page score.

Each check is an independent function ``(AnalysisInput, thresholds) -> issues``.
Checks never depend on each other or on call order, and the analyzer sorts
their combined output, so identical input always yields identical issues.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from ..extractors.performance import (
    CLS_THRESHOLDS,
    FID_THRESHOLDS,
    LCP_THRESHOLDS,
    TTFB_THRESHOLDS,
    MetricRating,
    MetricThresholds,
    rate_metric,
)
from ..models.extraction import AccessibilityData, PerformanceData, SEOData
from ..models.issues import Issue, IssueCategory, IssueSeverity, sort_issues
from ..utils.url_normalizer import URLNormalizationError, normalize


logger = logging.getLogger(__name__)


SEVERITY_PENALTIES: Dict[IssueSeverity, int] = {
    IssueSeverity.CRITICAL: 20,
    IssueSeverity.ERROR: 10,
    IssueSeverity.WARNING: 5,
    IssueSeverity.INFO: 1,
}

IMPACT_SEVERITY: Dict[str, IssueSeverity] = {
    'critical': IssueSeverity.CRITICAL,
    'serious': IssueSeverity.ERROR,
    'moderate': IssueSeverity.WARNING,
    'minor': IssueSeverity.INFO,
}


class AnalyzerThresholds(BaseModel):
    """Tunable limits used by the checks."""

    title_min_length: int = Field(default=30, ge=0)
    title_max_length: int = Field(default=60, ge=1)
    description_min_length: int = Field(default=120, ge=0)
    description_max_length: int = Field(default=160, ge=1)
    thin_content_words: int = Field(default=300, ge=0)
    slow_load_ms: float = Field(default=3000, gt=0)
    max_scripts: int = Field(default=5, ge=0)
    max_stylesheets: int = Field(default=3, ge=0)
    max_requests: int = Field(default=100, ge=1)
    low_performance_score: int = Field(default=50, ge=0, le=100)


@dataclass(frozen=True)
class PageSnapshot:
    """Response-level facts about the page being analyzed."""
    url: str
    status_code: int = 200
    load_time_ms: float = 0.0


@dataclass
class SiteContext:
    """Crawl-wide facts a page is judged against.

    Attributes:
        titles: Lower-cased title -> URL of the first page that used it
        duplicate_of: Earlier URL whose content this page duplicates
    """
    titles: Mapping[str, str] = field(default_factory=dict)
    duplicate_of: Optional[str] = None


@dataclass
class AnalysisInput:
    page: PageSnapshot
    seo: SEOData
    performance: Optional[PerformanceData]
    accessibility: Optional[AccessibilityData]
    context: SiteContext


Check = Callable[[AnalysisInput, AnalyzerThresholds], Iterable[Issue]]


def _issue(
    data: AnalysisInput,
    type_: str,
    severity: IssueSeverity,
    description: str,
    recommendation: Optional[str] = None,
    category: IssueCategory = IssueCategory.TECHNICAL,
    affected_urls: Optional[List[str]] = None
) -> Issue:
    return Issue(
        type=type_,
        severity=severity,
        description=description,
        recommendation=recommendation,
        category=category,
        affected_urls=affected_urls or [data.page.url],
    )


def check_title(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    title = data.seo.title.strip()
    if not title:
        yield _issue(data, "missing_title", IssueSeverity.CRITICAL, "Page has no title",
                     "Add a unique, descriptive <title> element.", IssueCategory.META)
    elif len(title) < t.title_min_length:
        yield _issue(data, "title_too_short", IssueSeverity.WARNING,
                     f"Title is {len(title)} characters (minimum {t.title_min_length})",
                     f"Expand the title to {t.title_min_length}-{t.title_max_length} characters.",
                     IssueCategory.META)
    elif len(title) > t.title_max_length:
        yield _issue(data, "title_too_long", IssueSeverity.WARNING,
                     f"Title is {len(title)} characters (maximum {t.title_max_length})",
                     "Shorten the title so search results do not truncate it.", IssueCategory.META)


def check_duplicate_title(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    title = data.seo.title.strip().lower()
    if not title:
        return
    first_url = data.context.titles.get(title)
    if first_url and first_url != data.page.url:
        yield _issue(data, "duplicate_title", IssueSeverity.ERROR,
                     f"Title is also used by {first_url}",
                     "Give every page a unique title.", IssueCategory.META,
                     affected_urls=[data.page.url, first_url])


def check_meta_description(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    description = data.seo.meta_description.strip()
    if not description:
        yield _issue(data, "missing_meta_description", IssueSeverity.WARNING, "Page has no meta description",
                     "Add a meta description summarising the page.", IssueCategory.META)
    elif not t.description_min_length <= len(description) <= t.description_max_length:
        yield _issue(data, "meta_description_length", IssueSeverity.INFO,
                     f"Meta description is {len(description)} characters "
                     f"(recommended {t.description_min_length}-{t.description_max_length})",
                     "Adjust the meta description length.", IssueCategory.META)


def check_headings(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    h1_count = len(data.seo.h1)
    if h1_count == 0:
        yield _issue(data, "missing_h1", IssueSeverity.CRITICAL, "Page has no H1 heading",
                     "Add one H1 describing the page topic.", IssueCategory.CONTENT)
    elif h1_count > 1:
        yield _issue(data, "multiple_h1", IssueSeverity.WARNING, f"Page has {h1_count} H1 headings",
                     "Keep a single H1 and demote the others.", IssueCategory.CONTENT)
    if data.seo.h3 and not data.seo.h2:
        yield _issue(data, "improper_heading_structure", IssueSeverity.INFO,
                     "H3 headings are used without any H2",
                     "Use headings in hierarchical order.", IssueCategory.CONTENT)


def check_images(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    missing = len(data.seo.images_missing_alt)
    if missing:
        yield _issue(data, "images_missing_alt", IssueSeverity.WARNING,
                     f"{missing} image(s) without alt text",
                     "Describe every meaningful image with an alt attribute.", IssueCategory.ACCESSIBILITY)


def check_canonical(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    canonical = data.seo.canonical_url
    if not canonical:
        yield _issue(data, "missing_canonical", IssueSeverity.WARNING, "Page has no canonical URL",
                     "Add <link rel=\"canonical\"> pointing at the preferred URL.", IssueCategory.META)
        return
    try:
        differs = normalize(canonical) != normalize(data.page.url)
    except URLNormalizationError:
        differs = True
    if differs:
        yield _issue(data, "canonical_mismatch", IssueSeverity.INFO,
                     f"Canonical URL points elsewhere: {canonical}",
                     "Confirm the canonical target is intentional.", IssueCategory.META)


def check_content(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    if data.seo.word_count < t.thin_content_words:
        yield _issue(data, "thin_content", IssueSeverity.WARNING,
                     f"Page has {data.seo.word_count} words (minimum {t.thin_content_words})",
                     "Add substantive content or consolidate the page.", IssueCategory.CONTENT)
    if data.context.duplicate_of and data.context.duplicate_of != data.page.url:
        yield _issue(data, "duplicate_content", IssueSeverity.WARNING,
                     f"Content is nearly identical to {data.context.duplicate_of}",
                     "Consolidate the pages or point a canonical at the original.", IssueCategory.CONTENT,
                     affected_urls=[data.page.url, data.context.duplicate_of])
    if not data.seo.has_structured_data:
        yield _issue(data, "missing_structured_data", IssueSeverity.INFO, "No JSON-LD structured data found",
                     "Add schema.org markup where it applies.", IssueCategory.META)


def check_status(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    status = data.page.status_code
    if status and not 200 <= status < 400:
        yield _issue(data, "http_error_status", IssueSeverity.CRITICAL, f"Page returned HTTP {status}",
                     "Fix the page or remove links pointing to it.")


def check_indexing(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    if data.seo.is_noindex:
        yield _issue(data, "has_noindex", IssueSeverity.WARNING, "Page is excluded from indexing (noindex)",
                     "Remove noindex if the page should appear in search results.", IssueCategory.META)
    if not data.seo.is_mobile_friendly:
        yield _issue(data, "not_mobile_friendly", IssueSeverity.ERROR,
                     "No responsive viewport meta tag (width=device-width)",
                     "Add <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">.")


def check_page_weight(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    if data.page.load_time_ms > t.slow_load_ms:
        yield _issue(data, "slow_page_load", IssueSeverity.WARNING,
                     f"Page took {data.page.load_time_ms:.0f} ms to load",
                     "Reduce server response time and page weight.", IssueCategory.PERFORMANCE)
    if data.seo.script_count > t.max_scripts or data.seo.stylesheet_count > t.max_stylesheets:
        yield _issue(data, "render_blocking_resources", IssueSeverity.INFO,
                     f"{data.seo.script_count} external scripts and {data.seo.stylesheet_count} stylesheets",
                     "Bundle, defer or inline critical resources.", IssueCategory.PERFORMANCE)


_VITALS: Tuple[Tuple[str, str, str, MetricThresholds], ...] = (
    ("poor_lcp", "lcp_ms", "Largest Contentful Paint", LCP_THRESHOLDS),
    ("poor_fid", "fid_ms", "First Input Delay", FID_THRESHOLDS),
    ("poor_cls", "cls", "Cumulative Layout Shift", CLS_THRESHOLDS),
    ("slow_ttfb", "ttfb_ms", "Time to First Byte", TTFB_THRESHOLDS),
)


def check_performance(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    perf = data.performance
    if perf is None:
        return
    for type_, attr, label, thresholds in _VITALS:
        value = getattr(perf, attr)
        rating = rate_metric(value, thresholds)
        if rating in (MetricRating.POOR, MetricRating.NEEDS_IMPROVEMENT):
            severity = IssueSeverity.ERROR if rating == MetricRating.POOR else IssueSeverity.WARNING
            shown = f"{value:.3f}" if attr == "cls" else f"{value:.0f} ms"
            yield _issue(data, type_, severity,
                         f"{label} is {shown} ({rating.value.replace('_', ' ')})",
                         f"Bring {label} under {thresholds.needs_improvement}.", IssueCategory.PERFORMANCE)
    if perf.score < t.low_performance_score:
        yield _issue(data, "low_performance_score", IssueSeverity.WARNING,
                     f"Performance score is {perf.score}/100",
                     "Address the Core Web Vitals issues on this page.", IssueCategory.PERFORMANCE)
    if perf.resource_count > t.max_requests:
        yield _issue(data, "high_request_count", IssueSeverity.WARNING,
                     f"Page loads {perf.resource_count} resources",
                     "Combine or lazy-load resources.", IssueCategory.PERFORMANCE)


def check_accessibility(data: AnalysisInput, t: AnalyzerThresholds) -> Iterable[Issue]:
    a11y = data.accessibility
    if a11y is None or not a11y.violations:
        return
    by_impact: Dict[str, List[str]] = {}
    for violation in a11y.violations:
        by_impact.setdefault(violation.impact, []).append(violation.rule_id or violation.description)
    for impact, rules in by_impact.items():
        yield _issue(data, "accessibility_violations", IMPACT_SEVERITY.get(impact, IssueSeverity.INFO),
                     f"{len(rules)} {impact} accessibility violation(s): {', '.join(sorted(rules))}",
                     "Fix the listed accessibility rules.", IssueCategory.ACCESSIBILITY)


DEFAULT_CHECKS: Tuple[Check, ...] = (
    check_title,
    check_duplicate_title,
    check_meta_description,
    check_headings,
    check_images,
    check_canonical,
    check_content,
    check_status,
    check_indexing,
    check_page_weight,
    check_performance,
    check_accessibility,
)


def calculate_page_score(issues: Iterable[Issue]) -> int:
    """100 minus a fixed penalty per issue severity, floored at 0."""
    return max(0, 100 - sum(SEVERITY_PENALTIES[issue.severity] for issue in issues))


class IssueAnalyzer:
    """Runs every check over a page's extracted data."""

    def __init__(self, thresholds: Optional[AnalyzerThresholds] = None, checks: Optional[Iterable[Check]] = None):
        self.thresholds = thresholds or AnalyzerThresholds()
        self.checks = tuple(checks) if checks is not None else DEFAULT_CHECKS

    def analyze(
        self,
        page: PageSnapshot,
        seo: SEOData,
        performance: Optional[PerformanceData] = None,
        accessibility: Optional[AccessibilityData] = None,
        context: Optional[SiteContext] = None
    ) -> List[Issue]:
        """Evaluate all checks for one page.

        Args:
            page: URL, status and load time of the page
            seo: Extracted SEO data
            performance: Performance data, None when unavailable
            accessibility: Accessibility data, None when unavailable
            context: Crawl-wide context (title index, duplicate target)

        Returns:
            Issues sorted by severity, type and description
        """
        data = AnalysisInput(page, seo, performance, accessibility, context or SiteContext())
        issues: List[Issue] = []
        for check in self.checks:
            issues.extend(check(data, self.thresholds))
        return sort_issues(issues)

    def score(self, issues: Iterable[Issue]) -> int:
        return calculate_page_score(issues)


def processing_error_issue(url: str, message: str) -> Issue:
    """Issue attached to a page whose pipeline failed."""
    return Issue(
        type="processing_error",
        severity=IssueSeverity.ERROR,
        description=f"Page could not be processed: {message}",
        recommendation="Check that the page is reachable and renders within the timeout.",
        category=IssueCategory.TECHNICAL,
        affected_urls=[url],
    )
