"""Performance extraction: Core Web Vitals and resource timings from the live page."""

import logging
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from ..capture.page import RenderedPage
from ..models.extraction import PerformanceData, ResourceTiming


logger = logging.getLogger(__name__)


class MetricRating(str, Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


class MetricThresholds(NamedTuple):
    needs_improvement: float
    poor: float


LCP_THRESHOLDS = MetricThresholds(2500, 4000)
FID_THRESHOLDS = MetricThresholds(100, 300)
CLS_THRESHOLDS = MetricThresholds(0.1, 0.25)
TTFB_THRESHOLDS = MetricThresholds(600, 1800)

POOR_PENALTY = 25
NEEDS_IMPROVEMENT_PENALTY = 15


# Observers are registered with buffered: true so entries recorded before the
# script ran are still delivered; the short wait lets those callbacks fire.
PERFORMANCE_SCRIPT = """async (waitMs) => {
    const seen = { lcp: null, cls: 0, fid: null };
    const observe = (type, onEntry) => {
        try {
            const observer = new PerformanceObserver((list) => list.getEntries().forEach(onEntry));
            observer.observe({ type, buffered: true });
            return observer;
        } catch (e) {
            return null;
        }
    };
    const observers = [
        observe('largest-contentful-paint', (e) => { seen.lcp = e.renderTime || e.loadTime || e.startTime; }),
        observe('layout-shift', (e) => { if (!e.hadRecentInput) { seen.cls += e.value; } }),
        observe('first-input', (e) => { seen.fid = e.processingStart - e.startTime; }),
    ];
    await new Promise((resolve) => setTimeout(resolve, waitMs));
    observers.forEach((o) => o && o.disconnect());

    const nav = performance.getEntriesByType('navigation')[0];
    const paint = performance.getEntriesByName('first-contentful-paint')[0];
    const resources = performance.getEntriesByType('resource').map((r) => ({
        url: r.name,
        initiator_type: r.initiatorType,
        duration_ms: r.duration,
        size_bytes: r.encodedBodySize || r.transferSize || 0,
    }));
    return {
        ttfb: nav ? nav.responseStart - nav.requestStart : null,
        fcp: paint ? paint.startTime : null,
        lcp: seen.lcp,
        cls: seen.cls,
        fid: seen.fid,
        dom_content_loaded: nav ? nav.domContentLoadedEventEnd - nav.startTime : null,
        load_event: nav && nav.loadEventEnd > 0 ? nav.loadEventEnd - nav.startTime : null,
        resources,
    };
}"""


def rate_metric(value: Optional[float], thresholds: MetricThresholds) -> Optional[MetricRating]:
    """Rate a metric against its thresholds; None when the metric is missing."""
    if value is None:
        return None
    if value > thresholds.poor:
        return MetricRating.POOR
    if value > thresholds.needs_improvement:
        return MetricRating.NEEDS_IMPROVEMENT
    return MetricRating.GOOD


def calculate_performance_score(
    lcp_ms: Optional[float] = None,
    fid_ms: Optional[float] = None,
    cls: Optional[float] = None,
    ttfb_ms: Optional[float] = None
) -> int:
    """Compute a 0-100 score from Core Web Vitals.

    Each metric in its poor band costs 25 points and in its needs-improvement
    band 15 points. Missing metrics cost nothing.
    """
    score = 100
    for value, thresholds in (
        (lcp_ms, LCP_THRESHOLDS),
        (fid_ms, FID_THRESHOLDS),
        (cls, CLS_THRESHOLDS),
        (ttfb_ms, TTFB_THRESHOLDS),
    ):
        rating = rate_metric(value, thresholds)
        if rating == MetricRating.POOR:
            score -= POOR_PENALTY
        elif rating == MetricRating.NEEDS_IMPROVEMENT:
            score -= NEEDS_IMPROVEMENT_PENALTY
    return max(0, score)


def _number(raw: Dict[str, Any], key: str) -> Optional[float]:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value >= 0 else None


def build_performance_data(raw: Optional[Dict[str, Any]]) -> PerformanceData:
    """Turn the browser-side measurement dict into PerformanceData."""
    raw = raw or {}
    resources = []
    for entry in raw.get('resources') or []:
        if not isinstance(entry, dict) or not entry.get('url'):
            continue
        resources.append(ResourceTiming(
            url=str(entry['url']),
            initiator_type=str(entry.get('initiator_type') or ''),
            duration_ms=_number(entry, 'duration_ms') or 0.0,
            size_bytes=int(_number(entry, 'size_bytes') or 0),
        ))

    lcp = _number(raw, 'lcp')
    fid = _number(raw, 'fid')
    cls = _number(raw, 'cls')
    ttfb = _number(raw, 'ttfb')
    return PerformanceData(
        ttfb_ms=ttfb,
        fcp_ms=_number(raw, 'fcp'),
        lcp_ms=lcp,
        cls=cls,
        fid_ms=fid,
        dom_content_loaded_ms=_number(raw, 'dom_content_loaded'),
        load_event_ms=_number(raw, 'load_event'),
        resource_count=len(resources),
        total_transfer_bytes=sum(r.size_bytes for r in resources),
        resources=resources,
        score=calculate_performance_score(lcp, fid, cls, ttfb),
    )


async def extract_performance_data(page: RenderedPage, observation_ms: int = 500) -> Optional[PerformanceData]:
    """Collect performance metrics from a page.

    Args:
        page: Fetched page; must have an execution context
        observation_ms: How long to let buffered performance observers report

    Returns:
        PerformanceData, or None when the page cannot be evaluated
    """
    if not page.can_evaluate:
        return None
    try:
        raw = await page.evaluate(PERFORMANCE_SCRIPT, observation_ms)
    except Exception as e:
        logger.warning(f"Performance metrics unavailable for {page.url}: {e}")
        return None
    if not isinstance(raw, dict):
        return None
    return build_performance_data(raw)
