"""Issue analysis rules."""

from .analyzer import (
    AnalyzerThresholds,
    IssueAnalyzer,
    PageSnapshot,
    SiteContext,
    calculate_page_score,
    processing_error_issue,
)
from .broken_links import find_broken_internal_links

__all__ = [
    'AnalyzerThresholds',
    'IssueAnalyzer',
    'PageSnapshot',
    'SiteContext',
    'calculate_page_score',
    'processing_error_issue',
    'find_broken_internal_links',
]
