"""Data models for the audit engine."""

from .crawl import (
    AuditOptions,
    CrawlSettings,
    CrawlStats,
    CrawlTask,
    FetcherKind,
    SkipReason,
    TaskLabel,
)
from .extraction import (
    AccessibilityData,
    AccessibilityViolation,
    HreflangLink,
    ImageInfo,
    LinkInfo,
    PerformanceData,
    ResourceTiming,
    SEOData,
)
from .issues import Issue, IssueCategory, IssueSeverity, IssuesSummary, sort_issues
from .results import AuditResult, AuditStatus, Headings, ImageRef, PageResult, format_elapsed

__all__ = [
    'AuditOptions',
    'CrawlSettings',
    'CrawlStats',
    'CrawlTask',
    'FetcherKind',
    'SkipReason',
    'TaskLabel',
    'AccessibilityData',
    'AccessibilityViolation',
    'HreflangLink',
    'ImageInfo',
    'LinkInfo',
    'PerformanceData',
    'ResourceTiming',
    'SEOData',
    'Issue',
    'IssueCategory',
    'IssueSeverity',
    'IssuesSummary',
    'sort_issues',
    'AuditResult',
    'AuditStatus',
    'Headings',
    'ImageRef',
    'PageResult',
    'format_elapsed',
]
