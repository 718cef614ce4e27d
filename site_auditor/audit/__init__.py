"""Audit engine: crawling, extraction, duplicate detection and issue analysis."""

from .crawler import AuditCrawler, CrawlerError, run_audit
from .models import (
    AuditOptions,
    AuditResult,
    AuditStatus,
    CrawlSettings,
    Issue,
    IssueCategory,
    IssueSeverity,
    IssuesSummary,
    PageResult,
)
from .progress import ProgressTracker
from .ranking import RankingRecord, RankTracker

__all__ = [
    'AuditCrawler',
    'CrawlerError',
    'run_audit',
    'AuditOptions',
    'AuditResult',
    'AuditStatus',
    'CrawlSettings',
    'Issue',
    'IssueCategory',
    'IssueSeverity',
    'IssuesSummary',
    'PageResult',
    'ProgressTracker',
    'RankingRecord',
    'RankTracker',
]
