"""Extractor pipeline: SEO, performance and accessibility data from a RenderedPage."""

from .accessibility import calculate_accessibility_score, extract_accessibility_data
from .performance import (
    MetricRating,
    calculate_performance_score,
    extract_performance_data,
    rate_metric,
)
from .seo import extract_seo_data

__all__ = [
    'calculate_accessibility_score',
    'extract_accessibility_data',
    'MetricRating',
    'calculate_performance_score',
    'extract_performance_data',
    'rate_metric',
    'extract_seo_data',
]
