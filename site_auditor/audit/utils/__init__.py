"""Audit utilities package."""

from .url_normalizer import (
    URLNormalizationError,
    get_base_url,
    get_host,
    is_same_host,
    is_valid_http_url,
    normalize,
    resolve_url,
)

__all__ = [
    'URLNormalizationError',
    'get_base_url',
    'get_host',
    'is_same_host',
    'is_valid_http_url',
    'normalize',
    'resolve_url',
]
