"""Content detectors."""

from .duplicate_content import (
    BoundedContentStore,
    ContentFingerprint,
    DuplicateContentDetector,
    build_fingerprint,
    clean_text,
    fingerprint_similarity,
    jaccard_similarity,
)

__all__ = [
    'BoundedContentStore',
    'ContentFingerprint',
    'DuplicateContentDetector',
    'build_fingerprint',
    'clean_text',
    'fingerprint_similarity',
    'jaccard_similarity',
]
