"""Near-duplicate page content detection.

Two stages keep the comparison cheap: a sampled fingerprint of nine word
positions filters candidates, and only candidates above the pre-filter
threshold get a full Jaccard comparison of their word sets.
"""

import logging
import re
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import FrozenSet, Iterator, List, Optional, Tuple


logger = logging.getLogger(__name__)


_WHITESPACE_RE = re.compile(r'\s+')

FINGERPRINT_POSITIONS = (0, 5, 10, 25, 50, 75, 100)


def clean_text(text: str) -> str:
    """Collapse whitespace, trim and lower-case."""
    return _WHITESPACE_RE.sub(' ', text or '').strip().lower()


def build_fingerprint(cleaned: str) -> Tuple[str, ...]:
    """Sample words at fixed positions plus the middle and last word.

    Positions beyond the end of the text are skipped.
    """
    words = cleaned.split(' ') if cleaned else []
    if not words:
        return ()
    positions = list(FINGERPRINT_POSITIONS) + [len(words) // 2, len(words) - 1]
    return tuple(words[i] for i in positions if i < len(words))


def fingerprint_similarity(first: Tuple[str, ...], second: Tuple[str, ...]) -> float:
    """Multiset word overlap divided by the longer fingerprint's length."""
    if not first or not second:
        return 0.0
    overlap = sum((Counter(first) & Counter(second)).values())
    return overlap / max(len(first), len(second))


def jaccard_similarity(first: FrozenSet[str], second: FrozenSet[str], min_distinct_words: int = 10) -> float:
    """Intersection over union of two word sets; 0 when either set is too small."""
    if len(first) < min_distinct_words or len(second) < min_distinct_words:
        return 0.0
    union = len(first | second)
    return len(first & second) / union if union else 0.0


@dataclass
class ContentFingerprint:
    url: str
    fingerprint: Tuple[str, ...]
    text: str
    words: FrozenSet[str] = field(default_factory=frozenset)


class BoundedContentStore:
    """Fixed-capacity fingerprint store that evicts the oldest entry first."""

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[str, ContentFingerprint]" = OrderedDict()
        self.evictions = 0

    def put(self, entry: ContentFingerprint) -> None:
        if entry.url in self._entries:
            del self._entries[entry.url]
        self._entries[entry.url] = entry
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evictions += 1

    def get(self, url: str) -> Optional[ContentFingerprint]:
        return self._entries.get(url)

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ContentFingerprint]:
        """Iterate oldest first."""
        return iter(list(self._entries.values()))

    def clear(self) -> None:
        self._entries.clear()


class DuplicateContentDetector:
    """Per-run near-duplicate detector.

    Create one instance per audit run; the store is not shared between runs.
    """

    def __init__(
        self,
        min_length: int = 500,
        prefilter_threshold: float = 0.7,
        similarity_threshold: float = 0.85,
        min_distinct_words: int = 10,
        capacity: int = 1000
    ):
        """Initialize the detector.

        Args:
            min_length: Cleaned texts shorter than this are not compared or stored
            prefilter_threshold: Fingerprint overlap a candidate must exceed
            similarity_threshold: Jaccard similarity that confirms a duplicate
            min_distinct_words: Word-set size below which Jaccard is not trusted
            capacity: Maximum fingerprints retained
        """
        self.min_length = min_length
        self.prefilter_threshold = prefilter_threshold
        self.similarity_threshold = similarity_threshold
        self.min_distinct_words = min_distinct_words
        self.store = BoundedContentStore(capacity)
        self._stats = {"checked": 0, "skipped_short": 0, "candidates": 0, "duplicates": 0}

    def check(self, url: str, text: str) -> Optional[str]:
        """Compare a page against earlier pages and register it.

        Args:
            url: Page URL
            text: Page text (cleaned here; raw text is fine)

        Returns:
            URL of the earliest stored page this one duplicates, or None
        """
        cleaned = clean_text(text)
        if len(cleaned) < self.min_length:
            self._stats["skipped_short"] += 1
            return None

        self._stats["checked"] += 1
        entry = ContentFingerprint(
            url=url,
            fingerprint=build_fingerprint(cleaned),
            text=cleaned,
            words=frozenset(cleaned.split(' ')),
        )

        duplicate_of = None
        for stored in self.store:
            if stored.url == url:
                continue
            if fingerprint_similarity(entry.fingerprint, stored.fingerprint) <= self.prefilter_threshold:
                continue
            self._stats["candidates"] += 1
            similarity = jaccard_similarity(entry.words, stored.words, self.min_distinct_words)
            if similarity > self.similarity_threshold:
                duplicate_of = stored.url
                self._stats["duplicates"] += 1
                logger.debug(f"{url} duplicates {stored.url} (similarity {similarity:.2f})")
                break

        self.store.put(entry)
        return duplicate_of

    def get_stats(self) -> dict:
        return {**self._stats, "stored": len(self.store), "evictions": self.store.evictions}
