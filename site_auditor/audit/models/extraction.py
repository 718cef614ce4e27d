"""Plain data produced by the extractor pipeline.

These models carry no reference to the page or browser they were read from,
so the analyzer can be exercised with hand-built instances.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class LinkInfo(BaseModel):
    """An anchor found on a page, already resolved to an absolute URL."""
    url: str
    text: str = ""
    nofollow: bool = False
    is_internal: bool = True


class ImageInfo(BaseModel):
    src: str
    alt: str = ""
    has_alt: bool = False


class HreflangLink(BaseModel):
    hreflang: str
    href: str


class SEOData(BaseModel):
    """On-page SEO signals read from the rendered HTML."""

    title: str = ""
    meta_description: str = ""
    canonical_url: Optional[str] = None
    meta_robots: Optional[str] = None
    x_robots_tag: Optional[str] = None
    viewport: Optional[str] = None
    h1: List[str] = Field(default_factory=list)
    h2: List[str] = Field(default_factory=list)
    h3: List[str] = Field(default_factory=list)
    images: List[ImageInfo] = Field(default_factory=list)
    internal_links: List[LinkInfo] = Field(default_factory=list)
    external_links: List[LinkInfo] = Field(default_factory=list)
    structured_data: List[Any] = Field(default_factory=list)
    open_graph: Dict[str, str] = Field(default_factory=dict)
    twitter_card: Dict[str, str] = Field(default_factory=dict)
    hreflang: List[HreflangLink] = Field(default_factory=list)
    text_content: str = ""
    word_count: int = 0
    script_count: int = 0
    stylesheet_count: int = 0

    @property
    def has_structured_data(self) -> bool:
        return len(self.structured_data) > 0

    @property
    def is_mobile_friendly(self) -> bool:
        return bool(self.viewport) and 'width=device-width' in self.viewport.replace(' ', '').lower()

    @property
    def is_noindex(self) -> bool:
        directives = f"{self.meta_robots or ''},{self.x_robots_tag or ''}".lower()
        return 'noindex' in directives

    @property
    def images_missing_alt(self) -> List[ImageInfo]:
        return [image for image in self.images if not image.has_alt]


class ResourceTiming(BaseModel):
    url: str
    initiator_type: str = ""
    duration_ms: float = 0.0
    size_bytes: int = 0


class PerformanceData(BaseModel):
    """Core Web Vitals and resource timings; metrics are None when the browser did not report them."""

    ttfb_ms: Optional[float] = None
    fcp_ms: Optional[float] = None
    lcp_ms: Optional[float] = None
    cls: Optional[float] = None
    fid_ms: Optional[float] = None
    dom_content_loaded_ms: Optional[float] = None
    load_event_ms: Optional[float] = None
    resource_count: int = 0
    total_transfer_bytes: int = 0
    resources: List[ResourceTiming] = Field(default_factory=list)
    score: int = Field(default=100, ge=0, le=100)


class AccessibilityViolation(BaseModel):
    rule_id: str = ""
    impact: str = "minor"
    description: str = ""
    help_url: Optional[str] = None
    selectors: List[str] = Field(default_factory=list)


class AccessibilityData(BaseModel):
    violations: List[AccessibilityViolation] = Field(default_factory=list)
    passes: int = 0
    score: int = Field(default=100, ge=0, le=100)
