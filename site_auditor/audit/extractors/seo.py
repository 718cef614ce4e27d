"""SEO extraction from rendered HTML.

Works purely on ``RenderedPage.html`` (plus the reported title and response
headers), so it behaves the same for the browser and the static fetch path.
Missing elements produce empty values; nothing here raises on odd markup.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..capture.page import RenderedPage
from ..models.extraction import HreflangLink, ImageInfo, LinkInfo, SEOData
from ..utils.url_normalizer import get_host, resolve_url


logger = logging.getLogger(__name__)


_WHITESPACE_RE = re.compile(r'\s+')
_WORD_RE = re.compile(r'\w+', re.UNICODE)

# Elements whose text is not visible content
_NON_CONTENT_TAGS = ['script', 'style', 'noscript', 'template', 'svg', 'iframe']


def _clean(text: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(' ', text or '').strip()


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    for key, value in attrs.items():
        tag = soup.find('meta', attrs={key: re.compile(f'^{re.escape(value)}$', re.IGNORECASE)})
        if isinstance(tag, Tag) and tag.get('content') is not None:
            return _clean(tag.get('content'))
    return None


def _rel_values(tag: Tag) -> List[str]:
    rel = tag.get('rel') or []
    if isinstance(rel, str):
        rel = rel.split()
    return [value.lower() for value in rel]


def _parse_structured_data(soup: BeautifulSoup) -> List[Any]:
    blocks = []
    for script in soup.find_all('script', attrs={'type': re.compile(r'application/ld\+json', re.IGNORECASE)}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            blocks.append(json.loads(raw))
        except ValueError:
            logger.debug("Dropping invalid JSON-LD block")
    return blocks


def _prefixed_meta(soup: BeautifulSoup, prefix: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for tag in soup.find_all('meta'):
        key = tag.get('property') or tag.get('name') or ''
        if key.lower().startswith(prefix) and tag.get('content') is not None:
            values.setdefault(key[len(prefix):], _clean(tag.get('content')))
    return values


def _extract_links(soup: BeautifulSoup, page_url: str) -> Dict[str, List[LinkInfo]]:
    page_host = get_host(page_url)
    internal: List[LinkInfo] = []
    external: List[LinkInfo] = []
    seen = set()
    for anchor in soup.find_all('a', href=True):
        url = resolve_url(anchor.get('href'), page_url)
        if url is None or url in seen:
            continue
        seen.add(url)
        is_internal = get_host(url) == page_host
        link = LinkInfo(
            url=url,
            text=_clean(anchor.get_text(' '))[:200],
            nofollow='nofollow' in _rel_values(anchor),
            is_internal=is_internal,
        )
        (internal if is_internal else external).append(link)
    return {'internal': internal, 'external': external}


def _extract_images(soup: BeautifulSoup, page_url: str) -> List[ImageInfo]:
    images = []
    for img in soup.find_all('img'):
        src = img.get('src') or img.get('data-src') or ''
        resolved = resolve_url(src, page_url) if src and not src.startswith('data:') else None
        alt = img.get('alt')
        images.append(ImageInfo(
            src=resolved or src,
            alt=_clean(alt),
            has_alt=bool(alt and alt.strip()),
        ))
    return images


def _visible_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    for tag in body.find_all(_NON_CONTENT_TAGS):
        tag.decompose()
    return _clean(body.get_text(' '))


def extract_seo_data(page: RenderedPage) -> SEOData:
    """Extract on-page SEO signals.

    Args:
        page: Fetched page

    Returns:
        SEOData; fields stay empty when the corresponding markup is absent
    """
    page_url = page.final_url or page.url
    soup = BeautifulSoup(page.html or '', 'html.parser')

    title = _clean(page.title) if page.title else ''
    if not title and soup.title is not None:
        title = _clean(soup.title.get_text())

    canonical_url = None
    for link in soup.find_all('link', href=True):
        if 'canonical' in _rel_values(link):
            canonical_url = resolve_url(link.get('href'), page_url)
            break

    hreflang = [
        HreflangLink(hreflang=link.get('hreflang').strip(), href=resolve_url(link.get('href'), page_url) or link.get('href'))
        for link in soup.find_all('link', href=True, hreflang=True)
        if 'alternate' in _rel_values(link)
    ]

    links = _extract_links(soup, page_url)

    data = SEOData(
        title=title,
        meta_description=_meta_content(soup, name='description') or '',
        canonical_url=canonical_url,
        meta_robots=_meta_content(soup, name='robots'),
        x_robots_tag=page.headers.get('x-robots-tag'),
        viewport=_meta_content(soup, name='viewport'),
        h1=[_clean(h.get_text(' ')) for h in soup.find_all('h1')],
        h2=[_clean(h.get_text(' ')) for h in soup.find_all('h2')],
        h3=[_clean(h.get_text(' ')) for h in soup.find_all('h3')],
        images=_extract_images(soup, page_url),
        internal_links=links['internal'],
        external_links=links['external'],
        structured_data=_parse_structured_data(soup),
        open_graph=_prefixed_meta(soup, 'og:'),
        twitter_card=_prefixed_meta(soup, 'twitter:'),
        hreflang=hreflang,
        script_count=len(soup.find_all('script', src=True)),
        stylesheet_count=len([l for l in soup.find_all('link', href=True) if 'stylesheet' in _rel_values(l)]),
    )

    # Runs last: strips script/style tags from the tree
    text = _visible_text(soup)
    data.text_content = text
    data.word_count = len(_WORD_RE.findall(text))
    return data
