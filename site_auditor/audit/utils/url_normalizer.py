"""URL normalization helpers shared by the frontier, scope rules and extractors.

Every URL that enters the visited set, the frontier or a PageResult passes
through ``normalize`` first, so two spellings of the same page collapse to one
key.
"""

from typing import Optional
from urllib.parse import quote, unquote, urljoin, urlparse, urlunparse


class URLNormalizationError(Exception):
    """Raised when URL normalization fails."""
    pass


_DEFAULT_PORTS = {'http': 80, 'https': 443}

# Link schemes that never point at a crawlable document
NON_NAVIGABLE_PREFIXES = ('#', 'mailto:', 'tel:', 'javascript:', 'data:', 'sms:')


def _normalize_host(host: str) -> str:
    if host.startswith('['):
        return host.lower()
    try:
        return host.encode('idna').decode('ascii').lower()
    except UnicodeError:
        return host.lower()


def normalize(url: str) -> str:
    """Normalize a URL for deduplication and comparison.

    Lowercases scheme and host, drops default ports and fragments, converts
    internationalized hosts to punycode, re-encodes the path and makes an
    empty path ``/``. The query string is kept as-is.

    Args:
        url: The URL to normalize

    Returns:
        The normalized URL string

    Raises:
        URLNormalizationError: If the URL is not an absolute http(s) URL

    Example:
        >>> normalize("HTTP://Example.COM:80/Path?x=1#top")
        'http://example.com/Path?x=1'
    """
    if not url or not isinstance(url, str):
        raise URLNormalizationError("URL must be a non-empty string")

    url = url.strip()
    if not url:
        raise URLNormalizationError("URL cannot be empty or whitespace only")

    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        raise URLNormalizationError(f"Failed to parse URL '{url}': {e}")

    scheme = parsed.scheme.lower()
    if not scheme:
        raise URLNormalizationError(f"URL missing scheme: {url}")
    if scheme not in _DEFAULT_PORTS:
        raise URLNormalizationError(f"Unsupported URL scheme: {scheme}")
    if not parsed.hostname:
        raise URLNormalizationError(f"URL missing host: {url}")

    host = parsed.hostname
    if ':' in host:
        host = f"[{host}]"
    netloc = _normalize_host(host)
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parsed.path or '/'
    try:
        path = quote(unquote(path), safe="/~:@!$&'()*+,;=-._")
    except (UnicodeDecodeError, UnicodeEncodeError):
        pass

    return urlunparse((scheme, netloc, path, parsed.params, parsed.query, ''))


def resolve_url(href: str, base_url: str) -> Optional[str]:
    """Resolve an href found on a page into a normalized absolute URL.

    Returns None for fragments, non-navigable schemes and anything that does
    not normalize to an http(s) URL.
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.lower().startswith(NON_NAVIGABLE_PREFIXES):
        return None
    try:
        return normalize(urljoin(base_url, href))
    except URLNormalizationError:
        return None


def get_host(url: str) -> str:
    """Return the normalized ``host[:port]`` of a URL, or '' if it is invalid."""
    try:
        return urlparse(normalize(url)).netloc
    except URLNormalizationError:
        return ''


def strip_www(host: str) -> str:
    return host[4:] if host.startswith('www.') else host


def is_same_host(url1: str, url2: str) -> bool:
    """Check whether two URLs are served from the same host and port."""
    host1 = get_host(url1)
    return bool(host1) and host1 == get_host(url2)


def get_base_url(url: str) -> str:
    """Extract ``scheme://netloc`` from a URL.

    Raises:
        URLNormalizationError: If the URL cannot be normalized
    """
    parsed = urlparse(normalize(url))
    return f"{parsed.scheme}://{parsed.netloc}"


def is_valid_http_url(url: str) -> bool:
    """Check if a URL is a valid HTTP/HTTPS URL."""
    try:
        normalize(url)
        return True
    except URLNormalizationError:
        return False
