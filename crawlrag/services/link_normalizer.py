"""Resolve, extract and filter links discovered on crawled pages.

Normalization must keep query strings and fragments: retrieval identifies
sources by their exact URL, so ``/search?q=x#y`` stays ``/search?q=x#y``.
"""

from typing import Iterable, List
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from crawlrag.constants import ALLOWED_URL_SCHEMES

_SKIPPED_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")


def normalize_url(href: str, base_url: str) -> str:
    """Resolve ``href`` against ``base_url``.

    Args:
        href: Link as written in the page (absolute, root-relative or relative)
        base_url: URL of the page the link was found on

    Returns:
        Absolute http(s) URL with query and fragment preserved, or "" when the
        link cannot be followed (mailto:, tel:, javascript:, in-page anchors,
        unresolvable input)
    """
    href = (href or "").strip()
    if not href or href.lower().startswith(_SKIPPED_PREFIXES):
        return ""

    if href.lower().startswith(("http://", "https://")):
        return href

    try:
        absolute = urljoin(base_url, href)
        parts = urlsplit(absolute)
    except ValueError:
        return ""

    if parts.scheme not in ALLOWED_URL_SCHEMES or not parts.netloc:
        return ""
    return absolute


def extract_links(page: str | BeautifulSoup, base_url: str) -> List[str]:
    """Return every followable ``<a href>`` of a page, absolute and deduplicated.

    ``page`` is raw HTML or an already parsed document.
    """
    if not page:
        return []
    soup = page if isinstance(page, BeautifulSoup) else BeautifulSoup(page, "html.parser")

    seen: set[str] = set()
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        absolute = normalize_url(anchor["href"], base_url)
        if absolute and absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


def hostname_of(url: str) -> str:
    """Lower-cased hostname of ``url`` ("" when it has none or cannot be parsed)."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def filter_by_domain(urls: Iterable[str], hostname: str) -> List[str]:
    """Keep URLs on ``hostname`` (or its ``www.`` variant)."""
    hostname = hostname.lower()
    allowed = {hostname, f"www.{hostname}"}
    return [url for url in urls if hostname_of(url) in allowed]


def dedup_key(url: str) -> str:
    """Key identifying a page in the crawl frontier.

    Lower-cases scheme and host, drops the fragment (it never changes the
    fetched document) and a trailing slash on non-root paths. The query string
    is kept. Only used for membership checks; pages keep their original URL.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    path = parts.path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    elif not path:
        path = "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))
