"""Crawl policy: robots.txt rules and sitemap discovery.

Parsing is pure and never touches the network. ``PolicyFetcher`` retrieves
the two policy documents for a site origin; a site that has none is treated
as fully crawlable.
"""

import re
from typing import List
from urllib.parse import urlsplit, urlunsplit
from xml.etree import ElementTree

import httpx
import logfire

from crawlrag.constants import (
    CRAWLER_USER_AGENT,
    POLICY_FETCH_TIMEOUT_SECONDS,
    ROBOTS_TXT_PATH,
    SITEMAP_PATH,
)
from crawlrag.models.crawl_models import RobotsRules

_LOC_PATTERN = re.compile(r"<loc>\s*([^<]+?)\s*</loc>", re.IGNORECASE)


def _split_directive(line: str) -> tuple[str, str] | None:
    line = line.split("#", 1)[0].strip()
    if ":" not in line:
        return None
    name, _, value = line.partition(":")
    return name.strip().lower(), value.strip()


def _parse_delay_ms(value: str) -> int:
    try:
        seconds = float(value)
    except ValueError:
        return 0
    if seconds != seconds or seconds < 0:
        return 0
    return int(seconds * 1000)


def parse_robots(text: str) -> RobotsRules:
    """Parse the ``User-agent: *`` block of a robots.txt file.

    Rules of other user agents are ignored. ``Crawl-delay`` is given in
    seconds and returned in milliseconds.
    """
    disallow: List[str] = []
    allow: List[str] = []
    crawl_delay_ms = 0
    relevant = False

    for raw_line in (text or "").splitlines():
        directive = _split_directive(raw_line)
        if directive is None:
            continue
        name, value = directive

        if name == "user-agent":
            relevant = value == "*"
        elif not relevant:
            continue
        elif name == "disallow":
            if value:
                disallow.append(value)
        elif name == "allow":
            if value:
                allow.append(value)
        elif name == "crawl-delay":
            crawl_delay_ms = _parse_delay_ms(value)

    return RobotsRules(
        disallow=tuple(disallow), allow=tuple(allow), crawl_delay_ms=crawl_delay_ms
    )


def is_allowed(url: str, rules: RobotsRules) -> bool:
    """Return True when ``url`` may be fetched under ``rules``.

    A path under a ``Disallow`` prefix is blocked unless any ``Allow`` prefix
    also matches it. Allow wins regardless of which prefix is longer.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.scheme or not parts.netloc:
        return False

    path = parts.path or "/"
    for disallowed in rules.disallow:
        if path.startswith(disallowed):
            return any(path.startswith(allowed) for allowed in rules.allow)
    return True


def parse_sitemap(xml_text: str) -> List[str]:
    """Extract every ``<loc>`` value from a sitemap or sitemap-index document."""
    if not xml_text or not xml_text.strip():
        return []
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError:
        # Tolerate slightly broken sitemaps
        return [match.strip() for match in _LOC_PATTERN.findall(xml_text)]

    ns = root.tag.split("}")[0] + "}" if root.tag.startswith("{") else ""
    return [elem.text.strip() for elem in root.iter(f"{ns}loc") if elem.text and elem.text.strip()]


def _origin_url(url: str, path: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class PolicyFetcher:
    """Fetch robots.txt and sitemap.xml for the origin of a URL."""

    def __init__(
        self,
        timeout: float = POLICY_FETCH_TIMEOUT_SECONDS,
        user_agent: str = CRAWLER_USER_AGENT,
    ):
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent}

    async def _get_text(self, url: str) -> str | None:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers=self._headers,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logfire.info("Policy document unavailable", url=url, error=str(e))
            return None

        if response.status_code != 200:
            logfire.info(
                "Policy document not found", url=url, status_code=response.status_code
            )
            return None
        return response.text

    async def fetch_robots(self, url: str) -> RobotsRules | None:
        """Rules for the site of ``url``, or None when it has no robots.txt."""
        robots_url = _origin_url(url, ROBOTS_TXT_PATH)
        text = await self._get_text(robots_url)
        if text is None:
            return None
        rules = parse_robots(text)
        logfire.info(
            "robots.txt parsed",
            url=robots_url,
            disallow_count=len(rules.disallow),
            allow_count=len(rules.allow),
            crawl_delay_ms=rules.crawl_delay_ms,
        )
        return rules

    async def fetch_sitemap(self, url: str) -> List[str]:
        """URLs listed in the site's /sitemap.xml (empty when absent)."""
        sitemap_url = _origin_url(url, SITEMAP_PATH)
        text = await self._get_text(sitemap_url)
        if text is None:
            return []
        urls = parse_sitemap(text)
        logfire.info("Sitemap parsed", url=sitemap_url, url_count=len(urls))
        return urls
