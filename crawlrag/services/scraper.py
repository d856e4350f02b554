"""Default fetch collaborator: httpx for transport, BeautifulSoup for parsing.

JavaScript rendering is out of scope; pages are parsed as served.
"""

import re
from typing import List, Protocol
from urllib.parse import urlsplit

import httpx
import logfire
from bs4 import BeautifulSoup

from crawlrag.constants import CRAWLER_USER_AGENT, DEFAULT_HTTP_TIMEOUT_SECONDS
from crawlrag.models.scraper_models import ScrapedPage
from crawlrag.services.link_normalizer import extract_links


class Scraper(Protocol):
    """Fetch collaborator consumed by the crawler."""

    async def scrape(self, url: str) -> ScrapedPage:
        """Fetch and parse one page.

        Failures are reported through ``ScrapedPage.error``, never raised.
        """
        ...


class PageParser:
    """Parse HTML pages to extract text, title and links."""

    # Extensions to skip when crawling (binary or non-page resources)
    _NON_HTML_EXTENSIONS = frozenset(
        (
            ".pdf",
            ".jpg",
            ".jpeg",
            ".png",
            ".gif",
            ".webp",
            ".svg",
            ".ico",
            ".zip",
            ".tar",
            ".gz",
            ".css",
            ".js",
            ".json",
            ".mp3",
            ".mp4",
            ".webm",
            ".woff",
            ".woff2",
            ".ttf",
            ".eot",
        )
    )

    def parse(self, html: str, current_url: str) -> tuple[str, List[str], str]:
        """Parse HTML and extract text, links, and title.

        Args:
            html: Raw HTML content
            current_url: The URL the HTML was fetched from (for resolving relative links)

        Returns:
            Tuple of (normalized_text, absolute_links, page_title)
        """
        soup = BeautifulSoup(html, "html.parser")

        title = ""
        if soup.title and soup.title.string:
            title = soup.title.string.strip()

        links = self._extract_links(soup, current_url)

        # Remove non-content elements
        for tag in soup(["script", "style", "nav", "footer", "noscript"]):
            tag.decompose()

        text = re.sub(r"\s+", " ", soup.get_text(" ")).strip()
        return text, links, title

    def _extract_links(self, soup: BeautifulSoup, current_url: str) -> List[str]:
        """Absolute page links in document order, without binary resources."""
        return [
            link
            for link in extract_links(soup, current_url)
            if not any(
                urlsplit(link).path.lower().endswith(ext) for ext in self._NON_HTML_EXTENSIONS
            )
        ]


class HttpxScraper:
    """Fetch pages with httpx and parse them with ``PageParser``."""

    DEFAULT_HEADERS = {
        "User-Agent": CRAWLER_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(
        self,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        parser: PageParser | None = None,
    ):
        """Initialize the scraper.

        Args:
            timeout: HTTP timeout in seconds
            headers: Optional custom headers (defaults to crawler headers)
            parser: HTML parser (defaults to PageParser)
        """
        self._timeout = timeout
        self._headers = headers or self.DEFAULT_HEADERS.copy()
        self._parser = parser or PageParser()

    async def scrape(self, url: str) -> ScrapedPage:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers=self._headers,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            reason = f"HTTP {e.response.status_code}"
            logfire.warning("Page fetch rejected", url=url, status_code=e.response.status_code)
            return ScrapedPage.failed(url, reason)
        except httpx.HTTPError as e:
            logfire.warning("Page fetch failed", url=url, error=str(e), error_type=type(e).__name__)
            return ScrapedPage.failed(url, str(e) or type(e).__name__)

        html = response.text
        content_type = response.headers.get("content-type", "")
        if "html" in content_type or not content_type:
            text, links, title = self._parser.parse(html, str(response.url))
        else:
            text, links, title = re.sub(r"\s+", " ", html).strip(), [], ""

        logfire.info(
            "Page fetched",
            url=url,
            status_code=response.status_code,
            content_length=len(html),
            link_count=len(links),
        )
        return ScrapedPage(url=url, title=title, content=text, links=links)
