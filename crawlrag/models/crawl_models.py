"""Crawl options, crawl results and robots.txt rules."""

from dataclasses import dataclass, field
from typing import List

from pydantic import BaseModel, Field

from crawlrag.constants import (
    DEFAULT_CRAWL_DELAY_MS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
)


class CrawlOptions(BaseModel):
    """Crawl policy passed through unchanged from the CLI/API layer."""

    max_depth: int = Field(
        default=DEFAULT_MAX_DEPTH, ge=0, description="Maximum link depth from the start URL"
    )
    max_pages: int = Field(
        default=DEFAULT_MAX_PAGES, ge=1, description="Maximum number of pages to fetch"
    )
    include_patterns: List[str] = Field(
        default_factory=list,
        description="If non-empty, only URLs containing one of these substrings are fetched",
    )
    exclude_patterns: List[str] = Field(
        default_factory=list,
        description="URLs containing any of these substrings are skipped",
    )
    respect_robots_txt: bool = Field(
        default=True, description="Honor the site's robots.txt (User-agent: *)"
    )
    follow_sitemap: bool = Field(
        default=False, description="Seed the frontier with /sitemap.xml URLs at depth 1"
    )
    crawl_delay_ms: int = Field(
        default=DEFAULT_CRAWL_DELAY_MS, ge=0, description="Minimum delay between fetches"
    )


@dataclass(frozen=True)
class RobotsRules:
    """Rules of the ``User-agent: *`` block of a robots.txt file."""

    disallow: tuple[str, ...] = ()
    allow: tuple[str, ...] = ()
    crawl_delay_ms: int = 0


@dataclass(frozen=True)
class CrawledPage:
    """A successfully fetched page. Never mutated after creation."""

    url: str
    title: str
    content: str
    depth: int
    links: tuple[str, ...] = ()


@dataclass
class CrawlResult:
    """Outcome of one crawl. Partial results with errors are normal."""

    start_url: str
    pages: List[CrawledPage] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    crawl_time_ms: float = 0.0

    @property
    def pages_visited(self) -> int:
        return len(self.pages)


@dataclass(frozen=True)
class CrawlProgress:
    """Snapshot handed to a progress callback before each fetch."""

    current_url: str
    depth: int
    pages_visited: int
    total_queued: int


@dataclass
class IngestReport:
    """Summary of a crawl whose pages were chunked and stored."""

    start_url: str
    pages_crawled: int = 0
    chunks_stored: int = 0
    stale_chunks_removed: int = 0
    document_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    crawl_time_ms: float = 0.0
