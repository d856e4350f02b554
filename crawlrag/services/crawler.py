"""Policy-gated breadth-first crawler.

One crawl is drained by a single sequential worker: the rate-limit sleep
sits between consecutive fetches, so there are no parallel requests to the
crawled origin. Per-page failures are recorded in ``CrawlResult.errors`` and
the crawl moves on; the only early exit is a start URL that robots.txt
disallows.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Iterable, List

import logfire

from crawlrag.errors import FetchFailure, PolicyViolation
from crawlrag.models.crawl_models import (
    CrawledPage,
    CrawlOptions,
    CrawlProgress,
    CrawlResult,
    RobotsRules,
)
from crawlrag.models.scraper_models import ScrapedPage
from crawlrag.services.link_normalizer import (
    dedup_key,
    filter_by_domain,
    hostname_of,
    normalize_url,
)
from crawlrag.services.policy import PolicyFetcher, is_allowed
from crawlrag.services.scraper import HttpxScraper, Scraper
from crawlrag.services.url_validator import validate_crawl_url

ProgressCallback = Callable[[CrawlProgress], None]


@dataclass
class CrawlState:
    """Frontier of a single crawl. Discarded when the crawl returns."""

    visited: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)
    queued: set[str] = field(default_factory=set)
    queue: Deque[tuple[str, int]] = field(default_factory=deque)
    request_count: int = 0
    last_request_time: float | None = None

    def enqueue(self, url: str, depth: int) -> bool:
        key = dedup_key(url)
        if key in self.visited or key in self.failed or key in self.queued:
            return False
        self.queued.add(key)
        self.queue.append((url, depth))
        return True

    def dequeue(self) -> tuple[str, int, str]:
        url, depth = self.queue.popleft()
        key = dedup_key(url)
        self.queued.discard(key)
        return url, depth, key


def matches_patterns(url: str, include: Iterable[str], exclude: Iterable[str]) -> bool:
    """Exclude patterns win; an empty include list admits everything else."""
    if any(pattern in url for pattern in exclude):
        return False
    include = list(include)
    if not include:
        return True
    return any(pattern in url for pattern in include)


class WebCrawler:
    """Breadth-first crawler honoring robots.txt, sitemaps and a crawl delay.

    The fetch collaborator, the policy fetcher, the clock and the sleep
    function are injected so each can be replaced in tests.
    """

    def __init__(
        self,
        scraper: Scraper | None = None,
        policy_fetcher: PolicyFetcher | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._scraper = scraper or HttpxScraper()
        self._policy = policy_fetcher or PolicyFetcher()
        self._clock = clock
        self._sleep = sleep

    async def crawl(
        self,
        start_url: str,
        options: CrawlOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CrawlResult:
        """Crawl from ``start_url`` within the limits of ``options``.

        Raises:
            ValidationFailure: the start URL is malformed or not crawlable
        """
        options = options or CrawlOptions()
        start_url = validate_crawl_url(start_url)
        started = time.perf_counter()
        result = CrawlResult(start_url=start_url)
        state = CrawlState()

        logfire.info(
            "Starting crawl",
            url=start_url,
            max_depth=options.max_depth,
            max_pages=options.max_pages,
            respect_robots_txt=options.respect_robots_txt,
            follow_sitemap=options.follow_sitemap,
        )

        rules: RobotsRules | None = None
        delay_ms = options.crawl_delay_ms
        if options.respect_robots_txt:
            rules = await self._policy.fetch_robots(start_url)
            if rules is not None and not is_allowed(start_url, rules):
                violation = PolicyViolation(start_url)
                result.errors.append(str(violation))
                result.crawl_time_ms = (time.perf_counter() - started) * 1000
                logfire.warning(
                    "Start URL disallowed by robots.txt",
                    url=start_url,
                    error_type=type(violation).__name__,
                )
                return result
            if rules is not None:
                delay_ms = max(delay_ms, rules.crawl_delay_ms)

        hostname = hostname_of(start_url)
        state.enqueue(start_url, 0)

        if options.follow_sitemap:
            sitemap_urls = filter_by_domain(await self._policy.fetch_sitemap(start_url), hostname)
            for url in sitemap_urls:
                state.enqueue(url, 1)

        while state.queue and result.pages_visited < options.max_pages:
            url, depth, key = state.dequeue()

            if key in state.visited or depth > options.max_depth:
                continue
            if not matches_patterns(url, options.include_patterns, options.exclude_patterns):
                continue
            if rules is not None and not is_allowed(url, rules):
                logfire.debug("Skipping URL disallowed by robots.txt", url=url)
                continue

            await self._wait_for_rate_limit(state, delay_ms)

            if on_progress is not None:
                on_progress(
                    CrawlProgress(
                        current_url=url,
                        depth=depth,
                        pages_visited=result.pages_visited,
                        total_queued=len(state.queue),
                    )
                )

            page = await self._fetch(url)
            state.request_count += 1

            if not page.ok:
                state.failed.add(key)
                result.errors.append(str(FetchFailure(url, page.error)))
                continue

            state.visited.add(key)
            links = self._same_site_links(page, url, hostname)
            result.pages.append(
                CrawledPage(
                    url=url,
                    title=page.title,
                    content=page.content,
                    depth=depth,
                    links=tuple(links),
                )
            )

            if depth < options.max_depth:
                for link in links:
                    state.enqueue(link, depth + 1)

        result.crawl_time_ms = (time.perf_counter() - started) * 1000
        logfire.info(
            "Crawl completed",
            url=start_url,
            pages_visited=result.pages_visited,
            request_count=state.request_count,
            error_count=len(result.errors),
            crawl_time_ms=result.crawl_time_ms,
        )
        return result

    async def _fetch(self, url: str) -> ScrapedPage:
        try:
            return await self._scraper.scrape(url)
        except Exception as e:
            # A misbehaving collaborator must not abort the crawl
            logfire.warning(
                "Scraper raised instead of reporting an error",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ScrapedPage.failed(url, str(e) or type(e).__name__)

    async def _wait_for_rate_limit(self, state: CrawlState, delay_ms: int) -> None:
        if delay_ms > 0 and state.last_request_time is not None:
            elapsed_ms = (self._clock() - state.last_request_time) * 1000
            if elapsed_ms < delay_ms:
                await self._sleep((delay_ms - elapsed_ms) / 1000)
        state.last_request_time = self._clock()

    @staticmethod
    def _same_site_links(page: ScrapedPage, page_url: str, hostname: str) -> List[str]:
        seen: set[str] = set()
        resolved: List[str] = []
        for link in page.links:
            absolute = normalize_url(link, page_url)
            if absolute and absolute not in seen:
                seen.add(absolute)
                resolved.append(absolute)
        return filter_by_domain(resolved, hostname)
