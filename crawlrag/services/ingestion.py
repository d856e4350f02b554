"""Crawl a site and store its pages as embedded chunks."""

import hashlib
from datetime import datetime, timezone
from typing import Callable

import logfire
import psycopg

from crawlrag.errors import ProviderFailure, StorageUnavailable, ValidationFailure
from crawlrag.models.crawl_models import (
    CrawledPage,
    CrawlOptions,
    CrawlProgress,
    CrawlResult,
    IngestReport,
)
from crawlrag.services.chunker import TextChunker
from crawlrag.services.crawler import WebCrawler
from crawlrag.services.pipeline import Err, Ok, Result, run_steps, with_timeout
from crawlrag.services.retrieval import RetrievalOrchestrator
from crawlrag.services.url_validator import validate_crawl_url

CRAWLER_SOURCE = "web-crawler"


def chunk_id_prefix(url: str) -> str:
    """Shared prefix of every chunk id stored for ``url``."""
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]
    return f"crawled-{digest}-"


def chunk_document_id(url: str, chunk_index: int) -> str:
    """Stable id for a page chunk, so re-crawling a page updates its documents."""
    return f"{chunk_id_prefix(url)}{chunk_index}"


class IngestionService:
    """Runs validate → crawl → chunk and store as one pipeline."""

    def __init__(
        self,
        crawler: WebCrawler,
        orchestrator: RetrievalOrchestrator,
        chunker: TextChunker | None = None,
    ):
        self._crawler = crawler
        self._orchestrator = orchestrator
        self._chunker = chunker or TextChunker()

    async def crawl_and_ingest(
        self,
        url: str,
        options: CrawlOptions | None = None,
        timeout_s: float | None = None,
        on_progress: Callable[[CrawlProgress], None] | None = None,
    ) -> Result:
        """
        Crawl ``url`` and store every fetched page.

        Args:
            url: Start URL
            options: Crawl policy (defaults to CrawlOptions())
            timeout_s: Deadline for the crawl step (None waits indefinitely)
            on_progress: Called before each page fetch

        Returns:
            ``Ok(IngestReport)``, or ``Err`` holding a ValidationFailure,
            ToolTimeout, StorageUnavailable or ProviderFailure
        """
        options = options or CrawlOptions()

        async def validate(candidate: str) -> Result:
            try:
                return Ok(validate_crawl_url(candidate))
            except ValidationFailure as e:
                return Err(e)

        async def crawl(start_url: str) -> Result:
            return await with_timeout(
                self._crawler.crawl(start_url, options, on_progress), timeout_s, "crawl"
            )

        async def store(result: CrawlResult) -> Result:
            try:
                return Ok(await self._store_pages(result))
            except (StorageUnavailable, ProviderFailure) as e:
                return Err(e)
            except psycopg.Error as e:
                return Err(StorageUnavailable(f"Failed to store crawled pages: {e}"))

        with logfire.span("crawl_and_ingest", url=url):
            return await run_steps([validate, crawl, store], url)

    async def _store_pages(self, result: CrawlResult) -> IngestReport:
        report = IngestReport(
            start_url=result.start_url,
            pages_crawled=result.pages_visited,
            errors=list(result.errors),
            crawl_time_ms=result.crawl_time_ms,
        )
        crawled_at = datetime.now(timezone.utc).isoformat()

        current: dict[str, set[str]] = {}
        for page in result.pages:
            stored = await self._store_page(page, crawled_at)
            report.document_ids.extend(stored)
            current[chunk_id_prefix(page.url)] = set(stored)

        report.chunks_stored = len(report.document_ids)
        report.stale_chunks_removed = await self._remove_stale_chunks(current)
        logfire.info(
            "Crawl ingested",
            url=result.start_url,
            pages_crawled=report.pages_crawled,
            chunks_stored=report.chunks_stored,
            stale_chunks_removed=report.stale_chunks_removed,
            error_count=len(report.errors),
        )
        return report

    async def _store_page(self, page: CrawledPage, crawled_at: str) -> list[str]:
        chunks = self._chunker.chunk(page.content)
        stored = []
        for index, chunk in enumerate(chunks):
            document = await self._orchestrator.add_document(
                chunk,
                document_id=chunk_document_id(page.url, index),
                metadata={
                    "url": page.url,
                    "title": page.title,
                    "depth": page.depth,
                    "crawled_at": crawled_at,
                    "source": CRAWLER_SOURCE,
                    "chunk_index": index,
                    "total_chunks": len(chunks),
                },
            )
            stored.append(document.id)
        return stored

    async def _remove_stale_chunks(self, current: dict[str, set[str]]) -> int:
        """Delete chunks of re-crawled pages beyond what the latest crawl produced."""
        stale = []
        for document in await self._orchestrator.list_documents():
            prefix = document.id.rpartition("-")[0] + "-"
            if prefix in current and document.id not in current[prefix]:
                stale.append(document.id)

        for document_id in stale:
            await self._orchestrator.delete_document(document_id)
        if stale:
            logfire.info("Stale chunks removed", count=len(stale))
        return len(stale)
