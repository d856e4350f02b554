"""Tests for the crawl-and-ingest pipeline."""

import asyncio
import re

import psycopg
import pytest

from crawlrag.db.memory_store import MemoryStorage
from crawlrag.errors import ProviderFailure, StorageUnavailable, ToolTimeout, ValidationFailure
from crawlrag.models.crawl_models import CrawlOptions
from crawlrag.models.scraper_models import ScrapedPage
from crawlrag.services.chunker import TextChunker
from crawlrag.services.crawler import WebCrawler
from crawlrag.services.ingestion import (
    CRAWLER_SOURCE,
    IngestionService,
    chunk_document_id,
    chunk_id_prefix,
)
from crawlrag.services.pipeline import Err, Ok
from crawlrag.services.retrieval import RetrievalOrchestrator
from tests.fakes import FakePolicyFetcher, FakeScraper, KeywordEmbedder, RecordingCompleter

SITE = {
    "https://example.com/": ["/guide"],
    "https://example.com/guide": ScrapedPage(
        url="https://example.com/guide",
        title="Guide",
        content="Python crawler guide. " * 30,
    ),
}

OPTIONS = CrawlOptions(max_depth=1, crawl_delay_ms=0)


def make_crawler(site=SITE):
    return WebCrawler(scraper=FakeScraper(site), policy_fetcher=FakePolicyFetcher())


class SlowCrawler:
    async def crawl(self, start_url, options=None, on_progress=None):
        await asyncio.sleep(10)


class BrokenStorage(MemoryStorage):
    async def add_document(self, document, embedding):
        raise psycopg.OperationalError("server closed the connection unexpectedly")


class QuotaExceededEmbedder(KeywordEmbedder):
    async def embed(self, text):
        raise ProviderFailure("Embedding with test-model failed: quota exceeded")


def single_page_site(content):
    return {
        "https://example.com/": ScrapedPage(
            url="https://example.com/", title="Guide", content=content
        )
    }


class TestChunkDocumentId:
    def test_stable_per_url_and_index(self):
        first = chunk_document_id("https://example.com/a", 0)
        assert first == chunk_document_id("https://example.com/a", 0)
        assert first != chunk_document_id("https://example.com/a", 1)
        assert first != chunk_document_id("https://example.com/b", 0)
        assert re.fullmatch(r"crawled-[0-9a-f]{12}-0", first)
        assert first.startswith(chunk_id_prefix("https://example.com/a"))


class TestIngestionService:
    """Test IngestionService.crawl_and_ingest()."""

    @pytest.mark.asyncio
    async def test_stores_every_chunk(self, orchestrator):
        service = IngestionService(make_crawler(), orchestrator, TextChunker(max_chars=300, overlap=50))

        result = await service.crawl_and_ingest("https://example.com/", OPTIONS)

        assert isinstance(result, Ok)
        report = result.value
        assert report.start_url == "https://example.com/"
        assert report.pages_crawled == 2
        assert report.errors == []
        # Home page is one chunk, the guide is several
        assert report.chunks_stored == len(report.document_ids) > 2
        assert report.document_ids[0] == chunk_document_id("https://example.com/", 0)
        assert await orchestrator.document_count() == report.chunks_stored

    @pytest.mark.asyncio
    async def test_chunk_metadata(self, orchestrator, memory_storage):
        service = IngestionService(make_crawler(), orchestrator)
        await service.crawl_and_ingest("https://example.com/", OPTIONS)

        documents = {d.id: d for d in await memory_storage.list_documents()}
        guide = documents[chunk_document_id("https://example.com/guide", 0)]
        assert guide.metadata["url"] == "https://example.com/guide"
        assert guide.metadata["title"] == "Guide"
        assert guide.metadata["depth"] == 1
        assert guide.metadata["source"] == CRAWLER_SOURCE
        assert guide.metadata["chunk_index"] == 0
        assert guide.metadata["total_chunks"] == 1
        assert "crawled_at" in guide.metadata

    @pytest.mark.asyncio
    async def test_reingest_updates_in_place(self, orchestrator, memory_storage):
        service = IngestionService(make_crawler(), orchestrator)
        await service.crawl_and_ingest("https://example.com/", OPTIONS)
        count = await orchestrator.document_count()

        await service.crawl_and_ingest("https://example.com/", OPTIONS)

        documents = await memory_storage.list_documents()
        assert len(documents) == count
        assert {d.version for d in documents} == {2}

    @pytest.mark.asyncio
    async def test_crawl_errors_are_reported(self, orchestrator):
        site = {"https://example.com/": ["/missing", "/guide"], **{k: v for k, v in SITE.items() if k != "https://example.com/"}}
        service = IngestionService(make_crawler(site), orchestrator)

        result = await service.crawl_and_ingest("https://example.com/", OPTIONS)

        assert result.value.errors == ["Failed to scrape https://example.com/missing: HTTP 404"]
        assert result.value.pages_crawled == 2

    @pytest.mark.asyncio
    async def test_invalid_url(self, orchestrator):
        scraper = FakeScraper(SITE)
        crawler = WebCrawler(scraper=scraper, policy_fetcher=FakePolicyFetcher())
        service = IngestionService(crawler, orchestrator)

        result = await service.crawl_and_ingest("ftp://example.com/", OPTIONS)

        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationFailure)
        assert scraper.calls == []

    @pytest.mark.asyncio
    async def test_crawl_timeout(self, orchestrator):
        service = IngestionService(SlowCrawler(), orchestrator)

        result = await service.crawl_and_ingest("https://example.com/", OPTIONS, timeout_s=0.01)

        assert isinstance(result, Err)
        assert isinstance(result.error, ToolTimeout)
        assert result.error.operation == "crawl"
        assert await orchestrator.document_count() == 0

    @pytest.mark.asyncio
    async def test_uninitialized_storage(self):
        orchestrator = RetrievalOrchestrator(MemoryStorage(), KeywordEmbedder(), RecordingCompleter())
        service = IngestionService(make_crawler(), orchestrator)

        result = await service.crawl_and_ingest("https://example.com/", OPTIONS)

        assert isinstance(result, Err)
        assert isinstance(result.error, StorageUnavailable)

    @pytest.mark.asyncio
    async def test_database_error_becomes_storage_unavailable(self):
        storage = BrokenStorage()
        await storage.initialize()
        orchestrator = RetrievalOrchestrator(storage, KeywordEmbedder(), RecordingCompleter())
        service = IngestionService(make_crawler(), orchestrator)

        result = await service.crawl_and_ingest("https://example.com/", OPTIONS)

        assert isinstance(result, Err)
        assert isinstance(result.error, StorageUnavailable)
        assert "Failed to store crawled pages" in str(result.error)

    @pytest.mark.asyncio
    async def test_shorter_recrawl_removes_stale_chunks(self, orchestrator, memory_storage):
        chunker = TextChunker(max_chars=300, overlap=50)
        options = CrawlOptions(max_depth=0, crawl_delay_ms=0)
        note = await orchestrator.add_document("Manual python note.", document_id="note-1")

        first = await IngestionService(
            make_crawler(single_page_site("Python crawler guide. " * 60)), orchestrator, chunker
        ).crawl_and_ingest("https://example.com/", options)
        assert first.value.chunks_stored > 1
        assert first.value.stale_chunks_removed == 0

        second = await IngestionService(
            make_crawler(single_page_site("Python crawler guide, now much shorter.")),
            orchestrator,
            chunker,
        ).crawl_and_ingest("https://example.com/", options)

        assert second.value.chunks_stored == 1
        assert second.value.stale_chunks_removed == first.value.chunks_stored - 1
        documents = {d.id: d for d in await memory_storage.list_documents()}
        assert set(documents) == {note.id, chunk_document_id("https://example.com/", 0)}
        assert documents[chunk_document_id("https://example.com/", 0)].content == (
            "Python crawler guide, now much shorter."
        )

    @pytest.mark.asyncio
    async def test_pages_missing_from_recrawl_are_kept(self, orchestrator, memory_storage):
        service = IngestionService(make_crawler(), orchestrator)
        await service.crawl_and_ingest("https://example.com/", OPTIONS)
        count = await orchestrator.document_count()

        result = await service.crawl_and_ingest(
            "https://example.com/", CrawlOptions(max_depth=0, crawl_delay_ms=0)
        )

        assert result.value.stale_chunks_removed == 0
        assert await orchestrator.document_count() == count

    @pytest.mark.asyncio
    async def test_embedding_failure_becomes_err(self, memory_storage):
        orchestrator = RetrievalOrchestrator(
            memory_storage, QuotaExceededEmbedder(), RecordingCompleter()
        )
        service = IngestionService(make_crawler(), orchestrator)

        result = await service.crawl_and_ingest("https://example.com/", OPTIONS)

        assert isinstance(result, Err)
        assert isinstance(result.error, ProviderFailure)
        assert "quota exceeded" in str(result.error)
