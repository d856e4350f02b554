"""Typer-based command line interface: crawl, ask, migrate."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent.parent
from dotenv import load_dotenv

load_dotenv(_project_root / ".env")
load_dotenv(_project_root / ".env.local")

import asyncio
from typing import List, Optional

import typer

from crawlrag.config import Settings, get_settings
from crawlrag.db.migrate import run_migrations
from crawlrag.db.storage import create_storage
from crawlrag.errors import CrawlRagError, StorageUnavailable, ValidationFailure
from crawlrag.logging_config import setup_logging
from crawlrag.models.crawl_models import CrawlOptions, CrawlProgress, CrawlResult, IngestReport
from crawlrag.models.rag_models import RAGResponse
from crawlrag.services.completion_service import PydanticAICompleter
from crawlrag.services.crawler import WebCrawler
from crawlrag.services.embedding_service import PydanticAIEmbedder
from crawlrag.services.ingestion import IngestionService
from crawlrag.services.pipeline import Err
from crawlrag.services.policy import PolicyFetcher
from crawlrag.services.retrieval import RetrievalOrchestrator
from crawlrag.services.scraper import HttpxScraper

app = typer.Typer(help="Crawl websites and answer questions about them.")

_LEVEL_COLORS = {
    "high": typer.colors.GREEN,
    "medium": typer.colors.YELLOW,
    "low": typer.colors.RED,
}


@app.callback()
def _configure() -> None:
    """Configure logging before any command runs."""
    setup_logging(get_settings())


def _build_crawler(settings: Settings) -> WebCrawler:
    return WebCrawler(
        scraper=HttpxScraper(timeout=settings.scraper_timeout_seconds),
        policy_fetcher=PolicyFetcher(timeout=settings.scraper_timeout_seconds),
    )


def _build_orchestrator(settings: Settings) -> RetrievalOrchestrator:
    return RetrievalOrchestrator(
        storage=create_storage(settings.storage_config()),
        embedder=PydanticAIEmbedder(settings.embedding_model),
        completer=PydanticAICompleter(settings.completion_model),
        similarity_gate=settings.similarity_gate,
        search_limit=settings.search_result_limit,
    )


def _build_options(
    settings: Settings,
    max_depth: Optional[int],
    max_pages: Optional[int],
    include: Optional[List[str]],
    exclude: Optional[List[str]],
    respect_robots: bool,
    sitemap: bool,
    delay_ms: Optional[int],
) -> CrawlOptions:
    return CrawlOptions(
        max_depth=settings.crawl_max_depth if max_depth is None else max_depth,
        max_pages=settings.crawl_max_pages if max_pages is None else max_pages,
        include_patterns=include or [],
        exclude_patterns=exclude or [],
        respect_robots_txt=respect_robots,
        follow_sitemap=sitemap,
        crawl_delay_ms=settings.crawl_delay_ms if delay_ms is None else delay_ms,
    )


def _echo_progress(progress: CrawlProgress) -> None:
    typer.echo(
        f"  [{progress.pages_visited + 1}] depth {progress.depth}: {progress.current_url} "
        f"({progress.total_queued} queued)"
    )


def _echo_crawl_result(result: CrawlResult) -> None:
    typer.echo(
        f"Crawled {result.pages_visited} page(s) from {result.start_url} "
        f"in {result.crawl_time_ms / 1000:.1f}s"
    )
    for page in result.pages:
        typer.echo(f"  - {page.url} [{page.title or 'untitled'}] {len(page.content)} chars")
    for error in result.errors:
        typer.echo(typer.style(f"  ! {error}", fg=typer.colors.YELLOW))


def _echo_ingest_report(report: IngestReport) -> None:
    typer.echo(
        f"Stored {report.chunks_stored} chunk(s) from {report.pages_crawled} page(s) "
        f"of {report.start_url}"
    )
    if report.stale_chunks_removed:
        typer.echo(f"Removed {report.stale_chunks_removed} stale chunk(s) of re-crawled pages")
    for error in report.errors:
        typer.echo(typer.style(f"  ! {error}", fg=typer.colors.YELLOW))


def _echo_answer(response: RAGResponse) -> None:
    typer.echo(response.answer)
    typer.echo("")
    level = response.confidence_level.value
    typer.echo(
        typer.style(
            f"Confidence: {level} ({response.confidence:.2f})",
            fg=_LEVEL_COLORS.get(level, typer.colors.WHITE),
        )
    )
    typer.echo(response.confidence_explanation)
    if response.sources:
        typer.echo("Sources:")
        for source in response.sources:
            typer.echo(f"  - {source}")


async def _crawl_only(settings: Settings, url: str, options: CrawlOptions) -> CrawlResult:
    crawler = _build_crawler(settings)
    return await crawler.crawl(url, options, on_progress=_echo_progress)


async def _crawl_and_ingest(
    settings: Settings, url: str, options: CrawlOptions, timeout: Optional[float]
) -> IngestReport:
    orchestrator = _build_orchestrator(settings)
    await orchestrator.initialize()
    try:
        service = IngestionService(_build_crawler(settings), orchestrator)
        result = await service.crawl_and_ingest(
            url, options, timeout_s=timeout, on_progress=_echo_progress
        )
    finally:
        await orchestrator.close()
    if isinstance(result, Err):
        raise result.error
    return result.value


async def _ask(
    settings: Settings, question: str, url: Optional[str], options: CrawlOptions
) -> RAGResponse:
    orchestrator = _build_orchestrator(settings)
    await orchestrator.initialize()
    try:
        if url:
            service = IngestionService(_build_crawler(settings), orchestrator)
            result = await service.crawl_and_ingest(url, options, on_progress=_echo_progress)
            if isinstance(result, Err):
                raise result.error
            _echo_ingest_report(result.value)
        return await orchestrator.query(question)
    finally:
        await orchestrator.close()


@app.command()
def crawl(
    url: str = typer.Argument(..., help="Start URL"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, help="Maximum link depth"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Maximum pages to fetch"),
    include: Optional[List[str]] = typer.Option(
        None, "--include", help="Only follow URLs containing this substring (repeatable)"
    ),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", help="Skip URLs containing this substring (repeatable)"
    ),
    respect_robots: bool = typer.Option(
        True, "--respect-robots/--ignore-robots", help="Honor robots.txt"
    ),
    sitemap: bool = typer.Option(False, "--sitemap", help="Seed the crawl from /sitemap.xml"),
    delay_ms: Optional[int] = typer.Option(None, "--delay-ms", min=0, help="Delay between fetches"),
    ingest: bool = typer.Option(False, "--ingest", help="Chunk, embed and store the pages"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Abort the crawl after this many seconds (with --ingest)"
    ),
):
    """Crawl a website, optionally storing its pages for question answering."""
    settings = get_settings()
    try:
        options = _build_options(
            settings, max_depth, max_pages, include, exclude, respect_robots, sitemap, delay_ms
        )
        if ingest:
            report = asyncio.run(_crawl_and_ingest(settings, url, options, timeout))
            _echo_ingest_report(report)
        else:
            result = asyncio.run(_crawl_only(settings, url, options))
            _echo_crawl_result(result)
    except ValidationFailure as e:
        typer.echo(f"Invalid URL: {e}", err=True)
        raise typer.Exit(2) from e
    except CrawlRagError as e:
        typer.echo(f"Crawl failed: {e}", err=True)
        raise typer.Exit(1) from e


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer"),
    url: Optional[str] = typer.Option(
        None, "--url", help="Crawl and store this site before answering"
    ),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, help="Maximum link depth"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Maximum pages to fetch"),
):
    """Answer a question from the stored documents."""
    settings = get_settings()
    options = _build_options(settings, max_depth, max_pages, None, None, True, False, None)
    try:
        response = asyncio.run(_ask(settings, question, url, options))
    except StorageUnavailable as e:
        typer.echo(f"Storage unavailable: {e}", err=True)
        raise typer.Exit(1) from e
    except CrawlRagError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    _echo_answer(response)


@app.command()
def migrate():
    """Create the Postgres schema (idempotent)."""
    settings = get_settings()
    run_migrations(settings.database_url or "", settings.embedding_dimensions)


if __name__ == "__main__":
    app()
