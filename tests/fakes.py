"""Deterministic fakes for the crawler and retrieval collaborators."""

from typing import Dict, List

from crawlrag.models.document_models import Document, SearchResult
from crawlrag.models.scraper_models import ScrapedPage


class FakeScraper:
    """Scraper serving pages from a dict keyed by URL.

    Values are either a list of links (page content is generated) or a
    ScrapedPage. Unknown URLs come back as a 404 failure.
    """

    def __init__(self, site: Dict[str, object], raise_for: tuple = ()):
        self.site = site
        self.raise_for = set(raise_for)
        self.calls: List[str] = []

    async def scrape(self, url: str) -> ScrapedPage:
        self.calls.append(url)
        if url in self.raise_for:
            raise RuntimeError("connection reset")
        entry = self.site.get(url)
        if entry is None:
            return ScrapedPage.failed(url, "HTTP 404")
        if isinstance(entry, ScrapedPage):
            return entry
        return ScrapedPage(
            url=url,
            title=f"Title of {url}",
            content=f"Content of {url}",
            links=list(entry),
        )


class FakePolicyFetcher:
    """Policy fetcher returning canned robots rules and sitemap URLs."""

    def __init__(self, rules=None, sitemap_urls=None):
        self.rules = rules
        self.sitemap_urls = list(sitemap_urls or [])
        self.robots_calls: List[str] = []
        self.sitemap_calls: List[str] = []

    async def fetch_robots(self, url: str):
        self.robots_calls.append(url)
        return self.rules

    async def fetch_sitemap(self, url: str):
        self.sitemap_calls.append(url)
        return list(self.sitemap_urls)


class KeywordEmbedder:
    """Deterministic embedder: one dimension per vocabulary word.

    Texts sharing no vocabulary word get orthogonal vectors, identical texts
    get identical vectors.
    """

    VOCABULARY = (
        "python",
        "crawler",
        "robots",
        "sitemap",
        "vector",
        "postgres",
        "pricing",
        "weather",
        "recipe",
        "football",
    )

    def __init__(self):
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        self.calls.append(text)
        words = text.lower().split()
        vector = [float(sum(1 for w in words if w.strip(".,?!") == v)) for v in self.VOCABULARY]
        # Extra dimension keeps vocabulary-free texts away from the zero vector
        vector.append(0.0 if any(vector) else 1.0)
        return vector


class RecordingCompleter:
    """Completion provider that records prompts and returns a fixed answer."""

    def __init__(self, answer: str = "Synthesized answer."):
        self.answer = answer
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


class StubStorage:
    """Storage returning preset search results, for exact-similarity tests."""

    storage_type = "stub"

    def __init__(self, results: List[SearchResult] | None = None):
        self.results = list(results or [])
        self.added: List[tuple[Document, List[float]]] = []
        self.deleted: List[str] = []
        self.initialized = False
        self.closed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def add_document(self, document: Document, embedding: List[float]) -> None:
        self.added.append((document, embedding))

    async def search(self, embedding: List[float], limit: int) -> List[SearchResult]:
        return sorted(self.results, key=lambda r: r.similarity, reverse=True)[:limit]

    async def delete_document(self, document_id: str) -> None:
        self.deleted.append(document_id)

    async def list_documents(self) -> List[Document]:
        return [Document(**r.model_dump(exclude={"similarity"})) for r in self.results]

    async def close(self) -> None:
        self.closed = True


def make_result(
    doc_id: str, similarity: float, url: str | None = None, **metadata
) -> SearchResult:
    if url is not None:
        metadata["url"] = url
    return SearchResult(
        id=doc_id,
        content=f"Content of {doc_id}",
        metadata=metadata,
        similarity=similarity,
    )


