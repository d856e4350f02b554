"""Retrieval orchestration: embed, search, gate, score, synthesize."""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, List

import logfire

from crawlrag.constants import (
    DEFAULT_SEARCH_RESULT_LIMIT,
    DEFAULT_SIMILARITY_GATE,
    INSUFFICIENT_INFORMATION_ANSWER,
)
from crawlrag.db.storage import StorageStrategy
from crawlrag.models.confidence_models import ConfidenceInput, ConfidenceLevel
from crawlrag.models.document_models import Document, SearchResult
from crawlrag.models.rag_models import RAGResponse
from crawlrag.services.completion_service import CompletionProvider
from crawlrag.services.confidence import calculate_confidence
from crawlrag.services.embedding_service import EmbeddingProvider
from crawlrag.services.link_normalizer import hostname_of

ANSWER_PROMPT_TEMPLATE = """Based on the following context, answer the question.
If the context doesn't contain enough information, say so.

Context:
{context}

Question: {question}

Answer:"""


def build_prompt(question: str, results: List[SearchResult]) -> str:
    """Prompt with the documents' content joined in descending similarity order."""
    ordered = sorted(results, key=lambda r: r.similarity, reverse=True)
    context = "\n\n".join(r.content for r in ordered)
    return ANSWER_PROMPT_TEMPLATE.format(context=context, question=question)


def collect_sources(results: List[SearchResult]) -> List[str]:
    """Full source of each result (url, then source, then id), deduplicated in order."""
    seen: set[str] = set()
    sources: List[str] = []
    for result in results:
        source = result.source()
        if source not in seen:
            seen.add(source)
            sources.append(source)
    return sources


def parse_timestamp(value: Any) -> datetime | Any:
    """ISO-8601 strings become datetimes; anything else is returned unchanged."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def build_confidence_input(
    question: str, results: List[SearchResult]
) -> ConfidenceInput:
    timestamps = []
    domains = []
    for result in results:
        raw = result.metadata.get("timestamp") or result.metadata.get("crawled_at")
        timestamps.append(parse_timestamp(raw))
        source = result.source()
        domains.append(hostname_of(source) or source)
    return ConfidenceInput(
        similarity_scores=[r.similarity for r in results],
        source_timestamps=timestamps,
        source_domains=domains,
        query_length=len(question),
        response_length=0,
    )


class RetrievalOrchestrator:
    """
    Answer questions from stored documents with a calibrated confidence.

    Candidates below the similarity gate are dropped before confidence is
    scored, so source-count and diversity bonuses cannot lift an answer built
    on nothing relevant.

    The orchestrator is constructed once at startup; ``initialize()`` and
    ``close()`` are explicit calls made by its owner.
    """

    def __init__(
        self,
        storage: StorageStrategy,
        embedder: EmbeddingProvider,
        completer: CompletionProvider,
        similarity_gate: float = DEFAULT_SIMILARITY_GATE,
        search_limit: int = DEFAULT_SEARCH_RESULT_LIMIT,
    ):
        """
        Args:
            storage: Backend holding documents and embeddings
            embedder: Embeds documents and questions
            completer: Synthesizes answers from the assembled prompt
            similarity_gate: Minimum raw similarity a candidate needs
            search_limit: Number of candidates fetched per question
        """
        self._storage = storage
        self._embedder = embedder
        self._completer = completer
        self._similarity_gate = similarity_gate
        self._search_limit = search_limit

    @property
    def storage_type(self) -> str:
        return self._storage.storage_type

    @property
    def similarity_gate(self) -> float:
        return self._similarity_gate

    async def initialize(self) -> None:
        await self._storage.initialize()
        logfire.info("Retrieval orchestrator initialized", storage_type=self.storage_type)

    async def close(self) -> None:
        await self._storage.close()

    async def add_document(
        self,
        content: str,
        document_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Document:
        """
        Embed and store one document.

        Args:
            content: Text to store
            document_id: Stable id (a random one is generated when omitted)
            metadata: Extra metadata; a ``timestamp`` is added unless present

        Returns:
            The stored document
        """
        document = Document(
            id=document_id or uuid.uuid4().hex,
            content=content,
            metadata={"timestamp": datetime.now(timezone.utc).isoformat(), **(metadata or {})},
        )
        embedding = await self._embedder.embed(content)
        await self._storage.add_document(document, embedding)
        return document

    async def list_documents(self) -> List[Document]:
        return await self._storage.list_documents()

    async def delete_document(self, document_id: str) -> None:
        await self._storage.delete_document(document_id)

    async def document_count(self) -> int:
        return len(await self._storage.list_documents())

    async def clear_documents(self) -> int:
        """Delete every stored document. Returns how many were deleted."""
        documents = await self._storage.list_documents()
        for document in documents:
            await self._storage.delete_document(document.id)
        logfire.info("Documents cleared", count=len(documents), storage_type=self.storage_type)
        return len(documents)

    async def query(self, question: str) -> RAGResponse:
        """
        Answer ``question`` from the stored documents.

        Args:
            question: Natural-language question

        Returns:
            RAGResponse; when nothing clears the similarity gate the answer is
            the fixed "not enough information" text and ``sources`` is empty
        """
        start = time.perf_counter()

        with logfire.span("rag_query", question_length=len(question)):
            embedding = await self._embedder.embed(question)
            candidates = await self._storage.search(embedding, self._search_limit)

            logfire.info(
                "Retrieved candidates",
                candidate_count=len(candidates),
                similarities=[round(c.similarity, 3) for c in candidates],
            )

            if not candidates:
                empty = calculate_confidence(ConfidenceInput())
                return RAGResponse(
                    answer=INSUFFICIENT_INFORMATION_ANSWER,
                    confidence=0.0,
                    confidence_level=empty.level,
                    confidence_explanation=empty.explanation,
                    sources=[],
                    chunks=[],
                )

            relevant = [c for c in candidates if c.similarity >= self._similarity_gate]
            if not relevant:
                max_similarity = max(c.similarity for c in candidates)
                logfire.info(
                    "No candidates above similarity gate",
                    similarity_gate=self._similarity_gate,
                    max_similarity=max_similarity,
                )
                empty = calculate_confidence(ConfidenceInput())
                return RAGResponse(
                    answer=INSUFFICIENT_INFORMATION_ANSWER,
                    confidence=max_similarity,
                    confidence_level=ConfidenceLevel.LOW,
                    confidence_explanation=empty.explanation,
                    sources=[],
                    chunks=candidates,
                )

            relevant.sort(key=lambda r: r.similarity, reverse=True)
            confidence = calculate_confidence(build_confidence_input(question, relevant))
            answer = await self._completer.complete(build_prompt(question, relevant))

            logfire.info(
                "Query answered",
                source_count=len(relevant),
                confidence=confidence.score,
                confidence_level=confidence.level.value,
                response_time_ms=(time.perf_counter() - start) * 1000,
            )
            return RAGResponse(
                answer=answer,
                confidence=confidence.score,
                confidence_level=confidence.level,
                confidence_explanation=confidence.explanation,
                sources=collect_sources(relevant),
                chunks=relevant,
            )
