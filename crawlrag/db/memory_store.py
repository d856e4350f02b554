"""Ephemeral in-process document store."""

import math
from datetime import datetime, timezone
from typing import List, Sequence

import logfire

from crawlrag.errors import StorageUnavailable
from crawlrag.models.document_models import Document, SearchResult


def cosine_similarity(a: Sequence[float], b: Sequence[float] | None) -> float:
    """Cosine similarity of two vectors; 0.0 for zero-norm or mismatched vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class MemoryStorage:
    """Storage strategy keeping documents in a dict.

    Search is a linear scan: every stored embedding is scored against the
    query and the top ``limit`` are returned, with no similarity floor.
    Assumes a single writer.
    """

    storage_type = "memory"

    def __init__(self) -> None:
        self._documents: dict[str, Document] | None = None

    def _require(self) -> dict[str, Document]:
        if self._documents is None:
            raise StorageUnavailable("Storage not initialized")
        return self._documents

    async def initialize(self) -> None:
        if self._documents is None:
            self._documents = {}

    async def add_document(self, document: Document, embedding: List[float]) -> None:
        documents = self._require()
        now = datetime.now(timezone.utc)
        existing = documents.get(document.id)
        documents[document.id] = document.model_copy(
            update={
                "embedding": list(embedding),
                "version": existing.version + 1 if existing else 1,
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
            }
        )

    async def search(self, embedding: List[float], limit: int) -> List[SearchResult]:
        documents = self._require()
        if limit <= 0:
            return []
        scored = [
            (cosine_similarity(embedding, doc.embedding), doc) for doc in documents.values()
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            SearchResult(**doc.model_dump(), similarity=similarity)
            for similarity, doc in scored[:limit]
        ]

    async def delete_document(self, document_id: str) -> None:
        documents = self._require()
        # Drain and re-add everything except the target
        remaining = [doc for doc in documents.values() if doc.id != document_id]
        documents.clear()
        for doc in remaining:
            documents[doc.id] = doc
        logfire.debug("Document deleted", document_id=document_id, storage="memory")

    async def list_documents(self) -> List[Document]:
        return list(self._require().values())

    async def close(self) -> None:
        pass
