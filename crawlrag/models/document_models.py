"""Stored documents, search hits and version snapshots."""

from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field, field_validator


class Document(BaseModel):
    """A unit of stored content, usually one chunk of a crawled page."""

    id: str = Field(..., min_length=1)
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: List[float] | None = None
    version: int = Field(default=1, ge=1)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def source(self) -> str:
        """Full original source of the document: url, then source, then id."""
        for key in ("url", "source"):
            value = self.metadata.get(key)
            if isinstance(value, str) and value:
                return value
        return self.id


class SearchResult(Document):
    """A document returned by a similarity search."""

    similarity: float = Field(..., ge=0.0, le=1.0)

    @field_validator("similarity", mode="before")
    @classmethod
    def _clamp_similarity(cls, value: Any) -> float:
        # Cosine similarity of arbitrary vectors can dip below zero
        value = float(value)
        if value != value:
            return 0.0
        return min(1.0, max(0.0, value))


class DocumentVersion(BaseModel):
    """Snapshot of a document taken before an update."""

    document_id: str
    version: int
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
