"""Retrieval response model."""

from typing import List

from pydantic import BaseModel, Field

from crawlrag.models.confidence_models import ConfidenceLevel
from crawlrag.models.document_models import SearchResult


class RAGResponse(BaseModel):
    """
    Answer to a query with its confidence and provenance.

    ``sources`` holds full original URLs (path, query and fragment intact),
    never bare domains.
    """

    answer: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel
    confidence_explanation: str
    sources: List[str] = Field(default_factory=list)
    chunks: List[SearchResult] = Field(default_factory=list)
