"""Embedding generation via PydanticAI Gateway."""

from typing import List, Protocol

import logfire
from pydantic_ai import Embedder

from crawlrag.config import get_settings
from crawlrag.errors import ProviderFailure


class EmbeddingProvider(Protocol):
    """Turns text into a fixed-dimension vector."""

    async def embed(self, text: str) -> List[float]:
        """Raises ValueError on empty input."""
        ...


class PydanticAIEmbedder:
    """EmbeddingProvider backed by a PydanticAI ``Embedder``."""

    def __init__(self, model: str | None = None):
        """
        Args:
            model: Model string (e.g. 'gateway/openai:text-embedding-3-small').
                   Defaults to settings.embedding_model
        """
        self._model = model or get_settings().embedding_model
        self._embedder: Embedder | None = None

    @property
    def model(self) -> str:
        return self._model

    def _get_embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = Embedder(self._model)
        return self._embedder

    async def embed(self, text: str) -> List[float]:
        """
        Generate a single embedding for a document or a search query.

        Args:
            text: Text to embed

        Returns:
            Embedding vector (list of floats)

        Raises:
            ValueError: text is empty
            ProviderFailure: the model call failed or returned no embedding
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        try:
            with logfire.span("embedding_query", model=self._model, text_length=len(text)):
                result = await self._get_embedder().embed_query(text)
        except Exception as e:
            raise self._failure(e) from e
        if not result.embeddings:
            raise ProviderFailure(f"Embedding model {self._model} returned no vectors")
        return list(result.embeddings[0])

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a batch of texts.

        Args:
            texts: List of strings to embed (e.g. chunk contents)

        Returns:
            One embedding vector per input text, in order
        """
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty text")
        try:
            with logfire.span("embedding_generate", model=self._model, text_count=len(texts)):
                result = await self._get_embedder().embed_documents(texts)
        except Exception as e:
            raise self._failure(e) from e
        return [list(vector) for vector in result.embeddings]

    def _failure(self, error: Exception) -> ProviderFailure:
        logfire.error(
            "Embedding request failed",
            model=self._model,
            error=str(error),
            error_type=type(error).__name__,
        )
        return ProviderFailure(f"Embedding with {self._model} failed: {error}")
