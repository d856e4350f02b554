"""Storage strategy interface and backend factory."""

from typing import List, Protocol

import logfire

from crawlrag.db.memory_store import MemoryStorage
from crawlrag.db.postgres_store import PostgresStorage
from crawlrag.logging_config import redact_dsn
from crawlrag.models.config_models import (
    MemoryStorageConfig,
    PostgresStorageConfig,
    StorageConfig,
)
from crawlrag.models.document_models import Document, SearchResult


class StorageStrategy(Protocol):
    """
    Contract shared by every storage backend.

    Data operations called before ``initialize()`` raise
    ``StorageUnavailable("Storage not initialized")``. ``search`` returns
    results in descending similarity order.
    """

    storage_type: str

    async def initialize(self) -> None: ...

    async def add_document(self, document: Document, embedding: List[float]) -> None: ...

    async def search(self, embedding: List[float], limit: int) -> List[SearchResult]: ...

    async def delete_document(self, document_id: str) -> None: ...

    async def list_documents(self) -> List[Document]: ...

    async def close(self) -> None: ...


def create_storage(config: StorageConfig) -> StorageStrategy:
    """
    Build the storage backend selected by ``config``.

    Args:
        config: Tagged backend variant, resolved once at startup

    Returns:
        An uninitialized backend; call ``initialize()`` before use
    """
    if isinstance(config, PostgresStorageConfig):
        logfire.info("Using Postgres storage", dsn=redact_dsn(config.dsn))
        return PostgresStorage(config)
    if isinstance(config, MemoryStorageConfig):
        logfire.info("Using in-memory storage")
        return MemoryStorage()
    raise TypeError(f"Unsupported storage config: {type(config).__name__}")
