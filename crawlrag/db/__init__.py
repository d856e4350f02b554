"""Storage backends and database utilities."""

from crawlrag.db.memory_store import MemoryStorage, cosine_similarity
from crawlrag.db.postgres_store import DocumentCache, PostgresStorage
from crawlrag.db.query_executor import timed_query
from crawlrag.db.retry import ensure_connected, exponential_backoff, with_retry
from crawlrag.db.storage import StorageStrategy, create_storage

__all__ = [
    "MemoryStorage",
    "cosine_similarity",
    "DocumentCache",
    "PostgresStorage",
    "timed_query",
    "ensure_connected",
    "exponential_backoff",
    "with_retry",
    "StorageStrategy",
    "create_storage",
]
