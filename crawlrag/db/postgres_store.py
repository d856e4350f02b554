"""Persistent document store on Postgres + pgvector (psycopg 3, async)."""

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from threading import Lock
from typing import Any, AsyncIterator, Awaitable, Callable, List

import logfire
import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from crawlrag.db.query_executor import timed_query
from crawlrag.db.retry import ensure_connected, exponential_backoff, with_retry
from crawlrag.errors import DocumentNotFound, StorageUnavailable
from crawlrag.logging_config import redact_dsn
from crawlrag.models.config_models import PostgresStorageConfig
from crawlrag.models.document_models import Document, DocumentVersion, SearchResult

PoolFactory = Callable[..., AsyncConnectionPool]


def schema_statements(embedding_dimensions: int) -> List[str]:
    """Idempotent DDL for the three tables of the persistent store."""
    dimensions = int(embedding_dimensions)
    return [
        "CREATE EXTENSION IF NOT EXISTS vector",
        """
        CREATE TABLE IF NOT EXISTS documents (
            id VARCHAR(255) PRIMARY KEY,
            content TEXT NOT NULL,
            metadata JSONB DEFAULT '{}',
            version INTEGER DEFAULT 1,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS embeddings (
            id SERIAL PRIMARY KEY,
            document_id VARCHAR(255) REFERENCES documents(id) ON DELETE CASCADE,
            embedding vector({dimensions}),
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS document_versions (
            id SERIAL PRIMARY KEY,
            document_id VARCHAR(255),
            version INTEGER,
            content TEXT,
            metadata JSONB DEFAULT '{}',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE(document_id, version)
        )
        """,
    ]


def to_vector_literal(embedding: List[float]) -> str:
    """Text form of a pgvector value, cast with ``::vector`` in SQL."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"


_DOCUMENT_COLUMNS = "id, content, metadata, version, created_at, updated_at"

_UPSERT_DOCUMENT = """
    INSERT INTO documents (id, content, metadata)
    VALUES (%s, %s, %s)
    ON CONFLICT (id) DO UPDATE
    SET content = EXCLUDED.content,
        metadata = EXCLUDED.metadata,
        version = documents.version + 1,
        updated_at = NOW()
"""

_SEARCH = """
    SELECT d.id, d.content, d.metadata, d.version, d.created_at, d.updated_at,
           1 - (e.embedding <=> %(query)s::vector) AS similarity
    FROM embeddings e
    JOIN documents d ON e.document_id = d.id
    ORDER BY e.embedding <=> %(query)s::vector
    LIMIT %(limit)s
"""


# =============================================================================
# Document Cache
# =============================================================================


class DocumentCache:
    """
    Thread-safe fixed-capacity cache for ``get_document``.

    Least recently used entries are evicted once ``capacity`` is reached.
    Entries are invalidated whenever the same document is written or deleted.
    """

    def __init__(self, capacity: int):
        """
        Args:
            capacity: Maximum number of cached documents (0 disables caching)
        """
        self._capacity = capacity
        self._cache: OrderedDict[str, Document] = OrderedDict()
        self._lock = Lock()

    def get(self, document_id: str) -> Document | None:
        with self._lock:
            document = self._cache.get(document_id)
            if document is not None:
                self._cache.move_to_end(document_id)
                logfire.debug("Document cache hit", document_id=document_id)
            return document

    def set(self, document: Document) -> None:
        if self._capacity <= 0:
            return
        with self._lock:
            self._cache[document.id] = document
            self._cache.move_to_end(document.id)
            while len(self._cache) > self._capacity:
                self._cache.popitem(last=False)

    def invalidate(self, document_id: str) -> None:
        with self._lock:
            if self._cache.pop(document_id, None) is not None:
                logfire.debug("Document cache invalidated", document_id=document_id)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._cache)


# =============================================================================
# Postgres Storage
# =============================================================================


class PostgresStorage:
    """
    Storage strategy backed by Postgres with the pgvector extension.

    Every operation checks out its own autocommit connection from an
    ``AsyncConnectionPool``, so concurrent readers and writers never share a
    connection or a transaction. The pool validates connections on checkout
    and is reopened if it has been closed underneath us. ``add_document`` is
    retried with exponential backoff; every other failure propagates to the
    caller.
    """

    storage_type = "postgres"

    def __init__(
        self,
        config: PostgresStorageConfig,
        pool_factory: PoolFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Connection, pool and retry settings
            pool_factory: Builds the connection pool (defaults to
                ``psycopg_pool.AsyncConnectionPool``)
            sleep: Awaitable sleep used between retries
        """
        self._config = config
        self._pool_factory = pool_factory or AsyncConnectionPool
        self._sleep = sleep
        self._pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._cache = DocumentCache(config.cache_size)

    @property
    def cache(self) -> DocumentCache:
        return self._cache

    def is_connected(self) -> bool:
        pool = self._pool
        return pool is not None and not pool.closed

    async def connect(self) -> None:
        """Open a fresh connection pool, replacing any previous one.

        Raises:
            StorageUnavailable: the database cannot be reached
        """
        pool = self._pool_factory(
            self._config.dsn,
            min_size=self._config.pool_min_size,
            max_size=max(self._config.pool_max_size, self._config.pool_min_size),
            kwargs={
                "autocommit": True,
                "row_factory": dict_row,
                "connect_timeout": self._config.connect_timeout_seconds,
            },
            check=AsyncConnectionPool.check_connection,
            timeout=self._config.connect_timeout_seconds,
            name="crawlrag",
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=self._config.connect_timeout_seconds)
        except psycopg.OperationalError as e:
            await pool.close()
            self._pool = None
            raise StorageUnavailable(
                f"Cannot connect to Postgres at {redact_dsn(self._config.dsn)}: {e}"
            ) from e
        self._pool = pool
        logfire.info(
            "Postgres connection pool opened",
            dsn=redact_dsn(self._config.dsn),
            min_size=self._config.pool_min_size,
            max_size=self._config.pool_max_size,
        )

    async def initialize(self) -> None:
        """Open the pool and create the schema if it does not exist yet.

        Raises:
            StorageUnavailable: connection or schema creation failed
        """
        await self.connect()
        try:
            async with self._pool.connection() as conn:
                async with timed_query("initialize_schema"):
                    for statement in schema_statements(self._config.embedding_dimensions):
                        await conn.execute(statement)
        except psycopg.Error as e:
            raise StorageUnavailable(f"Failed to initialize schema: {e}") from e
        self._initialized = True

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if not self._initialized:
            raise StorageUnavailable("Storage not initialized")
        await ensure_connected(self)
        async with self._pool.connection() as conn:
            yield conn

    async def add_document(self, document: Document, embedding: List[float]) -> None:
        """Upsert a document and replace its embedding.

        A re-added id keeps its row and gets its version incremented.
        """
        if not self._initialized:
            raise StorageUnavailable("Storage not initialized")
        vector = to_vector_literal(embedding)

        async def attempt() -> None:
            async with self._connection() as conn:
                async with timed_query("add_document", document_id=document.id):
                    async with conn.transaction():
                        await conn.execute(
                            _UPSERT_DOCUMENT,
                            (document.id, document.content, Jsonb(document.metadata)),
                        )
                        await conn.execute(
                            "DELETE FROM embeddings WHERE document_id = %s", (document.id,)
                        )
                        await conn.execute(
                            "INSERT INTO embeddings (document_id, embedding) VALUES (%s, %s::vector)",
                            (document.id, vector),
                        )
            self._cache.invalidate(document.id)

        await with_retry(
            attempt,
            max_retries=self._config.retries,
            backoff=exponential_backoff(self._config.retry_base_delay_ms),
            retry_on=(psycopg.Error, StorageUnavailable),
            sleep=self._sleep,
            operation_name="add_document",
        )

    async def search(self, embedding: List[float], limit: int) -> List[SearchResult]:
        async with self._connection() as conn:
            async with timed_query("search", limit=limit):
                cur = await conn.execute(
                    _SEARCH, {"query": to_vector_literal(embedding), "limit": limit}
                )
                rows = await cur.fetchall()
        return [SearchResult(**_normalize_row(row)) for row in rows]

    async def delete_document(self, document_id: str) -> None:
        async with self._connection() as conn:
            async with timed_query("delete_document", document_id=document_id):
                async with conn.transaction():
                    await conn.execute(
                        "DELETE FROM embeddings WHERE document_id = %s", (document_id,)
                    )
                    await conn.execute("DELETE FROM documents WHERE id = %s", (document_id,))
        self._cache.invalidate(document_id)

    async def list_documents(self) -> List[Document]:
        async with self._connection() as conn:
            async with timed_query("list_documents"):
                cur = await conn.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY updated_at DESC"
                )
                rows = await cur.fetchall()
        return [Document(**_normalize_row(row)) for row in rows]

    async def get_document(self, document_id: str) -> Document | None:
        """Fetch one document, served from the cache when possible."""
        cached = self._cache.get(document_id)
        if cached is not None:
            return cached

        async with self._connection() as conn:
            async with timed_query("get_document", document_id=document_id):
                cur = await conn.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = %s", (document_id,)
                )
                row = await cur.fetchone()
        if row is None:
            return None

        document = Document(**_normalize_row(row))
        self._cache.set(document)
        return document

    async def update_document(
        self,
        document_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """
        Replace a document's content, keeping the previous state as a version.

        Args:
            document_id: Id of an existing document
            content: New content
            metadata: New metadata (unchanged when None)

        Returns:
            The document's new version number

        Raises:
            DocumentNotFound: no document has this id
        """
        async with self._connection() as conn:
            async with timed_query("update_document", document_id=document_id):
                async with conn.transaction():
                    cur = await conn.execute(
                        f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = %s FOR UPDATE",
                        (document_id,),
                    )
                    current = await cur.fetchone()
                    if current is None:
                        raise DocumentNotFound(document_id)

                    await conn.execute(
                        """
                        INSERT INTO document_versions (document_id, version, content, metadata)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (
                            document_id,
                            current["version"],
                            current["content"],
                            Jsonb(current["metadata"] or {}),
                        ),
                    )
                    cur = await conn.execute(
                        """
                        UPDATE documents
                        SET content = %s,
                            metadata = COALESCE(%s, metadata),
                            version = version + 1,
                            updated_at = NOW()
                        WHERE id = %s
                        RETURNING version
                        """,
                        (
                            content,
                            Jsonb(metadata) if metadata is not None else None,
                            document_id,
                        ),
                    )
                    updated = await cur.fetchone()
        self._cache.invalidate(document_id)
        return int(updated["version"])

    async def get_document_versions(self, document_id: str) -> List[DocumentVersion]:
        """Snapshots taken by ``update_document``, newest first."""
        async with self._connection() as conn:
            async with timed_query("get_document_versions", document_id=document_id):
                cur = await conn.execute(
                    """
                    SELECT document_id, version, content, metadata, created_at
                    FROM document_versions
                    WHERE document_id = %s
                    ORDER BY version DESC
                    """,
                    (document_id,),
                )
                rows = await cur.fetchall()
        return [DocumentVersion(**_normalize_row(row)) for row in rows]

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        self._initialized = False
        self._cache.clear()
        if pool is not None and not pool.closed:
            await pool.close()
            logfire.info("Postgres connection pool closed")



def _normalize_row(row: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(row)
    if normalized.get("metadata") is None:
        normalized["metadata"] = {}
    if "version" in normalized and normalized["version"] is None:
        normalized["version"] = 1
    return normalized
