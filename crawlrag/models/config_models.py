"""Storage backend configuration variants."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from crawlrag.constants import (
    DEFAULT_DB_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_DB_POOL_MAX_SIZE,
    DEFAULT_DB_POOL_MIN_SIZE,
    DEFAULT_DOCUMENT_CACHE_SIZE,
    DEFAULT_EMBEDDING_DIMENSIONS,
    DEFAULT_RETRY_BASE_DELAY_MS,
    DEFAULT_STORAGE_RETRIES,
)


class MemoryStorageConfig(BaseModel):
    """Ephemeral in-process store. Nothing survives the process."""

    kind: Literal["memory"] = "memory"


class PostgresStorageConfig(BaseModel):
    """Persistent Postgres + pgvector store."""

    kind: Literal["postgres"] = "postgres"
    dsn: str = Field(..., min_length=1, description="Postgres connection URI")
    embedding_dimensions: int = Field(
        default=DEFAULT_EMBEDDING_DIMENSIONS,
        gt=0,
        description="Dimension of the embeddings.embedding vector column",
    )
    retries: int = Field(
        default=DEFAULT_STORAGE_RETRIES,
        ge=1,
        description="Attempts made by add_document before the error propagates",
    )
    retry_base_delay_ms: int = Field(
        default=DEFAULT_RETRY_BASE_DELAY_MS,
        ge=0,
        description="Base delay of the exponential backoff between attempts",
    )
    cache_size: int = Field(
        default=DEFAULT_DOCUMENT_CACHE_SIZE,
        ge=0,
        description="Capacity of the get_document cache (0 disables it)",
    )
    connect_timeout_seconds: int = Field(
        default=DEFAULT_DB_CONNECT_TIMEOUT_SECONDS,
        gt=0,
        description="Connection timeout in seconds",
    )
    pool_min_size: int = Field(
        default=DEFAULT_DB_POOL_MIN_SIZE,
        ge=0,
        description="Connections the pool keeps open",
    )
    pool_max_size: int = Field(
        default=DEFAULT_DB_POOL_MAX_SIZE,
        ge=1,
        description="Upper bound on concurrently checked-out connections",
    )


StorageConfig = Annotated[
    Union[MemoryStorageConfig, PostgresStorageConfig],
    Field(discriminator="kind"),
]
