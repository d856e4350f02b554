"""Tests for storage backend selection."""

import pytest

from crawlrag.db.memory_store import MemoryStorage
from crawlrag.db.postgres_store import PostgresStorage
from crawlrag.db.storage import create_storage
from crawlrag.models.config_models import MemoryStorageConfig, PostgresStorageConfig


class TestCreateStorage:
    def test_memory(self):
        storage = create_storage(MemoryStorageConfig())
        assert isinstance(storage, MemoryStorage)
        assert storage.storage_type == "memory"

    def test_postgres_is_not_connected_until_initialized(self):
        storage = create_storage(PostgresStorageConfig(dsn="postgresql://db.internal/crawlrag"))
        assert isinstance(storage, PostgresStorage)
        assert storage.storage_type == "postgres"
        assert not storage.is_connected()

    def test_unknown_config(self):
        with pytest.raises(TypeError, match="Unsupported storage config"):
            create_storage(object())

    def test_from_settings(self, mock_settings):
        assert isinstance(create_storage(mock_settings.storage_config()), MemoryStorage)
