"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Fake collaborators (defined in tests/fakes.py)
2. Services: memory_storage, orchestrator
3. Infrastructure: respx_mock, mock_settings, logfire_capture
"""

import os

# Suppress warnings when logfire isn't configured in tests
os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from unittest.mock import patch

import logfire
import pytest
import pytest_asyncio
import respx

from crawlrag.config import Settings
from crawlrag.db.memory_store import MemoryStorage
from crawlrag.services.retrieval import RetrievalOrchestrator
from tests.fakes import KeywordEmbedder, RecordingCompleter


# =============================================================================
# Fake Collaborators
# =============================================================================


@pytest.fixture
def keyword_embedder():
    return KeywordEmbedder()


@pytest.fixture
def recording_completer():
    return RecordingCompleter()


# =============================================================================
# Services
# =============================================================================


@pytest_asyncio.fixture
async def memory_storage():
    """Initialized in-memory storage."""
    storage = MemoryStorage()
    await storage.initialize()
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def orchestrator(memory_storage, keyword_embedder, recording_completer):
    """Orchestrator over memory storage with deterministic fakes."""
    return RetrievalOrchestrator(
        storage=memory_storage,
        embedder=keyword_embedder,
        completer=recording_completer,
    )


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def respx_mock():
    """Respx router for HTTP mocking; unmatched requests fail the test."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings independent of the developer's environment and .env files."""
    settings = Settings(
        _env_file=None,
        env="test",
        logfire_token=None,
        storage_backend="memory",
        pydantic_ai_gateway_api_key="paig_test_key",
    )
    monkeypatch.setattr("crawlrag.config.get_settings", lambda: settings)
    return settings


@pytest.fixture
def logfire_capture():
    """
    Capture Logfire calls for assertion.

    Yields a list of (level, args, kwargs) tuples.
    """
    captured_logs = []

    original_info = logfire.info
    original_warning = logfire.warning
    original_error = logfire.error

    def capture_info(*args, **kwargs):
        captured_logs.append(("info", args, kwargs))
        return original_info(*args, **kwargs)

    def capture_warning(*args, **kwargs):
        captured_logs.append(("warning", args, kwargs))
        return original_warning(*args, **kwargs)

    def capture_error(*args, **kwargs):
        captured_logs.append(("error", args, kwargs))
        return original_error(*args, **kwargs)

    with (
        patch("logfire.info", side_effect=capture_info),
        patch("logfire.warning", side_effect=capture_warning),
        patch("logfire.error", side_effect=capture_error),
    ):
        yield captured_logs
