"""Tests for database query executor utilities."""

import asyncio
from unittest.mock import patch

import pytest

from crawlrag.db.query_executor import timed_query


class TestTimedQuery:
    """Tests for the timed_query context manager."""

    @pytest.mark.asyncio
    async def test_successful_query_logs_start_and_completion(self):
        """Successful query should log start and completion with timing."""
        with patch("crawlrag.db.query_executor.logfire") as mock_logfire:
            async with timed_query("search", limit=5):
                await asyncio.sleep(0.01)

            start_call = mock_logfire.debug.call_args
            assert "Starting search" in start_call[0][0]
            assert start_call[1]["operation"] == "search"
            assert start_call[1]["limit"] == 5

            completion_call = mock_logfire.info.call_args
            assert "search completed" in completion_call[0][0]
            assert completion_call[1]["limit"] == 5
            assert completion_call[1]["response_time_ms"] > 0
            mock_logfire.error.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_query_logs_error_and_reraises(self):
        """Failed query should log error with timing and re-raise exception."""
        with patch("crawlrag.db.query_executor.logfire") as mock_logfire:
            with pytest.raises(ValueError, match="test error"):
                async with timed_query("add_document", document_id="doc-1"):
                    raise ValueError("test error")

            mock_logfire.info.assert_not_called()
            error_call = mock_logfire.error.call_args
            assert "add_document failed" in error_call[0][0]
            assert error_call[1]["error"] == "test error"
            assert error_call[1]["error_type"] == "ValueError"
            assert error_call[1]["document_id"] == "doc-1"
            assert "response_time_ms" in error_call[1]

    @pytest.mark.asyncio
    async def test_timing_is_accurate(self):
        """Timing should be reasonably accurate."""
        with patch("crawlrag.db.query_executor.logfire") as mock_logfire:
            async with timed_query("timing_test"):
                await asyncio.sleep(0.05)

            elapsed_ms = mock_logfire.info.call_args[1]["response_time_ms"]
            assert 40 <= elapsed_ms < 1000
