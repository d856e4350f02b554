"""Database query execution utilities.

This module provides utilities for timing and logging storage round trips
so every backend call is logged the same way.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import logfire


@asynccontextmanager
async def timed_query(
    operation_name: str,
    **log_context: Any,
) -> AsyncIterator[None]:
    """
    Async context manager for timing and logging database operations.

    Logs the start of the operation, and on completion logs either success
    with elapsed time or error details if an exception occurred. Exceptions
    are re-raised unchanged.

    Args:
        operation_name: Name of the database operation (e.g., "search")
        **log_context: Additional context to include in all log messages

    Example:
        async with timed_query("get_document", document_id=document_id):
            await cur.execute("SELECT ... WHERE id = %s", (document_id,))
    """
    start_time = time.perf_counter()

    logfire.debug(
        f"Starting {operation_name}",
        operation=operation_name,
        **log_context,
    )

    try:
        yield
    except Exception as e:
        elapsed = time.perf_counter() - start_time
        logfire.error(
            f"{operation_name} failed",
            operation=operation_name,
            error=str(e),
            error_type=type(e).__name__,
            response_time_ms=elapsed * 1000,
            **log_context,
        )
        raise

    elapsed = time.perf_counter() - start_time
    logfire.info(
        f"{operation_name} completed",
        operation=operation_name,
        response_time_ms=elapsed * 1000,
        **log_context,
    )
