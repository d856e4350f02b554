"""Bounded retry and reconnect helpers for storage backends."""

import asyncio
from typing import Awaitable, Callable, Protocol, Tuple, Type, TypeVar

import logfire

T = TypeVar("T")

Backoff = Callable[[int], float]


class Reconnectable(Protocol):
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...


def exponential_backoff(base_delay_ms: int) -> Backoff:
    """Delay in seconds before retry ``attempt`` (0-based): base * 2**attempt."""

    def backoff(attempt: int) -> float:
        return (base_delay_ms * (2**attempt)) / 1000

    return backoff


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    backoff: Backoff,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` up to ``max_retries`` times.

    Args:
        operation: Zero-argument coroutine function to run
        max_retries: Total number of attempts (at least one is always made)
        backoff: Maps the failed attempt index to the sleep before the next one
        retry_on: Exception types that trigger another attempt; others propagate
        sleep: Awaitable sleep, replaceable in tests
        operation_name: Name used in log records

    Returns:
        The operation's result

    Raises:
        The last error once every attempt has failed
    """
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as e:
            if attempt == attempts - 1:
                logfire.error(
                    f"{operation_name} failed after {attempts} attempts",
                    operation=operation_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            delay = backoff(attempt)
            logfire.warning(
                f"{operation_name} failed, retrying",
                operation=operation_name,
                attempt=attempt + 1,
                retry_in_seconds=delay,
                error=str(e),
                error_type=type(e).__name__,
            )
            await sleep(delay)
    raise AssertionError("unreachable")


async def ensure_connected(store: Reconnectable) -> None:
    """Reconnect ``store`` if its liveness check fails."""
    if not store.is_connected():
        logfire.info("Storage connection lost, reconnecting")
        await store.connect()
