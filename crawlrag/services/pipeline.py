"""Result values and a short-circuiting step runner for async pipelines."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar, Union

import logfire

from crawlrag.errors import ToolTimeout

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: Exception

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]

Step = Callable[[Any], Awaitable[Result]]


async def run_steps(steps: Sequence[Step], initial: Any) -> Result:
    """
    Fold ``initial`` through ``steps`` in order.

    Each step receives the previous step's ``Ok`` value. The first ``Err``
    stops the pipeline and is returned as is.
    """
    current: Result = Ok(initial)
    for step in steps:
        current = await step(current.value)
        if isinstance(current, Err):
            logfire.info(
                "Pipeline stopped",
                step=getattr(step, "__name__", repr(step)),
                error=str(current.error),
                error_type=type(current.error).__name__,
            )
            return current
    return current


async def with_timeout(
    awaitable: Awaitable[T], seconds: float | None, operation: str
) -> Result:
    """
    Await ``awaitable`` with a deadline.

    Args:
        awaitable: Operation to run
        seconds: Deadline in seconds (None waits indefinitely)
        operation: Name used in the timeout error

    Returns:
        ``Ok(value)``, or ``Err(ToolTimeout)`` once the deadline passes; the
        wrapped operation is cancelled in that case
    """
    try:
        value = await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logfire.warning(f"{operation} timed out", operation=operation, timeout_seconds=seconds)
        return Err(ToolTimeout(operation, seconds or 0.0))
    return Ok(value)
