"""Exponential-backoff retry decorator for coroutine functions.

Write operations on a gig fail with ``ConflictError`` when another writer
got there first; the caller is expected to re-read and try again.  This
decorator packages that loop::

    from gigflow.utils.retry import retry
    from gigflow.workflow.errors import ConflictError

    @retry(max_attempts=3, exceptions=(ConflictError,))
    async def request():
        return await facade.request_payment(gig_id)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import random
from typing import Any, Awaitable, Callable, ParamSpec, TypeVar

import structlog

P = ParamSpec("P")
T = TypeVar("T")

log = structlog.stdlib.get_logger(__name__)


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    """Seconds to wait after failed attempt *attempt* (0-based).

    The delay doubles per attempt, gets up to *base_delay* of random jitter
    and never exceeds *max_delay*.
    """
    return min(base_delay * 2 ** attempt + random.uniform(0, base_delay), max_delay)


def retry(
    max_attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator factory that re-invokes an async function on failure.

    Parameters
    ----------
    max_attempts:
        How many times the function runs at most, first call included.
    base_delay:
        Seconds to wait before the second attempt; later waits double.
    max_delay:
        Ceiling for any single wait.
    exceptions:
        Exception types that trigger a retry.  Anything else propagates
        immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"retry() requires a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    _log_failure(func, attempt, max_attempts, exc)
                    if attempt + 1 == max_attempts:
                        raise
                    await asyncio.sleep(_backoff(attempt, base_delay, max_delay))
            raise AssertionError("unreachable")  # pragma: no cover

        return wrapper

    return decorator


def _log_failure(func: Any, attempt: int, max_attempts: int, exc: BaseException) -> None:
    event = "retry.exhausted" if attempt + 1 == max_attempts else "retry.attempt"
    emit = log.error if attempt + 1 == max_attempts else log.warning
    emit(
        event,
        func=func.__qualname__,
        attempt=attempt + 1,
        max_attempts=max_attempts,
        error=str(exc),
        error_type=type(exc).__name__,
    )
