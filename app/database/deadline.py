"""
Request deadline propagation for store calls.

The HTTP layer opens a deadline for the request; every store call made by the
lifecycle engine is bounded by whatever time is left. Outside a request the
per-call fallback timeout applies.
"""

import asyncio
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Optional, TypeVar

from app.achievements.achievement_errors import StorageError

T = TypeVar("T")

_request_deadline: ContextVar[Optional[float]] = ContextVar("request_deadline", default=None)


@contextmanager
def request_deadline(timeout_seconds: float):
    """Bound every store call made inside the block by one shared deadline"""
    token = _request_deadline.set(time.monotonic() + timeout_seconds)
    try:
        yield
    finally:
        _request_deadline.reset(token)


def remaining_time(fallback_seconds: float) -> float:
    deadline = _request_deadline.get()
    if deadline is None:
        return fallback_seconds
    return deadline - time.monotonic()


async def bounded(
    awaitable: Awaitable[T],
    fallback_seconds: float,
    operation: str,
    ignore_deadline: bool = False,
) -> T:
    """
    Await a store call within the current deadline

    Compensating writes pass ignore_deadline so they still get the fallback
    budget after the request deadline itself caused the failure.

    Raises:
        StorageError: deadline already passed or expired while waiting
    """
    remaining = fallback_seconds if ignore_deadline else remaining_time(fallback_seconds)
    if remaining <= 0:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise StorageError(f"Request deadline exceeded before {operation}")
    try:
        return await asyncio.wait_for(awaitable, timeout=remaining)
    except asyncio.TimeoutError as e:
        raise StorageError(f"{operation} timed out") from e
