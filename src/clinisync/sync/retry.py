"""Retry with exponential backoff for fallible async operations."""
import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    no_retry: Tuple[Type[BaseException], ...] = (),
    **kwargs: Any,
) -> T:
    """
    Await fn(*args, **kwargs), retrying on the given exceptions.

    Delay before attempt n+1 is min(base_delay * 2**(n-1), max_delay).
    The last exception is re-raised once max_attempts is exhausted.

    Args:
        fn: Coroutine function to call.
        max_attempts: Total attempts including the first (>= 1).
        base_delay: Initial delay in seconds.
        max_delay: Upper bound on any single delay.
        exceptions: Exception types that trigger a retry; others propagate at once.
        no_retry: Subclasses of those types that still propagate at once
            (failures that would fail the same way on every attempt).
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn(*args, **kwargs)
        except exceptions as exc:
            if isinstance(exc, no_retry):
                raise
            if attempt == max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s",
                    getattr(fn, "__name__", fn), attempt, exc,
                )
                raise
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                getattr(fn, "__name__", fn), attempt, max_attempts, delay, exc,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")


def retry_async(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    no_retry: Tuple[Type[BaseException], ...] = (),
) -> Callable:
    """Decorator form of call_with_retry."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await call_with_retry(
                func,
                *args,
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                exceptions=exceptions,
                no_retry=no_retry,
                **kwargs,
            )

        return wrapper

    return decorator
