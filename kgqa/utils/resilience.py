"""Retry helper for external translator calls."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[..., Awaitable[T] | T],
    *args: Any,
    max_retries: int = 2,
    backoff_base: float = 1.0,
    retryable_exceptions: tuple[type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        asyncio.TimeoutError,
    ),
    **kwargs: Any,
) -> T:
    """Retry a function with linear backoff.

    The first call is not a retry, so at most ``max_retries + 1`` calls
    are made. The n-th retry waits ``backoff_base * n`` seconds.

    Args:
        func: Sync or async callable to retry.
        max_retries: Maximum retry attempts after the first call.
        backoff_base: Base delay in seconds (multiplied by attempt number).
        retryable_exceptions: Exceptions that trigger a retry.

    Returns:
        Result from the first successful call.

    Raises:
        The last exception once retries are exhausted.
    """
    max_retries = max(0, max_retries)
    last_exception: BaseException | None = None
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            if inspect.iscoroutinefunction(func):
                return await func(*args, **kwargs)
            return func(*args, **kwargs)
        except retryable_exceptions as e:
            last_exception = e
            if attempt < max_retries:
                delay = backoff_base * (attempt + 1)
                logger.warning(
                    f"Retry {attempt + 1}/{max_retries} for {name} "
                    f"after {type(e).__name__}: {e}. Waiting {delay}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"All {max_retries} retries exhausted for {name}: {e}")

    raise last_exception
