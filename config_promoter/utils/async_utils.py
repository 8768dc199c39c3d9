"""Asynchronous operation utilities"""
import asyncio
import logging
from typing import Any, Callable, Coroutine, List, Sequence, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    coro_func: Callable[..., Coroutine[Any, Any, T]],
    *args,
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
    **kwargs,
) -> T:
    """
    Retry an async operation.

    With the default backoff of 1.0 the delay between attempts is fixed.

    Args:
        coro_func: Coroutine function
        *args: Function arguments
        max_attempts: Total attempts, including the first one
        delay: Delay between attempts in seconds
        backoff: Multiplier applied to the delay after each failed attempt
        exceptions: Exceptions that trigger a retry; anything else propagates at once
        description: Label used in log messages
        **kwargs: Function keyword arguments

    Returns:
        Function result

    Raises:
        The last exception once all attempts fail
    """
    current_delay = delay
    attempts = max(1, max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await coro_func(*args, **kwargs)
        except exceptions as e:
            if attempt >= attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}), "
                f"retrying in {current_delay:.1f}s: {e}"
            )
            if current_delay > 0:
                await asyncio.sleep(current_delay)
            current_delay *= backoff


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive chunks of at most `size` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
