"""Bounded retry with exponential backoff for object store calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from blog_images.services.errors import ErrorKind, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Only errors classified as RETRYABLE are attempted again."""
    return isinstance(error, StoreError) and error.kind is ErrorKind.RETRYABLE


def backoff_delay_ms(attempt: int, base_delay_ms: int = 1000) -> int:
    """Delay before retry number ``attempt + 1`` (attempt starts at 0)."""
    return base_delay_ms * 2**attempt


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with up to ``max_retries`` retries.

    The operation is attempted at most ``max_retries + 1`` times. Before
    each retry the executor waits ``base_delay_ms * 2**attempt``
    milliseconds (no jitter). Errors that are not classified as retryable
    end the loop immediately. The last error is re-raised unchanged.

    Operations must be safe to repeat: side effects of a failed attempt
    are not rolled back.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Number of retries after the first attempt
        base_delay_ms: Base backoff delay in milliseconds
        sleep: Coroutine used to wait between attempts

    Returns:
        Result of the first successful attempt
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise

            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning(
                f"Retryable failure (attempt {attempt + 1}/{max_retries + 1}): {e}; "
                f"retrying in {delay_ms} ms"
            )
            await sleep(delay_ms / 1000)
            attempt += 1
