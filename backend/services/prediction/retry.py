"""Bounded retry for calls into collaborators and the prediction repository."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from services.prediction.errors import TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE = (TransientIOError, ConnectionError, TimeoutError)


async def with_retry(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    backoff_seconds: float = 0.2,
    description: str = "storage call",
) -> T:
    """Await `operation(*args)`, retrying transient failures with exponential backoff.

    Raises TransientIOError once every attempt has failed. Non-transient
    exceptions propagate immediately.
    """
    attempts = max(1, attempts)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(*args)
        except RETRYABLE as e:
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", description, attempts, e)
                raise TransientIOError(f"{description} failed after {attempts} attempts") from e
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                "%s failed on attempt %d/%d: %s (retrying in %.2fs)",
                description, attempt, attempts, e, delay,
            )
            await asyncio.sleep(delay)
