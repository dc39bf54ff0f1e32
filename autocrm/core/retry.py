"""
Bounded retry with exponential backoff + jitter for idempotent store writes.

Only StorageError is retried. Validation and authorization failures are
surfaced on the first attempt.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from .config import get_settings
from .errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_DELAY = 5.0
JITTER = 0.1


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    on_retry: Optional[Callable[[], Awaitable[None]]] = None,
) -> T:
    """
    Await fn() up to `attempts` times.

    on_retry runs between attempts (e.g. session.rollback) so the next
    attempt starts from a clean transaction.
    """
    settings = get_settings()
    attempts = max(1, attempts or settings.store_retry_attempts)
    base_delay = settings.store_retry_base_delay if base_delay is None else base_delay

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except StorageError as e:
            if attempt == attempts:
                logger.error(
                    "%s on %s failed after %d attempt(s)", e.operation, e.table, attempts,
                )
                raise
            delay = min(MAX_DELAY, base_delay * (2 ** (attempt - 1)) + random.uniform(0, JITTER))
            logger.warning(
                "%s on %s failed (attempt %d/%d), retrying in %.2fs",
                e.operation, e.table, attempt, attempts, delay,
            )
            if on_retry is not None:
                await on_retry()
            await asyncio.sleep(delay)

    raise RuntimeError("retry_async exhausted without a result")
