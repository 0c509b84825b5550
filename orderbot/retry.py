"""Exponential backoff for transient platform failures.

Usage::

    thread = await call_with_backoff(platform.create_private_thread, channel_id, name)
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .messaging.base import TransientPlatformError

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_ON: tuple[type[BaseException], ...] = (TransientPlatformError,)


def _backoff_seconds(attempt: int, base_delay: float, max_delay: float, exc: BaseException) -> float:
    delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
    delay *= 1.0 + 0.25 * random.random()
    retry_after = getattr(exc, "retry_after", None)
    if retry_after:
        delay = max(delay, float(retry_after))
    return delay


async def call_with_backoff(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: tuple[type[BaseException], ...] = DEFAULT_RETRY_ON,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying ``retry_on`` errors.

    The last error is re-raised once ``max_attempts`` calls have failed.
    """

    operation = getattr(fn, "__name__", repr(fn))
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except retry_on as exc:
            if attempt >= max_attempts:
                log.warning(
                    "Retry failed for %s: attempt %d/%d, error: %s",
                    operation,
                    attempt,
                    max_attempts,
                    exc,
                )
                raise
            sleep_for = _backoff_seconds(attempt, base_delay, max_delay, exc)
            log.info(
                "Transient failure in %s (attempt %d/%d): %s; retrying in %.2fs",
                operation,
                attempt,
                max_attempts,
                exc,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
