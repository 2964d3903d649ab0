"""Retry an upstream call across rotated API keys."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from syllabus_gen.errors import is_rate_limit
from syllabus_gen.rotator import KeyRotator, mask

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY = 0.5  # seconds

T = TypeVar("T")


async def call_with_rotation(
    rotator: KeyRotator,
    fn: Callable[[str], Awaitable[T]],
    max_attempts: int = MAX_ATTEMPTS,
    delay: float = RETRY_DELAY,
) -> T:
    """Await ``fn(api_key)`` with a fresh key per attempt.

    Only the key used in the final failed attempt is marked exhausted, and
    only if that failure was a rate-limit / quota error. The last error is
    re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    for attempt in range(1, max_attempts + 1):
        key = rotator.next_credential()
        try:
            return await fn(key)
        except Exception as e:
            if attempt < max_attempts:
                log.warning(
                    "Generation failed with key %s (attempt %d/%d), retrying in %.1fs: %s",
                    mask(key),
                    attempt,
                    max_attempts,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)
                continue
            if is_rate_limit(e):
                rotator.mark_exhausted(key)
            log.error("Generation failed after %d attempts: %s", max_attempts, e)
            raise
