"""
Retry and rate-limit helpers shared by the search and processing phases.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import backoff

from errors import FATAL_ERRORS, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_wait(step: float = 2.0):
    """backoff wait generator yielding step, 2*step, 3*step, ..."""
    # backoff primes the generator with an initial send(None)
    yield
    attempt = 1
    while True:
        yield attempt * step
        attempt += 1


def _is_fatal(exc: Exception) -> bool:
    return isinstance(exc, FATAL_ERRORS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str = "operation",
    max_attempts: int = 2,
    step_s: float = 2.0,
) -> T:
    """
    Run ``operation`` until it succeeds or ``max_attempts`` are used up.

    Waits ``attempt * step_s`` seconds between attempts. Fatal errors are
    re-raised untouched; anything else that survives every attempt is wrapped
    in RetryExhausted naming the operation and the attempt count.
    """
    attempts = 0

    def _log_backoff(details):
        logger.warning(
            f"[Retry {details['tries']}/{max_attempts}] {label} failed: "
            f"{details.get('exception')}. Waiting {details['wait']:.1f}s..."
        )

    @backoff.on_exception(
        linear_wait,
        Exception,
        max_tries=max_attempts,
        jitter=None,
        giveup=_is_fatal,
        on_backoff=_log_backoff,
        logger=None,
        step=step_s,
    )
    async def _attempt():
        nonlocal attempts
        attempts += 1
        return await operation()

    try:
        return await _attempt()
    except FATAL_ERRORS:
        raise
    except Exception as e:
        logger.error(f"❌ {label} failed after {attempts} attempts: {e}")
        raise RetryExhausted(label, attempts, e) from e


async def polite_delay(seconds: float):
    """Fixed pause between portal requests to stay under anti-bot radar"""
    if seconds > 0:
        await asyncio.sleep(seconds)
