"""
Bounded retry with exponential backoff for transport failures.

The delay curve is a pure function so attempt limits and delays can be
checked without sleeping.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from exam_generator import config
from exam_generator.exceptions import GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    initial: float = config.BACKOFF_INITIAL_SECONDS,
    multiplier: float = config.BACKOFF_MULTIPLIER,
    maximum: float = config.BACKOFF_MAX_SECONDS,
) -> float:
    """
    Seconds to wait after failed attempt number ``attempt`` (1-based).

    initial * multiplier ** (attempt - 1), capped at ``maximum``.
    """
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    return min(initial * multiplier ** (attempt - 1), maximum)


def is_retryable(error: BaseException, markers: Optional[Sequence[str]] = None) -> bool:
    """
    Whether an error is worth another attempt.

    Pipeline errors decide for themselves through their ``retryable`` flag;
    anything else is matched against known transient-failure markers.
    """
    if isinstance(error, GenerationError):
        return error.retryable
    markers = config.RETRYABLE_ERROR_MARKERS if markers is None else markers
    message = str(error).lower()
    return any(marker in message for marker in markers)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = config.MAX_GENERATION_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
    **delay_kwargs,
) -> T:
    """
    Await ``operation`` until it succeeds, fails terminally, or attempts run out.

    Only retryable errors are retried; the last error is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            retryable = is_retryable(e)
            if not retryable or attempt == max_attempts:
                if retryable:
                    logger.error("%s failed after %d attempts: %s", description, attempt, e)
                raise
            delay = backoff_delay(attempt, **delay_kwargs)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %.1fs",
                description, attempt, max_attempts, e, delay,
                extra={"attempt": attempt})
            await sleep(delay)
