"""Retry policy with exponential backoff and jitter.

``with_retry`` runs a zero-argument coroutine function, classifying each
failure as transient (retry) or permanent (stop). The delay before retry *n*
is ``min(base_delay * 2 ** (n - 1) * jitter, max_delay)`` with ``jitter``
drawn uniformly from ``JITTER_RANGE``.

Every attempt calls the operation from scratch; nothing carries over from a
failed attempt except the recorded error.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Tuple, TypeVar

import httpx

from trackloom.core.errors import (
    PermanentFailureError,
    RetryExhaustedError,
    TransientCollaboratorError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RANGE: Tuple[float, float] = (0.7, 1.3)
DEFAULT_MAX_DELAY = 30.0

# Network/timeout-class signatures worth retrying.
TRANSIENT_ERRORS: Tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    httpx.TimeoutException,
    httpx.NetworkError,
    TransientCollaboratorError,
)


def is_transient_error(error: BaseException) -> bool:
    """Default classifier: True for network/timeout-class errors."""
    return isinstance(error, TRANSIENT_ERRORS)


def compute_delay(
    retry_number: int,
    base_delay: float,
    *,
    max_delay: float = DEFAULT_MAX_DELAY,
    rng: Optional[random.Random] = None,
) -> float:
    """Backoff before retry *retry_number* (1-based), in seconds."""
    jitter = (rng or random).uniform(*JITTER_RANGE)
    return min(base_delay * 2 ** (retry_number - 1) * jitter, max_delay)


@dataclass
class RetryOutcome(Generic[T]):
    """A successful run: the value plus the transient failures survived."""

    value: T
    attempts: int
    history: List[BaseException] = field(default_factory=list)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    classify_error: Callable[[BaseException], bool] = is_transient_error,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = DEFAULT_MAX_DELAY,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    label: str = "operation",
) -> RetryOutcome[T]:
    """Execute *operation* with classified retry.

    Args:
        operation: Zero-argument coroutine function; must be safe to re-run.
        classify_error: Returns True when an error is transient.
        max_attempts: Total attempts allowed, including the first.
        base_delay: Backoff base in seconds.
        max_delay: Cap on any single delay, in seconds.
        sleep: Awaitable used to wait between attempts.
        rng: Random source for jitter.
        label: Name used in log messages.

    Returns:
        RetryOutcome with the operation's value.

    Raises:
        PermanentFailureError: On the first error classified as permanent.
        RetryExhaustedError: When every attempt failed transiently.
        ValueError: If max_attempts is below 1.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    history: List[BaseException] = []
    attempt = 0
    while True:
        attempt += 1
        try:
            value = await operation()
        except Exception as e:  # noqa: BLE001
            history.append(e)
            if not classify_error(e):
                raise PermanentFailureError(
                    e, attempts=attempt, history=history
                ) from e
            if attempt >= max_attempts:
                raise RetryExhaustedError(e, attempts=attempt, history=history) from e

            delay = compute_delay(attempt, base_delay, max_delay=max_delay, rng=rng)
            logger.warning(
                "%s failed transiently (attempt %d/%d): %s; retrying in %.2fs",
                label,
                attempt,
                max_attempts,
                e,
                delay,
            )
            await sleep(delay)
            continue
        return RetryOutcome(value=value, attempts=attempt, history=history)
