"""Bounded-concurrency execution of per-item async operations.

``run_all`` starts at most ``max_concurrent`` operations at a time and admits
the next waiting item as soon as one finishes. Results come back index-aligned
with the input, whatever order the operations finish in, and a failing item
never affects the others: its exception is captured in its TaskOutcome.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class TaskOutcome(Generic[R]):
    """Outcome of one item: either a value or the exception it raised."""

    index: int
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split *items* into consecutive chunks of at most *size* items."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def run_all(
    items: Sequence[T],
    operation: Callable[[T, int], Awaitable[R]],
    max_concurrent: int,
) -> List[TaskOutcome[R]]:
    """Run ``operation(item, index)`` for every item under a concurrency cap.

    Args:
        items: Inputs, one operation each.
        operation: Coroutine function receiving the item and its index.
        max_concurrent: Maximum operations outstanding at any instant.

    Returns:
        One TaskOutcome per item; slot ``i`` describes ``items[i]``.

    Raises:
        ValueError: If max_concurrent is below 1.
    """
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")

    semaphore = asyncio.Semaphore(max_concurrent)

    async def admit(index: int, item: T) -> TaskOutcome[R]:
        async with semaphore:
            try:
                value = await operation(item, index)
            except Exception as e:  # noqa: BLE001
                logger.debug("Item %d failed: %s", index, e)
                return TaskOutcome(index=index, error=e)
            return TaskOutcome(index=index, value=value)

    return list(await asyncio.gather(*(admit(i, item) for i, item in enumerate(items))))
