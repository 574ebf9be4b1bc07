"""Tests for the bounded-concurrency scheduler."""

import asyncio
import time

import pytest

from trackloom.core.scheduler import TaskOutcome, chunked, run_all


def test_chunked() -> None:
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


@pytest.mark.asyncio
async def test_never_exceeds_max_concurrent() -> None:
    active = 0
    peak = 0

    async def operation(item: int, index: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01 * (item % 3 + 1))
        active -= 1
        return item

    outcomes = await run_all(list(range(12)), operation, max_concurrent=4)

    assert peak == 4
    assert [o.value for o in outcomes] == list(range(12))


@pytest.mark.asyncio
async def test_results_are_index_aligned_regardless_of_finish_order() -> None:
    delays = [0.05, 0.01, 0.03, 0.0]

    async def operation(delay: float, index: int) -> str:
        await asyncio.sleep(delay)
        return f"item-{index}"

    outcomes = await run_all(delays, operation, max_concurrent=4)

    assert [o.index for o in outcomes] == [0, 1, 2, 3]
    assert [o.value for o in outcomes] == ["item-0", "item-1", "item-2", "item-3"]


@pytest.mark.asyncio
async def test_failures_are_captured_per_item() -> None:
    started = []

    async def operation(item: int, index: int) -> int:
        started.append(item)
        await asyncio.sleep(0)
        if item == 2:
            raise RuntimeError("boom")
        return item * 10

    outcomes = await run_all([1, 2, 3], operation, max_concurrent=1)

    assert sorted(started) == [1, 2, 3]
    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, RuntimeError)
    assert outcomes[1].value is None
    assert outcomes[2] == TaskOutcome(index=2, value=30)


@pytest.mark.asyncio
async def test_six_items_two_slots_take_three_rounds() -> None:
    delay = 0.1

    async def operation(item: int, index: int) -> int:
        await asyncio.sleep(delay)
        return item

    start = time.perf_counter()
    await run_all(list(range(6)), operation, max_concurrent=2)
    elapsed = time.perf_counter() - start

    assert 2.5 * delay <= elapsed < 4.5 * delay


@pytest.mark.asyncio
async def test_empty_input() -> None:
    async def operation(item: int, index: int) -> int:
        return item

    assert await run_all([], operation, max_concurrent=2) == []


@pytest.mark.asyncio
async def test_invalid_max_concurrent() -> None:
    async def operation(item: int, index: int) -> int:
        return item

    with pytest.raises(ValueError):
        await run_all([1], operation, max_concurrent=0)
