"""
Bounded worker pool for async fan-out.

A fixed number of worker coroutines pull the next index from a shared
cursor, so no more than `limit` calls of the mapped function are in flight.
"""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """
    Apply an async function to every item with bounded concurrency.

    Args:
        items: Items to process
        limit: Maximum number of concurrent calls (at least 1 is used)
        fn: Coroutine function applied to each item

    Returns:
        Results in input order

    Raises:
        Any exception raised by fn; remaining workers are cancelled.
    """
    results: list = [None] * len(items)
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await fn(items[index])

    worker_count = min(max(1, limit), len(items))
    if worker_count == 0:
        return []

    tasks = [asyncio.create_task(worker()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
    return results
