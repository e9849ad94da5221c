"""Fixed-size async worker pool over a shared cursor."""

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    concurrency: int,
    mapper: Callable[[T], Awaitable[R]],
) -> List[R]:
    """Apply *mapper* to every item with at most *concurrency* in flight.

    ``min(concurrency, len(items))`` workers pull the next index from a
    shared cursor until the list is exhausted.  Results come back in input
    order regardless of completion order.  If a mapper raises, the other
    workers are cancelled and the exception propagates.
    """
    if not items:
        return []

    results: List[R] = [None] * len(items)  # type: ignore[list-item]
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await mapper(items[index])

    workers = max(1, min(concurrency, len(items)))
    tasks = [asyncio.ensure_future(worker()) for _ in range(workers)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        # first failure wins; siblings must not keep pulling items
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return results
