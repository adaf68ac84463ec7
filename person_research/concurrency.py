"""Bounded fan-out over async work items."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrency: int,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``max_concurrency`` in flight.

    Results are returned in input order. With ``max_concurrency=1`` items are
    processed strictly one after another in input order.

    ``worker`` should handle its own failures: an exception escaping it cancels
    the remaining items, as in ``asyncio.TaskGroup``.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(_run(item)) for item in items]
    return [task.result() for task in tasks]
