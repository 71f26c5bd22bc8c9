"""Running several coroutines at once without leaving stragglers."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, TypeVar

T = TypeVar("T")


async def gather_all(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Like ``asyncio.gather``, but nothing outlives a failure.

    If any task raises, or the caller is cancelled, every other task is
    cancelled and awaited before the exception propagates, so their
    connections are closed by the time this returns.

    Returns:
        Results in the order the awaitables were given.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
