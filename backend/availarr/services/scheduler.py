"""
Chunked Concurrency Scheduler

Runs a coroutine handler over a list of items, ``chunk_size`` at a time:
every item of a chunk runs concurrently, and the next chunk starts only
after the whole chunk has finished. An optional pause between chunks keeps
the embed mirrors from rate-limiting us.

The ``on_chunk_done`` callback fires after a chunk's writes have completed,
which is where jobs advance their checkpoint.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Split ``items`` into consecutive slices of at most ``size``."""
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


async def run_in_chunks(
    items: Sequence[T],
    chunk_size: int,
    handler: Callable[[T], Awaitable[R]],
    pause: float = 0.0,
    on_chunk_done: Optional[Callable[[int, int], Any]] = None
) -> List[Optional[R]]:
    """
    Process items in sequential chunks of concurrent handler calls.

    Args:
        items: Items to process, in order
        chunk_size: Maximum concurrent handler calls
        handler: Coroutine function called once per item
        pause: Seconds to sleep between chunks (not after the last)
        on_chunk_done: Called with (chunk_index, items_done) after each chunk

    Returns:
        Handler results in item order; None where a handler raised
    """
    results: List[Optional[R]] = []
    chunks = chunked(items, chunk_size)
    done = 0

    for index, chunk in enumerate(chunks):
        outcomes = await asyncio.gather(*(handler(item) for item in chunk), return_exceptions=True)

        for item, outcome in zip(chunk, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"✗ Handler failed for {item!r}: {type(outcome).__name__}: {outcome}")
                results.append(None)
            else:
                results.append(outcome)

        done += len(chunk)
        if on_chunk_done is not None:
            on_chunk_done(index, done)

        if pause and index < len(chunks) - 1:
            await asyncio.sleep(pause)

    return results
