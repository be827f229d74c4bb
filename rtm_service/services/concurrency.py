"""
Bounded fan-out over asyncio for per-item fetch pipelines.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY_LIMIT = 5


@dataclass
class ItemFailure:
    """An item whose worker raised, with the exception it raised."""
    
    index: int
    item: Any
    error: Exception


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[Any]],
    limit: int = DEFAULT_CONCURRENCY_LIMIT
) -> List[ItemFailure]:
    """
    Run ``worker`` over ``items`` with at most ``limit`` invocations in flight.
    
    Exactly ``limit`` workers pull from one shared cursor; each finishes its
    current item before taking the next. Every item is attempted exactly
    once and completion order is unspecified. An exception from one item is
    recorded and does not stop the others.
    
    Args:
        items: Inputs to process
        worker: Coroutine function applied to each item
        limit: Worker count ceiling (default: 5)
    
    Returns:
        Failures in the order they happened (empty when every item succeeded)
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")
    
    cursor = iter(enumerate(items))
    failures: List[ItemFailure] = []
    
    async def drain() -> None:
        for index, item in cursor:
            try:
                await worker(item)
            except Exception as e:
                logger.warning(f"Worker failed for item {item!r}: {type(e).__name__}: {e}")
                failures.append(ItemFailure(index=index, item=item, error=e))
    
    await asyncio.gather(*(drain() for _ in range(limit)))
    return failures
