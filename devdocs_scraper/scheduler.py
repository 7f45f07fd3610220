"""Fixed-size concurrent batches with a pause between them.

Each batch runs its workers concurrently and fully drains before the next one
starts. Outcomes are yielded one item at a time, in submission order, so the
consumer can account for an item as soon as it and the items ahead of it in
the batch are done.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from .errors import ContractViolation

logger = logging.getLogger("devdocs_scraper")

T = TypeVar("T")


@dataclass
class ItemOutcome(Generic[T]):
    index: int
    batch: int
    item: T
    result: Any = None
    error: Optional[BaseException] = None
    last_in_batch: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def partition(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def _guarded(worker: Callable[[T], Awaitable[Any]], item: T):
    """Run one worker and hand back (result, error) instead of raising.

    Contract violations are not item failures and propagate to the consumer.
    """
    try:
        return await worker(item), None
    except (asyncio.CancelledError, ContractViolation):
        raise
    except Exception as e:
        return None, e


async def run_batches(
    items: Sequence[T],
    concurrency: int,
    inter_batch_delay: float,
    worker: Callable[[T], Awaitable[Any]],
) -> AsyncIterator[ItemOutcome[T]]:
    if inter_batch_delay < 0:
        raise ValueError(f"inter_batch_delay must not be negative, got {inter_batch_delay}")
    batches = partition(items, concurrency)

    index = 0
    for batch_no, batch in enumerate(batches):
        if batch_no > 0 and inter_batch_delay:
            await asyncio.sleep(inter_batch_delay)

        logger.debug(f"Batch {batch_no + 1}/{len(batches)}: {len(batch)} items")
        tasks = [asyncio.ensure_future(_guarded(worker, item)) for item in batch]
        try:
            for pos, (item, task) in enumerate(zip(batch, tasks)):
                result, error = await task
                yield ItemOutcome(
                    index=index,
                    batch=batch_no,
                    item=item,
                    result=result,
                    error=error,
                    last_in_batch=pos == len(batch) - 1,
                )
                index += 1
        finally:
            # consumer stopped early or a worker raised: leave nothing running or unobserved
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
