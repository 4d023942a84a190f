import asyncio
import dataclasses
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from ..config import BatchOptions
from ..errors import ItemProcessingError
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class ItemFailure:
    """Placed in the output slot of an item whose processor raised."""

    index: int
    item: Any
    error: str
    exception: Optional[BaseException] = None

    def to_dict(self) -> dict:
        return {"index": self.index, "error": self.error, "item": _describe(self.item)}


def _describe(item: Any) -> Any:
    if hasattr(item, "to_dict"):
        return item.to_dict()
    return item


def is_failure(result: Any) -> bool:
    return isinstance(result, ItemFailure)


class _Progress:
    def __init__(self, total: int, every: int, callback: Optional[ProgressCallback]):
        self.total = total
        self.every = max(1, every)
        self.callback = callback
        self.completed = 0
        self.failed = 0

    def advance(self, failed: bool = False) -> None:
        self.completed += 1
        if failed:
            self.failed += 1
        if self.completed % self.every == 0 or self.completed == self.total:
            logger.info(
                f"Progress: {self.completed}/{self.total} items ({self.failed} failed)"
            )
        if self.callback is not None:
            self.callback(self.completed, self.total)


class BatchRunner:
    """
    Runs a per-item processor over a collection with bounded concurrency
    and a calls-per-interval rate limit.

    Items are split into sequential batches of `batch_size`. Inside a batch
    every item waits for a concurrency slot (asyncio.Semaphore) and then for
    the rate limiter before its processor starts; the batch settles fully
    before the next one begins.

    The returned list has one slot per input item, in input order. A
    processor exception never aborts the run: the slot holds an ItemFailure
    instead. There is no retry.
    """

    def __init__(
        self,
        options: Optional[BatchOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.options = options or BatchOptions()
        self.progress_callback = progress_callback

    async def run(
        self,
        items: Sequence[Any],
        processor: Callable[[Any], Any],
        options: Optional[BatchOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Any]:
        options = options or self.options
        items = list(items)
        total = len(items)
        results: List[Any] = [None] * total
        if not items:
            return results

        semaphore = asyncio.Semaphore(options.concurrency)
        limiter = RateLimiter(options.rate_limit) if options.rate_limit else None
        progress = _Progress(total, options.progress_every, self.progress_callback)

        batches = [
            range(start, min(start + options.batch_size, total))
            for start in range(0, total, options.batch_size)
        ]
        logger.info(
            f"Processing {total} items in {len(batches)} batch(es) "
            f"(concurrency={options.concurrency}, rate_limit={limiter})"
        )

        for batch_number, batch in enumerate(batches):
            if batch_number and options.inter_batch_pause_ms:
                await asyncio.sleep(options.inter_batch_pause_ms / 1000.0)

            tasks = []
            for index in batch:
                await semaphore.acquire()
                if cancel_event is not None and cancel_event.is_set():
                    semaphore.release()
                    results[index] = ItemFailure(index=index, item=items[index], error=CANCELLED)
                    continue
                tasks.append(
                    asyncio.create_task(
                        self._run_item(
                            index, items[index], processor, results, semaphore, limiter, progress
                        )
                    )
                )
            if tasks:
                await asyncio.gather(*tasks)

        cancelled = sum(1 for r in results if is_failure(r) and r.error == CANCELLED)
        if cancelled:
            logger.info(f"Run cancelled, {cancelled} item(s) were not started")
        return results

    async def _run_item(self, index, item, processor, results, semaphore, limiter, progress):
        failed = False
        try:
            if limiter is not None:
                await limiter.acquire()
            results[index] = await self._invoke(processor, item)
        except Exception as e:
            failed = True
            logger.error(f"Item {index} failed: {e}")
            error = ItemProcessingError(str(e), item=item, index=index)
            error.__cause__ = e
            results[index] = ItemFailure(index=index, item=item, error=str(e), exception=error)
        finally:
            semaphore.release()
        progress.advance(failed)

    @staticmethod
    async def _invoke(processor, item):
        if inspect.iscoroutinefunction(processor):
            return await processor(item)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, processor, item)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def process_sequential(self, items, processor, options=None, cancel_event=None):
        """One item at a time, rate limit applied across the whole collection."""
        items = list(items)
        options = options or self.options
        preset = dataclasses.replace(options, concurrency=1, batch_size=max(1, len(items)))
        return await self.run(items, processor, preset, cancel_event)

    async def process_parallel(
        self, items, processor, concurrency: int, options=None, cancel_event=None
    ):
        """Up to `concurrency` items at once across the whole collection."""
        items = list(items)
        options = options or self.options
        preset = dataclasses.replace(
            options, concurrency=concurrency, batch_size=max(1, len(items))
        )
        return await self.run(items, processor, preset, cancel_event)

    def run_sync(self, items, processor, options=None) -> List[Any]:
        """Synchronous wrapper for run()."""
        return asyncio.run(self.run(items, processor, options))
