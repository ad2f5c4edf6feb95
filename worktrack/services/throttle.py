import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar

from config import BULK_CONCURRENCY, BULK_SUBMIT_DELAY_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class SubmissionThrottle:
    """Bounded-concurrency runner with a fixed pause between submissions.

    With the default concurrency of 1 items run strictly one after another
    and each item after the first waits ``interval_seconds`` once the
    previous one has finished. Higher concurrency keeps the same pause
    between consecutive starts. Writes are never batched into one call so
    a failure is always attributable to a single item.
    """

    def __init__(
        self,
        interval_seconds: float = BULK_SUBMIT_DELAY_SECONDS,
        concurrency: int = BULK_CONCURRENCY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if interval_seconds < 0:
            raise ValueError("interval_seconds cannot be negative")
        self.interval_seconds = interval_seconds
        self.concurrency = concurrency
        self._sleep = sleep

    async def run(
        self,
        items: Iterable[T],
        worker: Callable[[T], Awaitable[R]],
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> List[R]:
        """Run worker over items in order and return results of started items.

        ``should_continue`` is checked right before each start; once it
        returns False no further item starts, while items already started
        run to completion.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        tasks: List[asyncio.Task] = []

        async def _guarded(item: T) -> R:
            try:
                return await worker(item)
            finally:
                semaphore.release()

        for index, item in enumerate(items):
            await semaphore.acquire()
            if index > 0 and self.interval_seconds > 0:
                await self._sleep(self.interval_seconds)
            if should_continue is not None and not should_continue():
                semaphore.release()
                logger.info(f"Submission stopped before item {index + 1}")
                break
            tasks.append(asyncio.ensure_future(_guarded(item)))

        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))
