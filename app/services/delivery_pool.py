import asyncio
import logging
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

DeliveryHandler = Callable[[UUID], Awaitable[None]]


class DeliveryWorkerPool:
    """Fixed set of worker tasks draining a bounded queue of delivery ids.

    ``submit`` never blocks: when the queue is full it returns ``False``
    and the caller leaves the record for the retry poller.  A handler
    exception is logged and never stops its worker.
    """

    def __init__(
        self,
        handler: DeliveryHandler,
        workers: int = 10,
        queue_size: int = 1000,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._handler = handler
        self._worker_count = workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"webhook-delivery-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("Webhook delivery pool started with %d worker(s)", self._worker_count)

    def submit(self, delivery_id: UUID) -> bool:
        """Queue one delivery; ``False`` when the queue is full."""
        self.start()
        try:
            self._queue.put_nowait(delivery_id)
        except asyncio.QueueFull:
            logger.warning("Webhook delivery queue full, deferring delivery %s", delivery_id)
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued delivery has been handled."""
        await self._queue.join()

    async def stop(self, drain_timeout: Optional[float] = 10.0) -> None:
        """Let queued work finish (up to *drain_timeout* seconds), then cancel workers."""
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Webhook delivery pool stopped with %d undelivered item(s)",
                self._queue.qsize(),
            )
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Webhook delivery pool stopped")

    async def _worker(self, number: int) -> None:
        while True:
            delivery_id = await self._queue.get()
            try:
                await self._handler(delivery_id)
            except Exception:
                logger.error(
                    "Worker %d failed to process delivery %s",
                    number,
                    delivery_id,
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
