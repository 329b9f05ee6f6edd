"""
Order Submission Queue

Admits submitted orders into processing up to a fixed concurrency limit and
holds the rest in arrival order until capacity frees up. Each submission gets
its own future, resolved exactly once with the processor's result or error.

Admission happens on the event loop thread without any ``await`` between the
capacity check and the counter increment, so it needs no lock. Several items
may be admitted in the same tick when capacity allows.

There is no retry, timeout or cancellation propagation: an admitted item runs
until its processor returns or raises, even if the submitter stops waiting.
Queued items live only in memory.

Usage:
    queue = OrderQueue(max_concurrency=5)
    result = await queue.submit(order_payload, submitted_by=user.id,
                                processor=place_order)
"""

import asyncio
import logging
import random
import string
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)

Processor = Callable[["QueueItem"], Awaitable[Any]]


def _generate_item_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"order_{int(time.time() * 1000)}_{suffix}"


@dataclass
class QueueItem:
    """
    A single submission waiting for, or undergoing, processing.

    Attributes:
        payload: Opaque request data handed to the processor
        submitted_by: Identifier of the submitting user
        processor: Coroutine function that does the work
        future: Completion handle returned to the submitter
        id: Unique id generated at enqueue time
        enqueue_time: Wall-clock time of submission
    """
    payload: Any
    submitted_by: str
    processor: Processor
    future: asyncio.Future
    id: str = field(default_factory=_generate_item_id)
    enqueue_time: datetime = field(default_factory=datetime.now)


async def echo_processor(item: QueueItem) -> dict[str, Any]:
    """Fallback processor: acknowledges the payload without side effects."""
    await asyncio.sleep(0)
    result = {
        "order_id": item.id,
        "status": "processed",
        "timestamp": int(time.time() * 1000),
    }
    if isinstance(item.payload, dict):
        result.update(item.payload)
    return result


class OrderQueue:
    """
    FIFO queue with a bounded number of concurrently running items.

    Attributes:
        max_concurrency: Upper bound on items processing at any instant
        processor: Default processor used when ``submit`` is not given one
    """

    def __init__(
        self,
        max_concurrency: int = 5,
        processor: Optional[Processor] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.max_concurrency = max_concurrency
        self.processor = processor or echo_processor

        self._pending: Deque[QueueItem] = deque()
        self._active = 0
        self._tasks: set[asyncio.Task] = set()

        logger.info(f"OrderQueue initialized (max_concurrency={max_concurrency})")

    @property
    def active_jobs(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return len(self._pending)

    def submit(
        self,
        payload: Any,
        submitted_by: str = "anonymous",
        processor: Optional[Processor] = None,
    ) -> asyncio.Future:
        """
        Enqueue ``payload`` and return a future for its result.

        Must be called from within a running event loop.
        """
        loop = asyncio.get_running_loop()
        item = QueueItem(
            payload=payload,
            submitted_by=submitted_by,
            processor=processor or self.processor,
            future=loop.create_future(),
        )
        self._pending.append(item)
        logger.debug(
            f"Queued {item.id} from {submitted_by} "
            f"(waiting={len(self._pending)}, active={self._active})"
        )
        self._admit()
        return item.future

    def _admit(self) -> None:
        while self._pending and self._active < self.max_concurrency:
            item = self._pending.popleft()
            self._active += 1
            task = asyncio.ensure_future(self._run(item))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, item: QueueItem) -> None:
        started = time.perf_counter()
        try:
            result = await item.processor(item)
        except asyncio.CancelledError:
            item.future.cancel()
            raise
        except Exception as e:
            logger.warning(f"Order {item.id} failed: {e.__class__.__name__}: {e}")
            if not item.future.done():
                item.future.set_exception(e)
        else:
            if not item.future.done():
                item.future.set_result(result)
            logger.debug(
                f"Order {item.id} processed in "
                f"{(time.perf_counter() - started) * 1000:.1f}ms"
            )
        finally:
            self._active -= 1
            self._admit()

    def status(self) -> dict[str, int]:
        return {
            "queue_length": len(self._pending),
            "active_jobs": self._active,
            "max_concurrency": self.max_concurrency,
        }

    async def drain(self) -> None:
        """Wait until every submitted item has finished."""
        # Waiting items only exist while the limit is reached, so running
        # tasks keep admitting them until both collections are empty.
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
