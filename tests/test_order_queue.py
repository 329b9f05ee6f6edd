"""
Unit tests for OrderQueue.
"""

import asyncio

import pytest

from canteen.services.order_queue import OrderQueue, QueueItem


class Gate:
    """Processor that blocks until released and records concurrency."""

    def __init__(self):
        self.release = asyncio.Event()
        self.active = 0
        self.peak = 0
        self.started: list = []

    async def __call__(self, item: QueueItem):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.started.append(item.payload)
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return item.payload * 10


class TestOrderQueue:
    """Test cases for OrderQueue."""

    def test_rejects_invalid_concurrency(self):
        with pytest.raises(ValueError):
            OrderQueue(max_concurrency=0)

    @pytest.mark.asyncio
    async def test_seven_orders_with_limit_five(self):
        """Five run at once, two wait, all seven resolve."""
        gate = Gate()
        queue = OrderQueue(max_concurrency=5, processor=gate)

        futures = [queue.submit(n, submitted_by="u1") for n in range(7)]
        assert queue.status() == {"queue_length": 2, "active_jobs": 5, "max_concurrency": 5}

        await asyncio.sleep(0)
        assert gate.active == 5

        gate.release.set()
        results = await asyncio.gather(*futures)

        assert results == [n * 10 for n in range(7)]
        assert gate.peak == 5
        assert queue.status()["active_jobs"] == 0
        assert queue.status()["queue_length"] == 0

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeds_limit(self):
        active = 0
        peak = 0

        async def slow(item):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return item.payload

        queue = OrderQueue(max_concurrency=3, processor=slow)
        results = await asyncio.gather(*[queue.submit(n) for n in range(20)])

        assert results == list(range(20))
        assert peak == 3

    @pytest.mark.asyncio
    async def test_admits_in_submission_order(self):
        gate = Gate()
        gate.release.set()
        queue = OrderQueue(max_concurrency=1, processor=gate)

        await asyncio.gather(*[queue.submit(n) for n in range(5)])
        assert gate.started == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_failure_only_affects_its_own_submitter(self):
        async def flaky(item):
            await asyncio.sleep(0)
            if item.payload == "bad":
                raise ValueError("Insufficient quantity")
            return item.payload

        queue = OrderQueue(max_concurrency=2, processor=flaky)
        good_1 = queue.submit("a")
        bad = queue.submit("bad")
        good_2 = queue.submit("b")

        assert await good_1 == "a"
        with pytest.raises(ValueError, match="Insufficient quantity"):
            await bad
        assert await good_2 == "b"
        assert queue.active_jobs == 0

    @pytest.mark.asyncio
    async def test_per_submission_processor_overrides_default(self):
        async def upper(item):
            return item.payload.upper()

        queue = OrderQueue(max_concurrency=1)
        assert await queue.submit("x", processor=upper) == "X"

    @pytest.mark.asyncio
    async def test_default_processor_echoes_payload(self):
        queue = OrderQueue()
        result = await queue.submit({"canteen_id": "c1"}, submitted_by="u1")

        assert result["status"] == "processed"
        assert result["canteen_id"] == "c1"
        assert result["order_id"].startswith("order_")

    @pytest.mark.asyncio
    async def test_drain_waits_for_queued_items(self):
        done = []

        async def record(item):
            await asyncio.sleep(0.005)
            done.append(item.payload)

        queue = OrderQueue(max_concurrency=2, processor=record)
        for n in range(6):
            queue.submit(n)

        await queue.drain()
        assert sorted(done) == list(range(6))
        assert queue.queue_length == 0
