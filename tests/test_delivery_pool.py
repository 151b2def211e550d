import asyncio
from uuid import uuid4

import pytest

from app.services.delivery_pool import DeliveryWorkerPool


class TestDeliveryWorkerPool:
    @pytest.mark.asyncio
    async def test_processes_every_submitted_id(self):
        handled = []

        async def handler(delivery_id):
            handled.append(delivery_id)

        pool = DeliveryWorkerPool(handler, workers=2, queue_size=10)
        ids = [uuid4() for _ in range(5)]
        for delivery_id in ids:
            assert pool.submit(delivery_id) is True

        await pool.join()
        await pool.stop()

        assert sorted(handled) == sorted(ids)
        assert pool.running is False

    @pytest.mark.asyncio
    async def test_handler_error_does_not_kill_worker(self):
        handled = []
        bad = uuid4()

        async def handler(delivery_id):
            if delivery_id == bad:
                raise RuntimeError("boom")
            handled.append(delivery_id)

        pool = DeliveryWorkerPool(handler, workers=1, queue_size=10)
        good = uuid4()
        pool.submit(bad)
        pool.submit(good)

        await pool.join()
        await pool.stop()

        assert handled == [good]

    @pytest.mark.asyncio
    async def test_full_queue_rejects_without_blocking(self):
        async def handler(delivery_id):
            pass

        pool = DeliveryWorkerPool(handler, workers=1, queue_size=1)

        assert pool.submit(uuid4()) is True
        assert pool.submit(uuid4()) is False
        assert pool.pending == 1

        await pool.stop()

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded_by_worker_count(self):
        active = 0
        peak = 0
        release = asyncio.Event()

        async def handler(delivery_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await release.wait()
            active -= 1

        pool = DeliveryWorkerPool(handler, workers=3, queue_size=20)
        for _ in range(10):
            pool.submit(uuid4())
        await asyncio.sleep(0.05)

        assert peak == 3

        release.set()
        await pool.join()
        await pool.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_stuck_work_after_drain_timeout(self):
        async def handler(delivery_id):
            await asyncio.Event().wait()

        pool = DeliveryWorkerPool(handler, workers=1, queue_size=5)
        pool.submit(uuid4())
        await asyncio.sleep(0)

        await pool.stop(drain_timeout=0.05)

        assert pool.running is False

    @pytest.mark.asyncio
    async def test_stop_without_start_is_a_no_op(self):
        async def handler(delivery_id):
            pass

        pool = DeliveryWorkerPool(handler)
        await pool.stop()
        assert pool.running is False

    def test_rejects_zero_workers(self):
        async def handler(delivery_id):
            pass

        with pytest.raises(ValueError):
            DeliveryWorkerPool(handler, workers=0)
