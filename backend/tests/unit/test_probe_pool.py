"""
Unit tests for ProbeWorkerPool
"""

import asyncio
import contextlib

import pytest

from availarr.workers.probe_pool import ProbeWorkerPool


async def square(x):
    await asyncio.sleep(0)
    return x * x


class TestDistribute:

    def test_round_robin(self):
        assert ProbeWorkerPool.distribute([0, 1, 2, 3, 4], 2) == [[0, 2, 4], [1, 3]]

    def test_more_workers_than_items(self):
        assert ProbeWorkerPool.distribute([1], 3) == [[1], [], []]


class TestRunCycle:

    @pytest.mark.asyncio
    async def test_every_item_processed_once(self):
        async with ProbeWorkerPool(square, num_workers=3) as pool:
            pairs = await pool.run_cycle(list(range(10)))

        assert sorted(pairs) == [(x, x * x) for x in range(10)]

    @pytest.mark.asyncio
    async def test_results_grouped_by_worker(self):
        async with ProbeWorkerPool(square, num_workers=2) as pool:
            pairs = await pool.run_cycle([1, 2, 3, 4])

        assert [item for item, _ in pairs] == [1, 3, 2, 4]

    @pytest.mark.asyncio
    async def test_multiple_cycles_reuse_workers(self):
        async with ProbeWorkerPool(square, num_workers=2) as pool:
            await pool.run_cycle([1, 2])
            await pool.run_cycle([3, 4, 5])
            status = pool.get_status()

        assert sum(status["processed"].values()) == 5

    @pytest.mark.asyncio
    async def test_failed_item_gives_none(self):
        async def handler(x):
            if x == 2:
                raise ValueError("bad")
            return x

        async with ProbeWorkerPool(handler, num_workers=1) as pool:
            pairs = await pool.run_cycle([1, 2, 3])

        assert pairs == [(1, 1), (2, None), (3, 3)]

    @pytest.mark.asyncio
    async def test_dead_worker_share_is_skipped(self):
        """Items routed to a dead worker are left out; the pool keeps going."""
        async with ProbeWorkerPool(square, num_workers=2) as pool:
            dead = pool._workers[1].task
            dead.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await dead

            pairs = await pool.run_cycle([1, 2, 3, 4])

            assert pool.alive_count == 1

        assert pairs == [(1, 1), (3, 9)]

    @pytest.mark.asyncio
    async def test_run_cycle_requires_start(self):
        pool = ProbeWorkerPool(square, num_workers=1)

        with pytest.raises(RuntimeError):
            await pool.run_cycle([1])

    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError):
            ProbeWorkerPool(square, num_workers=0)

    @pytest.mark.asyncio
    async def test_stop_shuts_down_workers(self):
        pool = ProbeWorkerPool(square, num_workers=2)
        await pool.start()

        await pool.stop()

        assert pool.alive_count == 0
        assert pool.get_status()["running"] is False
