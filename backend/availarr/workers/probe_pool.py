"""
Probe Worker Pool

Fixed pool of long-lived asyncio workers used by the refresh job. Each
worker owns an inbound queue (sub-batches to probe) and an outbound queue
(results). A cycle splits a store batch round-robin across the workers,
hands each worker exactly one sub-batch and waits for that worker's reply
before giving it more.

Features:
- One outstanding sub-batch per worker
- Items of a sub-batch probed concurrently inside the worker
- Dead workers are logged and left dead for the rest of the run; their
  share of later batches is skipped
- Graceful shutdown via sentinel, cancellation as fallback
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_STOP = None


class _Worker:
    """Queues and task of one pool worker."""

    def __init__(self, worker_id: int):
        self.worker_id = worker_id
        self.inbound: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.outbound: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.task: Optional[asyncio.Task] = None
        self.processed = 0

    @property
    def alive(self) -> bool:
        return self.task is not None and not self.task.done()


class ProbeWorkerPool:
    """
    Pool of probe workers fed one sub-batch per cycle.

    Usage:
        async with ProbeWorkerPool(check_item, num_workers=4) as pool:
            for batch in store.iter_batches(100):
                for item, result in await pool.run_cycle(batch):
                    ...
    """

    def __init__(self, handler: Callable[[Any], Awaitable[Any]], num_workers: int = 1):
        """
        Initialize the pool.

        Args:
            handler: Coroutine function applied to each item by the workers
            num_workers: Number of workers (at least 1)
        """
        if num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {num_workers}")
        self.handler = handler
        self.num_workers = num_workers
        self._workers: List[_Worker] = []
        self._running = False

    async def __aenter__(self) -> 'ProbeWorkerPool':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Spawn the workers."""
        if self._running:
            logger.warning("Probe worker pool already running")
            return

        self._workers = [_Worker(i) for i in range(self.num_workers)]
        for worker in self._workers:
            worker.task = asyncio.create_task(self._worker_loop(worker), name=f"probe-worker-{worker.worker_id}")
        self._running = True
        logger.info(f"Probe worker pool started ({self.num_workers} workers)")

    async def stop(self) -> None:
        """Send the stop sentinel to live workers and wait for them."""
        if not self._running:
            return

        logger.info("Stopping probe worker pool...")
        for worker in self._workers:
            if worker.alive:
                await worker.inbound.put(_STOP)

        for worker in self._workers:
            if not worker.alive:
                continue
            try:
                await asyncio.wait_for(worker.task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning(f"⚠ Worker {worker.worker_id} did not stop in time, cancelled")

        self._running = False
        logger.info("Probe worker pool stopped")

    async def _worker_loop(self, worker: _Worker) -> None:
        while True:
            batch = await worker.inbound.get()
            if batch is _STOP:
                return

            outcomes = await asyncio.gather(*(self.handler(item) for item in batch), return_exceptions=True)
            results = []
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(
                        f"✗ Worker {worker.worker_id} failed on {item!r}: {type(outcome).__name__}: {outcome}"
                    )
                    outcome = None
                results.append(outcome)

            worker.processed += len(batch)
            await worker.outbound.put(results)

    @staticmethod
    def distribute(items: Sequence[Any], num_workers: int) -> List[List[Any]]:
        """Split items round-robin: item i goes to worker i % num_workers."""
        shares: List[List[Any]] = [[] for _ in range(num_workers)]
        for index, item in enumerate(items):
            shares[index % num_workers].append(item)
        return shares

    def _report_dead(self, worker: _Worker) -> None:
        error = worker.task.exception() if worker.task and not worker.task.cancelled() else None
        logger.error(
            f"✗ Worker {worker.worker_id} is dead"
            + (f": {type(error).__name__}: {error}" if error else "")
            + ". Its items are skipped for this run."
        )

    async def _collect(self, worker: _Worker) -> Optional[List[Any]]:
        """Wait for a worker's reply, or for the worker to die."""
        reply = asyncio.ensure_future(worker.outbound.get())
        done, _ = await asyncio.wait({reply, worker.task}, return_when=asyncio.FIRST_COMPLETED)
        if reply in done:
            return reply.result()
        reply.cancel()
        self._report_dead(worker)
        return None

    async def run_cycle(self, items: Sequence[Any]) -> List[Tuple[Any, Any]]:
        """
        Probe one store batch across the pool.

        Returns:
            (item, result) pairs for every item a live worker handled, grouped
            by worker in worker order
        """
        if not self._running:
            raise RuntimeError("Probe worker pool is not running")

        shares = self.distribute(items, self.num_workers)
        dispatched: List[Tuple[_Worker, List[Any]]] = []

        for worker, share in zip(self._workers, shares):
            if not share:
                continue
            if not worker.alive:
                self._report_dead(worker)
                continue
            await worker.inbound.put(share)
            dispatched.append((worker, share))

        pairs: List[Tuple[Any, Any]] = []
        for worker, share in dispatched:
            results = await self._collect(worker)
            if results is None:
                continue
            pairs.extend(zip(share, results))
        return pairs

    @property
    def alive_count(self) -> int:
        return sum(1 for worker in self._workers if worker.alive)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "num_workers": self.num_workers,
            "alive": self.alive_count,
            "processed": {worker.worker_id: worker.processed for worker in self._workers},
        }
