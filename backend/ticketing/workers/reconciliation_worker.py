"""
Reconciliation worker: consumes due jobs from the delayed queue.

Lifecycle:
    worker = ReconciliationWorker(queue, service, ...)
    await worker.start()   # spawns the poll loop as an asyncio task
    ...
    await worker.stop()    # finishes the current batch, then exits

Failure policy per job:
    - TransientStoreError -> retry with backoff, dead-letter after max attempts
    - NotFoundError       -> dead-letter immediately (will never succeed)
    - anything else       -> logged with traceback, retried (bounded)

Besides jobs, the loop periodically sweeps for Pending bookings that never
got a job and closes booking on events that have started.
"""

import asyncio
import time
from typing import Optional

import structlog

from ticketing.core.exceptions import NotFoundError, TransientStoreError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_queue_stats, record_reconciliation
from ticketing.services.interfaces.delayed_queue import ClaimedJob, DelayedQueue
from ticketing.services.reconciliation_service import ReconciliationService

logger = get_logger(__name__)


class ReconciliationWorker:

    def __init__(
        self,
        queue: DelayedQueue,
        service: ReconciliationService,
        *,
        poll_interval: float = 1.0,
        batch_size: int = 20,
        sweep_interval: float = 60.0,
    ):
        self._queue = queue
        self._service = service
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._sweep_interval = sweep_interval
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._last_sweep = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="reconciliation-worker")
        logger.info("reconciliation_worker_started", poll_interval=self._poll_interval, batch_size=self._batch_size)

    async def stop(self, timeout: float = 10.0) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout)
        except asyncio.TimeoutError:
            self._task.cancel()
            logger.warning("reconciliation_worker_cancelled", timeout=timeout)
        self._task = None
        logger.info("reconciliation_worker_stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.run_once()
                if time.monotonic() - self._last_sweep >= self._sweep_interval:
                    await self.run_maintenance()
            except Exception:
                # Queue or store unavailable; keep polling
                logger.exception("reconciliation_worker_loop_error")
                processed = 0

            if processed < self._batch_size:
                try:
                    await asyncio.wait_for(self._stopping.wait(), self._poll_interval)
                except asyncio.TimeoutError:
                    pass

    async def run_once(self) -> int:
        """Claim and process one batch. Returns the number of jobs handled."""
        claimed = await self._queue.claim_due(self._batch_size)
        for item in claimed:
            await self.process(item)
        return len(claimed)

    async def process(self, claimed: ClaimedJob) -> None:
        structlog.contextvars.bind_contextvars(job_id=claimed.job_id, booking_id=claimed.job.booking_id)
        try:
            result = await self._service.reconcile(claimed.job)
        except NotFoundError as exc:
            logger.error("reconciliation_job_dead_lettered", reason=exc.message, attempts=claimed.attempts)
            await self._queue.dead_letter(claimed, exc.message)
            record_reconciliation("dead_lettered")
        except TransientStoreError as exc:
            await self._retry(claimed, exc.message)
        except Exception as exc:
            logger.exception("reconciliation_job_failed", attempts=claimed.attempts)
            await self._retry(claimed, f"{type(exc).__name__}: {exc}")
        else:
            await self._queue.ack(claimed)
            logger.debug("reconciliation_job_done", result=result.value)
        finally:
            structlog.contextvars.unbind_contextvars("job_id", "booking_id")

    async def _retry(self, claimed: ClaimedJob, error: str) -> None:
        if await self._queue.retry(claimed, error):
            logger.warning("reconciliation_job_retry", attempts=claimed.attempts, error=error)
            record_reconciliation("retried")
        else:
            logger.error("reconciliation_job_dead_lettered", attempts=claimed.attempts, error=error)
            record_reconciliation("dead_lettered")

    async def run_maintenance(self) -> None:
        """Sweep unmonitored bookings, close started events, publish queue depth."""
        self._last_sweep = time.monotonic()
        await self._service.sweep_unmonitored()
        await self._service.deactivate_started_events()
        record_queue_stats(await self._queue.stats())
