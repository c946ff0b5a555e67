from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.config import Settings
from ticketing.services.interfaces.delayed_queue import DelayedQueue
from ticketing.services.reconciliation_service import ReconciliationService
from ticketing.workers.reconciliation_worker import ReconciliationWorker


def build_worker(
    settings: Settings,
    queue: DelayedQueue,
    session_factory: async_sessionmaker[AsyncSession],
) -> ReconciliationWorker:
    service = ReconciliationService(
        session_factory,
        reconciliation_delay_seconds=settings.RECONCILIATION_DELAY_SECONDS,
        sweep_grace_seconds=settings.RECONCILIATION_SWEEP_GRACE_SECONDS,
    )
    return ReconciliationWorker(
        queue,
        service,
        poll_interval=settings.WORKER_POLL_INTERVAL_SECONDS,
        batch_size=settings.WORKER_BATCH_SIZE,
        sweep_interval=settings.WORKER_SWEEP_INTERVAL_SECONDS,
    )


__all__ = ["ReconciliationWorker", "build_worker"]
