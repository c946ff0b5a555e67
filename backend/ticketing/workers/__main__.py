"""
Standalone reconciliation worker process.

    python -m ticketing.workers

Use with RUN_WORKER_IN_PROCESS=false on the API so jobs are consumed by
dedicated processes. Requires QUEUE_BACKEND=redis to share jobs with the API.
"""

import asyncio
import signal

from ticketing.core.config import get_settings
from ticketing.core.logging import setup_logging, get_logger
from ticketing.db.session import AsyncSessionLocal, engine
from ticketing.services.strategy_factory import build_delayed_queue
from ticketing.workers import build_worker


async def main() -> None:
    setup_logging()
    logger = get_logger("ticketing.workers")
    settings = get_settings()

    queue = build_delayed_queue(settings)
    worker = build_worker(settings, queue, AsyncSessionLocal)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await worker.start()
    logger.info("worker_process_ready", queue_backend=settings.QUEUE_BACKEND)
    await stop.wait()

    await worker.stop()
    await queue.close()
    await engine.dispose()
    logger.info("worker_process_shutdown")


if __name__ == "__main__":
    asyncio.run(main())
