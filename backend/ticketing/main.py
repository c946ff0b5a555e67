"""
Ticket Reservation Engine - Main Application Entry Point

A ticket reservation and payment settlement service:
- Oversell-free reservations with a conditional inventory decrement
- Booking, inventory and gateway order committed as one unit of work
- Idempotent payment settlement from client verification and webhooks
- Delayed reconciliation that releases tickets of unpaid bookings
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticketing.core.config import get_settings
from ticketing.core.logging import setup_logging, get_logger
from ticketing.core.metrics import metrics_endpoint, record_queue_stats
from ticketing.api.errors import register_exception_handlers
from ticketing.api.middleware import RequestLoggingMiddleware
from ticketing.api.router import api_router
from ticketing.db.session import AsyncSessionLocal, engine
from ticketing.services.booking_service import ReservationCoordinator
from ticketing.services.payment_service import PaymentService, PaymentStatusUpdater
from ticketing.services.strategy_factory import build_delayed_queue, build_payment_gateway
from ticketing.workers import build_worker

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: wire collaborators, run the worker, clean up."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        payment_gateway=settings.PAYMENT_GATEWAY,
        queue_backend=settings.QUEUE_BACKEND,
    )

    gateway = build_payment_gateway(settings)
    queue = build_delayed_queue(settings)

    app.state.queue = queue
    app.state.coordinator = ReservationCoordinator(
        AsyncSessionLocal,
        gateway,
        queue,
        currency=settings.CURRENCY,
        reconciliation_delay_seconds=settings.RECONCILIATION_DELAY_SECONDS,
    )
    app.state.payment_service = PaymentService(gateway, PaymentStatusUpdater(AsyncSessionLocal))

    worker = build_worker(settings, queue, AsyncSessionLocal)
    app.state.worker = worker
    if settings.RUN_WORKER_IN_PROCESS:
        await worker.start()

    yield

    await worker.stop()
    await queue.close()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Ticket reservation engine with payment settlement and delayed reconciliation",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    queue = getattr(app.state, "queue", None)
    queue_stats = await queue.stats() if queue is not None else {"backend": "unconfigured"}
    record_queue_stats(queue_stats)
    worker = getattr(app.state, "worker", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "queue": queue_stats,
        "worker_running": bool(worker and worker.running),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
