"""
Reconciliation: expire bookings whose payment never arrived.

A job fires once the payment window has elapsed. If the booking is still
Pending it is failed, its payment is failed, and its tickets go back to
the event. If anything already settled it (payment outcome, cancellation,
an earlier delivery of the same job) the job is a no-op.

The Pending check at the top is only a fast path. The decision that
counts is the conditional write in `settle_pending_booking`, evaluated
against the row as it is at write time, so a payment outcome that lands
between our read and our write wins cleanly.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.exceptions import NotFoundError, TransientStoreError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_reconciliation, sweep_reconciled
from ticketing.domain.state_machine import BookingStatus, PaymentStatus
from ticketing.models.booking import Booking
from ticketing.models.payment import Payment
from ticketing.services import inventory_service
from ticketing.services.interfaces.delayed_queue import ReconciliationJob
from ticketing.services.settlement import settle_pending_booking

logger = get_logger(__name__)


class ReconcileResult(str, Enum):
    EXPIRED = "expired"
    ALREADY_FINALIZED = "already_finalized"


class ReconciliationService:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        reconciliation_delay_seconds: int = 300,
        sweep_grace_seconds: int = 120,
    ):
        self._session_factory = session_factory
        self._delay_seconds = reconciliation_delay_seconds
        self._grace_seconds = sweep_grace_seconds

    async def reconcile(self, job: ReconciliationJob) -> ReconcileResult:
        """
        Raises:
            NotFoundError: booking or payment does not exist (not retryable)
            TransientStoreError: store failure (retryable)
        """
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    result = await self._reconcile(db, job)
        except DBAPIError as exc:
            raise TransientStoreError(f"Reconciliation of booking {job.booking_id} failed: {exc}") from exc

        record_reconciliation(result.value)
        return result

    async def _reconcile(self, db: AsyncSession, job: ReconciliationJob) -> ReconcileResult:
        booking = (
            await db.execute(select(Booking.status, Booking.event_id).where(Booking.id == job.booking_id))
        ).one_or_none()
        if booking is None:
            raise NotFoundError(f"Booking {job.booking_id} not found")

        payment = (
            await db.execute(
                select(Payment.id).where(Payment.id == job.payment_id, Payment.booking_id == job.booking_id)
            )
        ).scalar_one_or_none()
        if payment is None:
            raise NotFoundError(f"Payment {job.payment_id} not found for booking {job.booking_id}")

        if booking.status != BookingStatus.PENDING:
            logger.info("reconciliation_noop", booking_id=job.booking_id, status=booking.status.value)
            return ReconcileResult.ALREADY_FINALIZED

        expired = await settle_pending_booking(
            db,
            payment_id=job.payment_id,
            booking_id=job.booking_id,
            payment_status=PaymentStatus.FAILED,
            booking_status=BookingStatus.FAILED,
        )
        if not expired:
            logger.info("reconciliation_lost_race", booking_id=job.booking_id)
            return ReconcileResult.ALREADY_FINALIZED

        logger.info(
            "reconciliation_expired",
            booking_id=job.booking_id,
            payment_id=job.payment_id,
            event_id=booking.event_id,
            quantity=job.quantity,
        )
        return ReconcileResult.EXPIRED

    async def sweep_unmonitored(self, now: datetime | None = None, limit: int = 100) -> int:
        """
        Expire Pending bookings older than the payment window plus grace.
        Catches bookings whose job was never enqueued or was lost.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self._delay_seconds + self._grace_seconds)

        async with self._session_factory() as db:
            rows = (
                await db.execute(
                    select(Booking.id, Booking.event_id, Booking.quantity, Payment.id.label("payment_id"))
                    .join(Payment, Payment.booking_id == Booking.id)
                    .where(Booking.status == BookingStatus.PENDING, Booking.created_at < cutoff)
                    .order_by(Booking.created_at)
                    .limit(limit)
                )
            ).all()

        expired = 0
        for row in rows:
            job = ReconciliationJob(
                booking_id=row.id,
                event_id=row.event_id,
                quantity=row.quantity,
                payment_id=row.payment_id,
                fire_at=cutoff,
            )
            if await self.reconcile(job) is ReconcileResult.EXPIRED:
                expired += 1

        if expired:
            sweep_reconciled.inc(expired)
            logger.warning("sweep_expired_unmonitored_bookings", count=expired)
        return expired

    async def deactivate_started_events(self, now: datetime | None = None) -> int:
        """Close booking on events that have started."""
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as db:
            async with db.begin():
                return await inventory_service.deactivate_started_events(db, now)
