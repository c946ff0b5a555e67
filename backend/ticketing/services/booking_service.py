"""
Reservation coordinator: atomic booking + inventory + payment order.

UNIT OF WORK
============

One database transaction covers:

  1. conditional inventory decrement (refusals: not found / inactive /
     insufficient, nothing written)
  2. price lookup, total = price x quantity
  3. Pending booking insert
  4. gateway order request
  5. Pending payment insert

Any exception inside the block, GatewayError included, rolls all of it
back: the client never sees a booking without an order or an order
without a booking. The gateway call happens while the event row is
locked; that serializes reservations for the same event for the length
of the call, which is the price of never overselling.

AFTER COMMIT
============

A reconciliation job is enqueued with a fixed delay. It is never cancelled
when payment completes early; it fires and finds the booking already
settled. If the enqueue itself fails the booking stays committed, the
failure is logged and counted for alerting, and the worker's sweep for
old Pending bookings picks it up later.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.exceptions import (
    BookingEngineError,
    ConflictError,
    GatewayError,
    NotFoundError,
    QueueDeliveryError,
    TransientStoreError,
    ValidationError,
)
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_reservation_attempt, reservation_latency, reconciliation_enqueue_failures
from ticketing.domain.state_machine import MAX_TICKETS_PER_BOOKING, BookingStatus, PaymentMethod, PaymentStatus
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.models.payment import Payment
from ticketing.services import inventory_service
from ticketing.services.inventory_service import ReserveOutcome
from ticketing.services.interfaces.delayed_queue import DelayedQueue, JobHandle, ReconciliationJob
from ticketing.services.interfaces.payment_gateway import GatewayOrder, PaymentGateway
from ticketing.services.settlement import settle_pending_booking

logger = get_logger(__name__)


@dataclass
class ReservationResult:
    booking: Booking
    payment: Payment
    order: GatewayOrder
    reconciliation_handle: Optional[JobHandle]


def _metric_label(exc: BookingEngineError) -> str:
    if isinstance(exc, ConflictError):
        return "conflict"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ValidationError):
        return "invalid"
    if isinstance(exc, GatewayError):
        return "gateway_error"
    return "error"


class ReservationCoordinator:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        queue: DelayedQueue,
        *,
        currency: str = "INR",
        reconciliation_delay_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self._gateway = gateway
        self._queue = queue
        self._currency = currency
        self._delay_seconds = reconciliation_delay_seconds

    def _validate(self, quantity: int, booking_details: list[dict], payment_method) -> PaymentMethod:
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise ValidationError("Quantity must be an integer")
        if quantity < 1 or quantity > MAX_TICKETS_PER_BOOKING:
            raise ValidationError(f"Quantity must be between 1 and {MAX_TICKETS_PER_BOOKING}")
        if len(booking_details) > quantity:
            raise ValidationError("More attendees than tickets requested")
        try:
            return PaymentMethod(payment_method)
        except ValueError as exc:
            raise ValidationError(f"Unsupported payment method: {payment_method}") from exc

    async def create_booking(
        self,
        event_id: int,
        user_id: int,
        quantity: int,
        booking_details: list[dict],
        payment_method: PaymentMethod | str,
    ) -> ReservationResult:
        """
        Reserve tickets and open a payment order in one unit of work, then
        schedule the reconciliation job.

        Raises:
            ValidationError, NotFoundError, ConflictError, GatewayError,
            TransientStoreError. None of them leave partial state behind.
        """
        started = time.perf_counter()
        try:
            method = self._validate(quantity, booking_details, payment_method)
            booking, payment, order = await self._reserve_and_order(
                event_id, user_id, quantity, booking_details, method
            )
        except BookingEngineError as exc:
            record_reservation_attempt(_metric_label(exc))
            raise
        finally:
            reservation_latency.observe(time.perf_counter() - started)

        record_reservation_attempt("success")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            payment_id=payment.id,
            order_id=order.order_id,
            user_id=user_id,
            event_id=event_id,
            quantity=quantity,
            total_price=booking.total_price,
        )

        handle = await self._schedule_reconciliation(booking, payment)
        return ReservationResult(booking=booking, payment=payment, order=order, reconciliation_handle=handle)

    async def _reserve_and_order(
        self,
        event_id: int,
        user_id: int,
        quantity: int,
        booking_details: list[dict],
        method: PaymentMethod,
    ) -> tuple[Booking, Payment, GatewayOrder]:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    outcome = await inventory_service.reserve(db, event_id, quantity)
                    if outcome is ReserveOutcome.EVENT_NOT_FOUND:
                        raise NotFoundError(f"Event {event_id} not found")
                    if outcome is ReserveOutcome.EVENT_INACTIVE:
                        raise ConflictError("Booking is closed for this event")
                    if outcome is ReserveOutcome.INSUFFICIENT_INVENTORY:
                        raise ConflictError("Insufficient tickets available")

                    ticket_price = (
                        await db.execute(select(Event.price).where(Event.id == event_id))
                    ).scalar_one()
                    total_price = ticket_price * quantity

                    booking = Booking(
                        user_id=user_id,
                        event_id=event_id,
                        quantity=quantity,
                        ticket_price=ticket_price,
                        total_price=total_price,
                        payment_method=method,
                        booking_details=booking_details,
                        payment_status=PaymentStatus.PENDING,
                        status=BookingStatus.PENDING,
                    )
                    db.add(booking)
                    await db.flush()

                    receipt = f"booking_{booking.id}"
                    order = await self._gateway.create_order(total_price, self._currency, receipt)

                    payment = Payment(
                        booking_id=booking.id,
                        user_id=user_id,
                        amount=total_price,
                        currency=self._currency,
                        payment_method=method,
                        receipt=receipt,
                        payment_status=PaymentStatus.PENDING,
                        gateway_order_id=order.order_id,
                    )
                    db.add(payment)
                    await db.flush()
        except GatewayError:
            logger.error("reservation_rolled_back", event_id=event_id, user_id=user_id, reason="gateway_error")
            raise
        except DBAPIError as exc:
            logger.error("reservation_store_error", event_id=event_id, user_id=user_id, error=str(exc))
            raise TransientStoreError("Reservation could not be stored, please retry") from exc

        return booking, payment, order

    async def _schedule_reconciliation(self, booking: Booking, payment: Payment) -> Optional[JobHandle]:
        job = ReconciliationJob(
            booking_id=booking.id,
            event_id=booking.event_id,
            quantity=booking.quantity,
            payment_id=payment.id,
            fire_at=booking.created_at + timedelta(seconds=self._delay_seconds),
        )
        try:
            return await self._queue.enqueue(job, self._delay_seconds * 1000)
        except QueueDeliveryError as exc:
            # Committed but unmonitored until the sweep finds it
            reconciliation_enqueue_failures.inc()
            logger.error(
                "reconciliation_enqueue_failed",
                booking_id=booking.id,
                payment_id=payment.id,
                error=exc.message,
            )
            return None

    async def cancel_booking(
        self,
        booking_id: int,
        user_id: int,
        reason: Optional[str] = None,
        is_admin: bool = False,
    ) -> Booking:
        """
        Cancel a Pending booking and release its tickets.
        Confirmed, Failed and Cancelled bookings cannot be cancelled here.
        """
        async with self._session_factory() as db:
            async with db.begin():
                booking = (
                    await db.execute(select(Booking).where(Booking.id == booking_id))
                ).scalar_one_or_none()
                # Other users' bookings look the same as missing ones
                if booking is None or (booking.user_id != user_id and not is_admin):
                    raise NotFoundError("Booking not found")

                payment_id = (
                    await db.execute(select(Payment.id).where(Payment.booking_id == booking_id))
                ).scalar_one()

                settled = await settle_pending_booking(
                    db,
                    payment_id=payment_id,
                    booking_id=booking_id,
                    payment_status=PaymentStatus.FAILED,
                    booking_status=BookingStatus.CANCELLED,
                    cancellation_reason=reason,
                )
                await db.refresh(booking)
                if not settled:
                    raise ConflictError(f"Booking is already {booking.status.value} and cannot be cancelled")

        logger.info(
            "booking_cancelled",
            booking_id=booking_id,
            user_id=user_id,
            event_id=booking.event_id,
            tickets_restored=booking.quantity,
        )
        return booking


async def list_bookings(
    db: AsyncSession,
    *,
    user_id: Optional[int] = None,
    event_id: Optional[int] = None,
    status: Optional[BookingStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Booking], int]:
    """Bookings filtered by owner or event, newest first, with a total count."""
    query = select(Booking)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    if event_id is not None:
        query = query.where(Booking.event_id == event_id)
    if status is not None:
        query = query.where(Booking.status == status)
    if start_date is not None and end_date is not None:
        query = query.where(Booking.created_at >= start_date, Booking.created_at <= end_date)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total
