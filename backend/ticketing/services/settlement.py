"""
Guarded settlement of a Pending booking.

Every path that finalizes a booking (gateway outcome, reconciliation
timeout, user cancellation) goes through `settle_pending_booking`, so they
all:

  1. write the payment row first, conditional on payment_status = 'Pending'
  2. write the booking row second, conditional on status = 'Pending'
  3. restore inventory only if both writes matched and the new state
     releases tickets

The payment row is the gate: whichever finalizer flips it out of Pending
wins, and every loser matches zero rows and becomes a no-op. Taking the
rows in the same order everywhere means two finalizers racing on one
booking block on each other instead of deadlocking.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.exceptions import InvalidStateTransitionError
from ticketing.domain.state_machine import BookingStateMachine, BookingStatus, PaymentStatus
from ticketing.models.booking import Booking
from ticketing.models.payment import Payment
from ticketing.services import inventory_service


async def settle_pending_booking(
    db: AsyncSession,
    *,
    payment_id: int,
    booking_id: int,
    payment_status: PaymentStatus,
    booking_status: BookingStatus,
    gateway_payment_id: str | None = None,
    gateway_signature: str | None = None,
    cancellation_reason: str | None = None,
) -> bool:
    """
    Move payment and booking out of Pending in the caller's transaction.

    Returns:
        True if this call performed the transition, False if another
        finalizer already had.
    """
    BookingStateMachine.validate_transition(BookingStatus.PENDING, booking_status)

    payment_values = {"payment_status": payment_status}
    if gateway_payment_id is not None:
        payment_values["gateway_payment_id"] = gateway_payment_id
    if gateway_signature is not None:
        payment_values["gateway_signature"] = gateway_signature

    payment_result = await db.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.payment_status == PaymentStatus.PENDING)
        .values(**payment_values)
        .execution_options(synchronize_session=False)
    )
    if payment_result.rowcount == 0:
        return False

    booking_values = {"status": booking_status, "payment_status": payment_status}
    if cancellation_reason is not None:
        booking_values["cancellation_reason"] = cancellation_reason

    booking_result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
        .values(**booking_values)
        .execution_options(synchronize_session=False)
    )
    if booking_result.rowcount == 0:
        # Payment was Pending but the booking was not: refuse and let the
        # caller's transaction roll the payment write back.
        current = (await db.execute(select(Booking.status).where(Booking.id == booking_id))).scalar_one_or_none()
        raise InvalidStateTransitionError(
            from_state=current.value if current is not None else "missing",
            to_state=booking_status.value,
        )

    if BookingStateMachine.releases_inventory(booking_status):
        row = (
            await db.execute(select(Booking.event_id, Booking.quantity).where(Booking.id == booking_id))
        ).one()
        await inventory_service.restore(db, row.event_id, row.quantity)

    return True
