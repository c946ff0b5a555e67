"""
Event ticket inventory.

CONCURRENCY STRATEGY: Conditional Decrement
===========================================

Problem:
  Two users try to book the last ticket simultaneously.
  Both read available_tickets=1, both decrement to 0, both succeed.
  Result: Overselling.

Solution:
  The decrement and the availability check are one statement:

    UPDATE events SET available_tickets = available_tickets - :q
    WHERE id = :event_id AND status = 'active' AND available_tickets >= :q

  The database evaluates the predicate under the row lock, so of two
  concurrent reservations for the last ticket one matches a row and the
  other matches none. Only when no row matched do we read the event, and
  only to explain the refusal.

  There is no read-then-write anywhere on available_tickets, and no retry
  loop: a refused reservation is final for that request. The CHECK
  constraint (available_tickets >= 0) is the last line of defense.

Restores are unconditional increments. Deduplicating them is the caller's
job: every caller restores only after winning a `status = 'Pending'`
conditional write on the payment and the booking.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.logging import get_logger
from ticketing.domain.state_machine import EventStatus
from ticketing.models.event import Event

logger = get_logger(__name__)


class ReserveOutcome(str, Enum):
    RESERVED = "reserved"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    EVENT_NOT_FOUND = "event_not_found"
    EVENT_INACTIVE = "event_inactive"


async def reserve(db: AsyncSession, event_id: int, quantity: int) -> ReserveOutcome:
    """Decrement iff the event is active and has `quantity` tickets left."""
    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.status == EventStatus.ACTIVE,
            Event.available_tickets >= quantity,
        )
        .values(
            available_tickets=Event.available_tickets - quantity,
            version=Event.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return ReserveOutcome.RESERVED

    row = (
        await db.execute(select(Event.status, Event.available_tickets).where(Event.id == event_id))
    ).one_or_none()
    if row is None:
        return ReserveOutcome.EVENT_NOT_FOUND
    if row.status != EventStatus.ACTIVE:
        return ReserveOutcome.EVENT_INACTIVE

    logger.warning(
        "reservation_refused_no_tickets",
        event_id=event_id,
        requested=quantity,
        available=row.available_tickets,
    )
    return ReserveOutcome.INSUFFICIENT_INVENTORY


async def restore(db: AsyncSession, event_id: int, quantity: int) -> None:
    """Give `quantity` tickets back. Not idempotent on its own."""
    await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(
            available_tickets=Event.available_tickets + quantity,
            version=Event.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    logger.info("inventory_restored", event_id=event_id, quantity=quantity)


async def get_available_tickets(db: AsyncSession, event_id: int) -> int | None:
    result = await db.execute(select(Event.available_tickets).where(Event.id == event_id))
    return result.scalar_one_or_none()


async def deactivate_started_events(db: AsyncSession, now: datetime) -> int:
    """Close booking for every active event whose start date has passed."""
    result = await db.execute(
        update(Event)
        .where(Event.status == EventStatus.ACTIVE, Event.start_date < now)
        .values(status=EventStatus.INACTIVE, version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("events_deactivated", count=result.rowcount)
    return result.rowcount
