"""
Event service handling creation, lookup and admin updates. Listing and
search are out of scope for this service.
"""

from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.exceptions import ConflictError, NotFoundError, ValidationError
from ticketing.domain.state_machine import EventStatus
from ticketing.models.event import Event
from ticketing.schemas.event import EventCreate, EventUpdate
from ticketing.core.logging import get_logger

logger = get_logger(__name__)

# Columns a partial update may not clear
REQUIRED_EVENT_FIELDS = {"title", "start_date", "end_date", "price", "status"}


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: int) -> Event:
    """Create a new event with full ticket availability."""
    if event_data.start_date <= datetime.now(timezone.utc):
        raise ValidationError("Event start date must be in the future")

    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        start_date=event_data.start_date,
        end_date=event_data.end_date,
        price=event_data.price,
        total_tickets=event_data.total_tickets,
        available_tickets=event_data.total_tickets,  # All tickets available initially
        status=EventStatus.ACTIVE,
        organizer_id=organizer_id,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info("event_created", event_id=event.id, title=event.title, tickets=event.total_tickets)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID with a fresh ticket count."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def update_event(db: AsyncSession, event_id: int, event_data: EventUpdate) -> Event:
    """
    Apply a partial update to an event.

    The status is frozen once the event has started. Ticket counts are never
    touched here, so reservations in flight keep their conditional decrement.
    """
    event = await get_event(db, event_id)
    changes = event_data.model_dump(exclude_unset=True)
    for field in REQUIRED_EVENT_FIELDS & changes.keys():
        if changes[field] is None:
            raise ValidationError(f"{field} cannot be null")
    now = datetime.now(timezone.utc)

    if changes.get("status") is not None and _as_utc(event.start_date) <= now:
        raise ConflictError("Cannot update status once the event has started")

    start = changes.get("start_date") or _as_utc(event.start_date)
    end = changes.get("end_date") or _as_utc(event.end_date)
    if changes.get("start_date") is not None and start <= now:
        raise ValidationError("Event start date must be in the future")
    if end <= start:
        raise ValidationError("Event end date must be after its start date")

    for field, value in changes.items():
        setattr(event, field, value)
    await db.flush()
    await db.refresh(event)

    logger.info("event_updated", event_id=event.id, fields=sorted(changes))
    return event
