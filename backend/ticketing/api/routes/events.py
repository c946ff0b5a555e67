"""
Event endpoints: organizers create and update events, anyone reads a single event.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.session import get_db
from ticketing.schemas.event import EventCreate, EventResponse, EventUpdate
from ticketing.services.event_service import create_event, get_event, update_event
from ticketing.core.security import require_admin

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    organizer_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event with all tickets available. Administrators only."""
    return await create_event(db, event_data, organizer_id)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID, with its live ticket count."""
    return await get_event(db, event_id)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    _admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit event details. The status cannot change once the event has started."""
    return await update_event(db, event_id, event_data)
