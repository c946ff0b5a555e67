"""
Booking endpoints: reserve, list, cancel.
"""

import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api.deps import get_coordinator
from ticketing.db.session import get_db
from ticketing.domain.state_machine import BookingStatus
from ticketing.schemas.booking import (
    BookingCancel,
    BookingCancelResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    PaymentOrderResponse,
    ReservationResponse,
)
from ticketing.services.booking_service import ReservationCoordinator, list_bookings
from ticketing.core.security import get_current_user_id, is_admin, require_admin

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/events/{event_id}", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def reserve_tickets(
    event_id: int,
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
):
    """
    Reserve tickets and open a payment order.

    The booking stays Pending until the payment is verified. If no payment
    arrives within the payment window the booking fails and the tickets
    are released.
    """
    result = await coordinator.create_booking(
        event_id=event_id,
        user_id=user_id,
        quantity=booking_data.quantity,
        booking_details=[attendee.model_dump() for attendee in booking_data.booking_details],
        payment_method=booking_data.payment_method,
    )
    return ReservationResponse(
        booking=BookingResponse.model_validate(result.booking),
        payment=PaymentOrderResponse(
            order_id=result.order.order_id,
            payment_id=result.payment.id,
            amount=result.payment.amount,
            currency=result.payment.currency,
        ),
        reconciliation_scheduled=result.reconciliation_handle is not None,
    )


@router.get("/", response_model=BookingListResponse)
async def list_user_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Bookings of the authenticated user, newest first."""
    bookings, total = await list_bookings(
        db,
        user_id=user_id,
        status=booking_status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


@router.get("/events/{event_id}", response_model=BookingListResponse)
async def list_event_bookings(
    event_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    _admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All bookings for an event. Administrators only."""
    bookings, total = await list_bookings(
        db,
        event_id=event_id,
        status=booking_status,
        page=page,
        limit=limit,
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    cancel_data: Optional[BookingCancel] = None,
    user_id: int = Depends(get_current_user_id),
    admin: bool = Depends(is_admin),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
):
    """Cancel a Pending booking and release its tickets."""
    booking = await coordinator.cancel_booking(
        booking_id,
        user_id,
        reason=cancel_data.reason if cancel_data else None,
        is_admin=admin,
    )
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
    )
