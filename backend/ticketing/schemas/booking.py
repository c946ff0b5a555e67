"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from ticketing.domain.state_machine import MAX_TICKETS_PER_BOOKING, BookingStatus, PaymentMethod, PaymentStatus


class AttendeeDetails(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., pattern=r"^[0-9]{10}$")


class BookingCreate(BaseModel):
    quantity: int = Field(default=1, gt=0, le=MAX_TICKETS_PER_BOOKING)
    payment_method: PaymentMethod
    booking_details: list[AttendeeDetails] = Field(default_factory=list)


class BookingResponse(BaseModel):
    id: int
    user_id: int
    event_id: int
    quantity: int
    ticket_price: int
    total_price: int
    payment_method: PaymentMethod
    booking_details: list[AttendeeDetails]
    payment_status: PaymentStatus
    status: BookingStatus
    cancellation_reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentOrderResponse(BaseModel):
    order_id: str
    payment_id: int
    amount: int
    currency: str


class ReservationResponse(BaseModel):
    booking: BookingResponse
    payment: PaymentOrderResponse
    reconciliation_scheduled: bool


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    status: BookingStatus
