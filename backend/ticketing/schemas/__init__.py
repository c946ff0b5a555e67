from ticketing.schemas.event import EventCreate, EventUpdate, EventResponse
from ticketing.schemas.booking import (
    AttendeeDetails, BookingCreate, BookingResponse, BookingListResponse,
    BookingCancel, BookingCancelResponse, PaymentOrderResponse, ReservationResponse,
)
from ticketing.schemas.payment import PaymentVerifyRequest, PaymentAckResponse, WebhookAckResponse

__all__ = [
    "EventCreate", "EventUpdate", "EventResponse",
    "AttendeeDetails", "BookingCreate", "BookingResponse", "BookingListResponse",
    "BookingCancel", "BookingCancelResponse", "PaymentOrderResponse", "ReservationResponse",
    "PaymentVerifyRequest", "PaymentAckResponse", "WebhookAckResponse",
]
