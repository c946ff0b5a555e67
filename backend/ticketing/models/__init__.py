from ticketing.models.event import Event
from ticketing.models.booking import Booking
from ticketing.models.payment import Payment

__all__ = ["Event", "Booking", "Payment"]
