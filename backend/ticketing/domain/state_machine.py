# ticketing/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from ticketing.core.exceptions import InvalidStateTransitionError


class EventStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class BookingStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    NET_BANKING = "net banking"
    DEBIT_CARD = "debit card"
    CREDIT_CARD = "credit card"
    UPI = "upi"


# Tickets per booking; mirrored by the bookings CHECK constraint
MAX_TICKETS_PER_BOOKING = 10


class BookingStateMachine:
    """
    Lifecycle shared by the payment updater, the reconciliation worker and
    the cancellation path. Every transition leaves Pending; the other states
    are terminal.

    The table documents and validates transitions; the stores enforce them
    with conditional writes (`WHERE status = 'Pending'`).
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
            BookingStatus.FAILED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED: set(),
        BookingStatus.FAILED: set(),
        BookingStatus.CANCELLED: set(),
    }

    # Booking state a settled payment drives the booking into.
    _PAYMENT_TO_BOOKING: Dict[PaymentStatus, BookingStatus] = {
        PaymentStatus.COMPLETED: BookingStatus.CONFIRMED,
        PaymentStatus.FAILED: BookingStatus.FAILED,
    }

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def booking_status_for(cls, outcome: PaymentStatus) -> BookingStatus:
        """
        Maps a settled payment outcome to the booking's next state.
        Pending is not an outcome.
        """
        if outcome not in cls._PAYMENT_TO_BOOKING:
            raise ValueError(f"Not a settled payment outcome: {outcome}")
        return cls._PAYMENT_TO_BOOKING[outcome]

    @classmethod
    def releases_inventory(cls, to_status: BookingStatus) -> bool:
        """Failed and Cancelled bookings give their tickets back."""
        return to_status in (BookingStatus.FAILED, BookingStatus.CANCELLED)
