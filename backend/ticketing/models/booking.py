"""
Booking model representing a user's reservation for an event.

Key design decisions:
- Created only by the reservation coordinator, always as Pending/Pending
- Leaves Pending exactly once, through a conditional UPDATE
- ticket_price is captured at reservation time so later price edits do not
  change what the user owes
"""

from sqlalchemy import Column, Integer, String, ForeignKey, JSON, CheckConstraint, Index

from ticketing.db.base import Base, TimestampMixin, str_enum
from ticketing.domain.state_machine import MAX_TICKETS_PER_BOOKING, BookingStatus, PaymentMethod, PaymentStatus


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    ticket_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    payment_method = Column(str_enum(PaymentMethod, "booking_payment_method"), nullable=False)
    booking_details = Column(JSON, nullable=False, default=list)
    payment_status = Column(
        str_enum(PaymentStatus, "booking_payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    status = Column(str_enum(BookingStatus, "booking_status"), nullable=False, default=BookingStatus.PENDING)
    cancellation_reason = Column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint(
            f"quantity >= 1 AND quantity <= {MAX_TICKETS_PER_BOOKING}", name="check_booking_quantity_range"
        ),
        CheckConstraint("ticket_price >= 0", name="check_booking_ticket_price_non_negative"),
        CheckConstraint("total_price >= 0", name="check_booking_total_price_non_negative"),
        # Pending bookings by age, for the unmonitored-booking sweep
        Index("ix_bookings_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"
