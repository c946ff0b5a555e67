"""
Payment model: one per booking, one gateway order per payment.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, str_enum
from ticketing.domain.state_machine import PaymentMethod, PaymentStatus


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    user_id = Column(Integer, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String(8), nullable=False)
    payment_method = Column(str_enum(PaymentMethod, "payment_method"), nullable=False)
    receipt = Column(String(64), nullable=False)
    payment_status = Column(str_enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING)
    gateway_order_id = Column(String(64), nullable=False, unique=True)
    gateway_payment_id = Column(String(64), nullable=True)
    gateway_signature = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking={self.booking_id}, order={self.gateway_order_id}, status={self.payment_status})>"
