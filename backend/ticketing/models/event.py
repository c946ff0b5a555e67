"""
Event model with ticket inventory tracking.

Key design decisions:
- `available_tickets` is the only contended resource; it is changed only by
  conditional UPDATE statements in the inventory service
- CHECK constraints are the final safety net against overselling
- `version` is bumped on every inventory change for auditability
- Index on `start_date` for the event status sweep
"""

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, str_enum
from ticketing.domain.state_machine import EventStatus


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    price = Column(Integer, nullable=False)  # smallest currency unit
    total_tickets = Column(Integer, nullable=False)
    available_tickets = Column(Integer, nullable=False)
    status = Column(str_enum(EventStatus, "event_status"), nullable=False, default=EventStatus.ACTIVE)
    organizer_id = Column(Integer, nullable=False)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("available_tickets >= 0", name="check_available_tickets_non_negative"),
        CheckConstraint("total_tickets > 0", name="check_total_tickets_positive"),
        CheckConstraint("available_tickets <= total_tickets", name="check_available_lte_total"),
        CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        CheckConstraint("end_date > start_date", name="check_event_dates_ordered"),
        Index("ix_events_status_start_date", "status", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, available={self.available_tickets}/{self.total_tickets})>"
