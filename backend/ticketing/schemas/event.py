"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from ticketing.domain.state_machine import EventStatus


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    start_date: datetime
    end_date: datetime
    price: int = Field(..., ge=0)
    total_tickets: int = Field(..., gt=0, le=100000)

    @model_validator(mode="after")
    def end_after_start(self) -> "EventCreate":
        # Naive datetimes are taken as UTC
        if self.start_date.tzinfo is None:
            self.start_date = self.start_date.replace(tzinfo=timezone.utc)
        if self.end_date.tzinfo is None:
            self.end_date = self.end_date.replace(tzinfo=timezone.utc)
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class EventUpdate(BaseModel):
    """Partial update. Ticket counts are not editable."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    price: Optional[int] = Field(None, ge=0)
    status: Optional[EventStatus] = None

    @model_validator(mode="after")
    def assume_utc(self) -> "EventUpdate":
        if self.start_date is not None and self.start_date.tzinfo is None:
            self.start_date = self.start_date.replace(tzinfo=timezone.utc)
        if self.end_date is not None and self.end_date.tzinfo is None:
            self.end_date = self.end_date.replace(tzinfo=timezone.utc)
        return self


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    location: Optional[str]
    start_date: datetime
    end_date: datetime
    price: int
    total_tickets: int
    available_tickets: int
    status: EventStatus
    organizer_id: int
    created_at: datetime

    model_config = {"from_attributes": True}
