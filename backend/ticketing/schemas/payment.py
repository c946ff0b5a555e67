"""
Pydantic schemas for payment verification and gateway callbacks.
"""

from pydantic import BaseModel, Field

from ticketing.domain.state_machine import PaymentStatus


class PaymentVerifyRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=64)
    payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=255)


class PaymentAckResponse(BaseModel):
    order_id: str
    payment_status: PaymentStatus
    applied: bool


class WebhookAckResponse(BaseModel):
    message: str
    applied: bool = False
