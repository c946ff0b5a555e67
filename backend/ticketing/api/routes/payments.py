"""
Payment endpoints: client-side verification and the gateway webhook.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ticketing.api.deps import get_payment_service
from ticketing.core.security import get_current_user_id
from ticketing.schemas.payment import PaymentAckResponse, PaymentVerifyRequest, WebhookAckResponse
from ticketing.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])
webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/verify", response_model=PaymentAckResponse)
async def verify_payment(
    verify_data: PaymentVerifyRequest,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
):
    """
    Confirm a payment with the signature returned by checkout.
    A mismatched signature fails the payment and releases the tickets.
    Orders of other users are reported as not found.
    """
    ack = await payments.verify_payment(
        verify_data.order_id,
        verify_data.payment_id,
        verify_data.signature,
        user_id=user_id,
    )
    return PaymentAckResponse(order_id=ack.order_id, payment_status=ack.payment_status, applied=ack.applied)


@webhook_router.post("/razorpay", response_model=WebhookAckResponse)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    payments: PaymentService = Depends(get_payment_service),
):
    """Gateway callback. Redeliveries are acknowledged without side effects."""
    body = await request.body()
    ack = await payments.handle_webhook(body, x_razorpay_signature)
    if ack is None:
        return WebhookAckResponse(message="Event ignored")
    return WebhookAckResponse(message="Webhook processed successfully", applied=ack.applied)
