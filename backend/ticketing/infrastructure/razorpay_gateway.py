"""
Razorpay payment gateway.

The Razorpay SDK is synchronous (requests under the hood), so order
creation runs in a worker thread to keep the event loop free while the
reservation transaction waits on it.
"""

import asyncio

import razorpay

from ticketing.core.exceptions import GatewayError
from ticketing.core.logging import get_logger
from ticketing.services.interfaces.payment_gateway import GatewayOrder, PaymentGateway

logger = get_logger(__name__)


class RazorpayGateway(PaymentGateway):

    def __init__(self, key_id: str, key_secret: str, webhook_secret: str):
        if not key_id or not key_secret:
            raise ValueError("Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET.")
        self._client = razorpay.Client(auth=(key_id, key_secret))
        self._webhook_secret = webhook_secret

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        options = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
        }
        try:
            order = await asyncio.to_thread(self._client.order.create, options)
        except Exception as exc:
            logger.error("gateway_order_failed", receipt=receipt, amount=amount, error=str(exc))
            raise GatewayError("Payment order could not be created") from exc

        order_id = order.get("id")
        if not order_id:
            raise GatewayError("Payment gateway returned an order without an id")
        return GatewayOrder(order_id=order_id, amount=amount, currency=currency, receipt=receipt)

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        try:
            self._client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            logger.error("webhook_secret_missing")
            return False
        try:
            self._client.utility.verify_webhook_signature(body.decode("utf-8"), signature, self._webhook_secret)
        except razorpay.errors.SignatureVerificationError:
            return False
        return True
