"""
Mock payment gateway - no network.
Signs with the same HMAC-SHA256 scheme Razorpay uses, so the verify and
webhook endpoints behave identically in development.
"""

import hashlib
import hmac
import uuid

from ticketing.services.interfaces.payment_gateway import GatewayOrder, PaymentGateway


class MockGateway(PaymentGateway):
    """
    Use when:
    - Running locally without gateway credentials
    - Tests and demos
    """

    def __init__(self, key_secret: str = "mock_secret", webhook_secret: str = "mock_webhook_secret"):
        self._key_secret = key_secret.encode()
        self._webhook_secret = webhook_secret.encode()
        self.orders: dict[str, GatewayOrder] = {}

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        order = GatewayOrder(
            order_id=f"order_mock_{uuid.uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
            receipt=receipt,
        )
        self.orders[order.order_id] = order
        return order

    def sign_payment(self, order_id: str, payment_id: str) -> str:
        """Signature a real checkout would hand to the client."""
        return hmac.new(self._key_secret, f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()

    def sign_webhook(self, body: bytes) -> str:
        return hmac.new(self._webhook_secret, body, hashlib.sha256).hexdigest()

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return hmac.compare_digest(self.sign_payment(order_id, payment_id), signature)

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        return hmac.compare_digest(self.sign_webhook(body), signature)
