"""
Payment gateway interface.
The reservation coordinator and the payment updater only see this contract;
the concrete gateway is chosen by the strategy factory.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: int
    currency: str
    receipt: str


class PaymentGateway(ABC):
    """
    Interface for payment gateways.

    Implementations:
    - RazorpayGateway: real orders through the Razorpay API
    - MockGateway: local HMAC-signed orders for development and tests
    """

    @abstractmethod
    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        """
        Create a payment order.

        Args:
            amount: Amount in the smallest currency unit
            currency: ISO currency code
            receipt: Our reference, echoed back by the gateway

        Raises:
            GatewayError: the order could not be created
        """

    @abstractmethod
    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the signature the client received after checkout."""

    @abstractmethod
    def verify_webhook(self, body: bytes, signature: str) -> bool:
        """Check a webhook body against its signature header."""
