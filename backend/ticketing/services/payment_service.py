"""
Payment status updater and the ingest paths that feed it.

The gateway can tell us the outcome of a payment twice (client-side verify
and webhook), more than once (webhook redelivery), or after the
reconciliation worker already expired the booking. `apply_outcome` is
therefore a conditional transition out of Pending and nothing else; every
repeat is an acknowledged no-op.
"""

import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.exceptions import NotFoundError, SignatureError, TransientStoreError, ValidationError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_payment_outcome, signature_failures
from ticketing.domain.state_machine import BookingStateMachine, PaymentStatus
from ticketing.models.payment import Payment
from ticketing.services.interfaces.payment_gateway import PaymentGateway
from ticketing.services.settlement import settle_pending_booking

logger = get_logger(__name__)

# Gateway webhook event -> settled outcome
WEBHOOK_OUTCOMES = {
    "payment.captured": PaymentStatus.COMPLETED,
    "payment.failed": PaymentStatus.FAILED,
}


@dataclass(frozen=True)
class PaymentAck:
    order_id: str
    payment_status: PaymentStatus  # status after the call
    applied: bool  # False when the payment was already settled


@dataclass(frozen=True)
class GatewayOutcome:
    """Normalized payment outcome, whatever the ingest path."""
    order_id: str
    outcome: PaymentStatus
    payment_id: Optional[str] = None
    signature: Optional[str] = None


class PaymentStatusUpdater:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def ensure_owner(self, gateway_order_id: str, user_id: int) -> None:
        """
        Raises NotFoundError unless the payment for `gateway_order_id`
        belongs to `user_id`. Other users' orders look the same as missing ones.
        """
        async with self._session_factory() as db:
            owner = (
                await db.execute(select(Payment.user_id).where(Payment.gateway_order_id == gateway_order_id))
            ).scalar_one_or_none()
        if owner is None or owner != user_id:
            raise NotFoundError(f"No payment for order {gateway_order_id}")

    async def apply_outcome(
        self,
        gateway_order_id: str,
        outcome: PaymentStatus,
        gateway_payment_id: Optional[str] = None,
        gateway_signature: Optional[str] = None,
    ) -> PaymentAck:
        """
        Settle the payment for `gateway_order_id` if it is still Pending.
        Completed confirms the booking; Failed fails it and releases its
        tickets. Already settled payments are left alone.

        Raises:
            NotFoundError: no payment has this order id
        """
        if outcome is PaymentStatus.PENDING:
            raise ValidationError("Pending is not a payment outcome")
        booking_status = BookingStateMachine.booking_status_for(outcome)

        try:
            async with self._session_factory() as db:
                async with db.begin():
                    row = (
                        await db.execute(
                            select(Payment.id, Payment.booking_id, Payment.payment_status)
                            .where(Payment.gateway_order_id == gateway_order_id)
                        )
                    ).one_or_none()
                    if row is None:
                        raise NotFoundError(f"No payment for order {gateway_order_id}")

                    applied = False
                    if row.payment_status == PaymentStatus.PENDING:
                        applied = await settle_pending_booking(
                            db,
                            payment_id=row.id,
                            booking_id=row.booking_id,
                            payment_status=outcome,
                            booking_status=booking_status,
                            gateway_payment_id=gateway_payment_id,
                            gateway_signature=gateway_signature,
                        )

                    current = outcome
                    if not applied:
                        current = (
                            await db.execute(select(Payment.payment_status).where(Payment.id == row.id))
                        ).scalar_one()
        except DBAPIError as exc:
            raise TransientStoreError("Payment outcome could not be stored") from exc

        record_payment_outcome(outcome.value, applied)
        if applied:
            logger.info(
                "payment_outcome_applied",
                order_id=gateway_order_id,
                payment_id=row.id,
                booking_id=row.booking_id,
                outcome=outcome.value,
            )
        else:
            logger.info(
                "payment_outcome_ignored",
                order_id=gateway_order_id,
                outcome=outcome.value,
                current_status=current.value,
            )
        return PaymentAck(order_id=gateway_order_id, payment_status=current, applied=applied)


def parse_webhook_event(payload: dict) -> Optional[GatewayOutcome]:
    """
    Normalize a gateway webhook body. Returns None for event types that do
    not settle a payment.
    """
    outcome = WEBHOOK_OUTCOMES.get(payload.get("event"))
    if outcome is None:
        return None
    try:
        entity = payload["payload"]["payment"]["entity"]
        order_id = entity["order_id"]
    except (KeyError, TypeError) as exc:
        raise ValidationError("Webhook payload has no payment entity") from exc
    if not order_id:
        raise ValidationError("Webhook payment is not linked to an order")
    return GatewayOutcome(order_id=order_id, outcome=outcome, payment_id=entity.get("id"))


class PaymentService:
    """Signature checks in front of the updater."""

    def __init__(self, gateway: PaymentGateway, updater: PaymentStatusUpdater):
        self._gateway = gateway
        self._updater = updater

    async def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        user_id: Optional[int] = None,
    ) -> PaymentAck:
        """
        Client-side confirmation after checkout. A bad signature fails the
        payment (releasing its tickets once) and raises SignatureError.
        With `user_id`, only the owner of the order may settle it; anyone
        else gets NotFoundError and nothing changes.
        """
        if user_id is not None:
            await self._updater.ensure_owner(order_id, user_id)

        if not self._gateway.verify_signature(order_id, payment_id, signature):
            signature_failures.labels(source="verify").inc()
            logger.warning("payment_signature_invalid", order_id=order_id, payment_id=payment_id)
            await self._updater.apply_outcome(order_id, PaymentStatus.FAILED, gateway_payment_id=payment_id)
            raise SignatureError("Invalid payment signature")

        return await self._updater.apply_outcome(
            order_id,
            PaymentStatus.COMPLETED,
            gateway_payment_id=payment_id,
            gateway_signature=signature,
        )

    async def handle_webhook(self, body: bytes, signature: Optional[str]) -> Optional[PaymentAck]:
        """
        Verify and apply a gateway webhook. An unverifiable body changes
        nothing. Returns None for events that are acknowledged but ignored.
        """
        if not signature or not self._gateway.verify_webhook(body, signature):
            signature_failures.labels(source="webhook").inc()
            logger.warning("webhook_signature_invalid")
            raise SignatureError("Invalid webhook signature")

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ValidationError("Webhook body is not JSON") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body is not a JSON object")

        event = parse_webhook_event(payload)
        if event is None:
            logger.info("webhook_event_ignored", event_type=payload.get("event"))
            return None

        return await self._updater.apply_outcome(event.order_id, event.outcome, gateway_payment_id=event.payment_id)
