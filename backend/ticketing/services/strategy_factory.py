"""
Collaborator factory.
Configures which payment gateway and which delayed queue to use.
"""

from ticketing.core.config import Settings
from ticketing.infrastructure.razorpay_gateway import RazorpayGateway
from ticketing.infrastructure.redis_client import create_redis_client
from ticketing.infrastructure.redis_queue import RedisDelayedQueue
from ticketing.services.interfaces.delayed_queue import DelayedQueue
from ticketing.services.interfaces.in_memory_queue import InMemoryDelayedQueue
from ticketing.services.interfaces.mock_gateway import MockGateway
from ticketing.services.interfaces.payment_gateway import PaymentGateway


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    """
    Selection via PAYMENT_GATEWAY:
    - razorpay: real orders (requires keys)
    - mock: local HMAC-signed orders
    """
    if settings.PAYMENT_GATEWAY == "mock":
        return MockGateway(
            key_secret=settings.RAZORPAY_KEY_SECRET or "mock_secret",
            webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET or "mock_webhook_secret",
        )
    if settings.PAYMENT_GATEWAY == "razorpay":
        return RazorpayGateway(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
        )
    raise ValueError(f"Unknown PAYMENT_GATEWAY: {settings.PAYMENT_GATEWAY}")


def build_delayed_queue(settings: Settings) -> DelayedQueue:
    """
    Selection via QUEUE_BACKEND:
    - redis: durable, shared between API and worker processes
    - memory: single process only
    """
    if settings.QUEUE_BACKEND == "memory":
        return InMemoryDelayedQueue(
            visibility_timeout=settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS,
            max_attempts=settings.QUEUE_MAX_ATTEMPTS,
            retry_backoff=settings.QUEUE_RETRY_BACKOFF_SECONDS,
        )
    if settings.QUEUE_BACKEND == "redis":
        return RedisDelayedQueue(
            create_redis_client(settings.REDIS_URL),
            prefix=settings.QUEUE_KEY_PREFIX,
            visibility_timeout=settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS,
            max_attempts=settings.QUEUE_MAX_ATTEMPTS,
            retry_backoff=settings.QUEUE_RETRY_BACKOFF_SECONDS,
        )
    raise ValueError(f"Unknown QUEUE_BACKEND: {settings.QUEUE_BACKEND}")
