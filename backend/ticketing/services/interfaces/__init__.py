"""
Service interfaces for dependency inversion.
Allows swapping the gateway and the queue without changing business logic.
"""

from .payment_gateway import GatewayOrder, PaymentGateway
from .mock_gateway import MockGateway
from .delayed_queue import ClaimedJob, DelayedQueue, JobHandle, ReconciliationJob
from .in_memory_queue import InMemoryDelayedQueue

__all__ = [
    'GatewayOrder', 'PaymentGateway', 'MockGateway',
    'ClaimedJob', 'DelayedQueue', 'JobHandle', 'ReconciliationJob', 'InMemoryDelayedQueue',
]
