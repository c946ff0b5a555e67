"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import create_redis_client
from .redis_queue import RedisDelayedQueue
from .razorpay_gateway import RazorpayGateway

__all__ = ['create_redis_client', 'RedisDelayedQueue', 'RazorpayGateway']
