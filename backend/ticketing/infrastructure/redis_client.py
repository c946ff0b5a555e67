"""
Redis client factory for the delayed queue.
Separated from business logic for clean architecture.

Clients are created explicitly and owned by whoever creates them (the
queue closes its own client on shutdown); there is no module-level singleton.
"""

import redis.asyncio as redis


def create_redis_client(url: str) -> redis.Redis:
    """Create a pooled asyncio Redis client."""
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )
